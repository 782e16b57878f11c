import logging

import pytest

from climb.core.config import Settings, config_problems, validate_config


def _settings(**overrides):
    values = {"LLM_API_KEY": "sk-test", "DATABASE_URL": "sqlite://"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_complete_config_passes():
    assert validate_config(strict=True, settings_obj=_settings())


def test_missing_keys_warn_in_lenient_mode(caplog):
    cfg = _settings(LLM_API_KEY=None)
    with caplog.at_level(logging.WARNING, logger="climb"):
        assert validate_config(strict=False, settings_obj=cfg)
    assert "LLM_API_KEY" in caplog.text
    assert "sk-" not in caplog.text


def test_missing_keys_raise_in_strict_mode():
    with pytest.raises(RuntimeError, match="DATABASE_URL"):
        validate_config(strict=True, settings_obj=_settings(DATABASE_URL=None))


def test_unknown_fallback_policy_is_flagged():
    with pytest.raises(RuntimeError, match="ROLE_PARSE_FALLBACK"):
        validate_config(strict=True, settings_obj=_settings(ROLE_PARSE_FALLBACK="guess"))


def test_negative_role_parse_retries_are_flagged():
    assert "ROLE_PARSE_MAX_RETRIES must be >= 0" in config_problems(_settings(ROLE_PARSE_MAX_RETRIES=-1))
    with pytest.raises(RuntimeError, match="ROLE_PARSE_MAX_RETRIES"):
        validate_config(strict=True, settings_obj=_settings(ROLE_PARSE_MAX_RETRIES=-1))


def test_billing_pool_needs_a_worker():
    assert "BILLING_LOOKUP_WORKERS must be at least 1" in config_problems(_settings(BILLING_LOOKUP_WORKERS=0))
