import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List, Optional

ROLE_PARSE_FALLBACKS = ("empty", "heuristic", "raise")


class Settings(BaseSettings):
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # OpenAI-compatible completion provider
    LLM_API_KEY: Optional[str] = None
    LLM_BASE_URL: str = "https://api.openai.com/v1"
    LLM_MODEL: Optional[str] = None
    LLM_TIMEOUT_SECONDS: float = 60.0
    LLM_RETRY_DELAY_SECONDS: float = 1.0

    # Billing database; unset means everyone is on the free plan
    DATABASE_URL: Optional[str] = None
    BILLING_LOOKUP_TIMEOUT_SECONDS: float = 2.0
    # A timed-out lookup keeps its worker until the store returns, so at most
    # this many stuck calls exist at once; later lookups queue and time out.
    BILLING_LOOKUP_WORKERS: int = 4

    AI_USAGE_SWEEP_THRESHOLD: int = 2000

    ROLE_PARSE_MAX_RETRIES: int = 2
    ROLE_PARSE_FALLBACK: str = "empty"

    # Per-IP guard on the telemetry intake
    TELEMETRY_RATE_LIMIT: int = 120
    TELEMETRY_WINDOW_MS: int = 60_000

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()


def config_problems(cfg: Settings) -> List[str]:
    """Human-readable problems with `cfg`. Names keys, never values."""
    problems = []
    missing = [key for key in ("LLM_API_KEY", "DATABASE_URL") if not getattr(cfg, key, None)]
    if missing:
        problems.append(f"Missing required configuration: {', '.join(missing)}")
    if cfg.ROLE_PARSE_FALLBACK not in ROLE_PARSE_FALLBACKS:
        problems.append(f"Unknown ROLE_PARSE_FALLBACK '{cfg.ROLE_PARSE_FALLBACK}', using 'empty'")
    if cfg.ROLE_PARSE_MAX_RETRIES < 0:
        problems.append("ROLE_PARSE_MAX_RETRIES must be >= 0")
    if cfg.BILLING_LOOKUP_WORKERS < 1:
        problems.append("BILLING_LOOKUP_WORKERS must be at least 1")
    if cfg.TELEMETRY_RATE_LIMIT < 1 or cfg.TELEMETRY_WINDOW_MS < 1:
        problems.append("TELEMETRY_RATE_LIMIT and TELEMETRY_WINDOW_MS must be positive")
    return problems


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Check configuration at startup.

    Strict mode raises RuntimeError on the first problem; otherwise each
    problem is logged as a warning and the service starts degraded.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("climb")
    strict_mode = cfg.CONFIG_STRICT if strict is None else strict

    for problem in config_problems(cfg):
        if strict_mode:
            raise RuntimeError(problem)
        log.warning(problem)
    return True
