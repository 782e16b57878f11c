# climb/conftest.py
import pytest
from fastapi.testclient import TestClient

from climb.core.config import settings
from climb.features.billing.service import InMemoryPlanStore
from climb.tests.mocks import FakeClock, FakeCompletionClient


@pytest.fixture(autouse=True)
def no_retry_delay(monkeypatch):
    """Retry backoff sleeps would only slow the suite down."""
    monkeypatch.setattr(settings, "LLM_RETRY_DELAY_SECONDS", 0.0)
    monkeypatch.setattr(settings, "ROLE_PARSE_FALLBACK", "empty")
    yield


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def plan_store():
    return InMemoryPlanStore()


@pytest.fixture
def make_client(fake_clock, plan_store):
    """Build a TestClient around a fresh app wired to fakes."""

    def _make(outcomes=None, completion_client=None):
        from climb.main import create_app

        llm = completion_client or FakeCompletionClient(outcomes)
        app = create_app(plan_store=plan_store, completion_client=llm, time_fn=fake_clock)
        return TestClient(app), app, llm

    return _make
