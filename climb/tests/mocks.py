import time

from climb.features.ai.llm import CompletionClient, LLMResponse


class FakeClock:
    """Millisecond clock driven by the test."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.current = start

    def advance(self, ms: int):
        self.current += ms

    def __call__(self) -> int:
        return self.current


class FakeCompletionClient(CompletionClient):
    """Replays scripted outcomes: strings become responses, exceptions are raised."""

    def __init__(self, outcomes=None, *, api_key: str = "test-key"):
        super().__init__(api_key=api_key, base_url="http://llm.test/v1", model="test-model")
        self.outcomes = list(outcomes or [])
        self.calls = []

    async def complete(self, messages, *, temperature=0.7, max_tokens=2000):
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if not self.outcomes:
            raise AssertionError("FakeCompletionClient ran out of scripted outcomes")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return LLMResponse(content=outcome)


class UnconfiguredCompletionClient(CompletionClient):
    def __init__(self):
        super().__init__(api_key="", base_url="http://llm.test/v1")


class BrokenPlanStore:
    def __init__(self, exc: Exception):
        self.exc = exc

    def get_plan(self, user_id):
        raise self.exc


class SlowPlanStore:
    def __init__(self, delay: float, plan: str = "pro"):
        self.delay = delay
        self.plan = plan

    def get_plan(self, user_id):
        time.sleep(self.delay)
        return self.plan
