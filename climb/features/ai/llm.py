"""
Completion client for OpenAI-compatible chat APIs.

call_llm_with_retry is the only entry point routes should use: it bounds
provider calls to max_retries + 1 and backs off linearly between attempts.
Missing credentials fail fast and are never retried.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional

import httpx

from climb.core.config import settings
from climb.core.errors import CompletionError, ConfigurationError
from climb.core.logging import log_event

DEFAULT_MODEL = "gpt-4o"
# Preview models that were retired upstream; fall back to the default.
_RETIRED_MODELS = re.compile(r"gpt-4-turbo-preview|gpt-4-1106-preview", re.IGNORECASE)

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class LLMMessage:
    role: Role
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class LLMResponse:
    content: str
    usage: Optional[Dict[str, Any]] = None


def resolve_model(configured: Optional[str]) -> str:
    if configured and not _RETIRED_MODELS.search(configured):
        return configured
    return DEFAULT_MODEL


class CompletionClient:
    """Thin async wrapper over POST {base_url}/chat/completions."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.LLM_API_KEY
        self.base_url = (base_url or settings.LLM_BASE_URL).rstrip("/")
        self.model = resolve_model(model if model is not None else settings.LLM_MODEL)
        self.timeout = timeout if timeout is not None else settings.LLM_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def complete(
        self,
        messages: List[LLMMessage],
        *,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> LLMResponse:
        if not self.api_key:
            raise ConfigurationError("LLM_API_KEY is not configured")

        body = {
            "model": self.model,
            "messages": [m.to_dict() for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.base_url}/chat/completions", json=body, headers=headers)
        except httpx.HTTPError as exc:
            raise CompletionError(f"LLM request failed: {exc.__class__.__name__}: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise CompletionError(f"LLM API error ({response.status_code}): {response.text[:500]}")

        try:
            data = response.json()
            message = data["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise CompletionError("LLM API returned a malformed response body") from exc

        return LLMResponse(content=(message or {}).get("content") or "", usage=data.get("usage"))


async def call_llm_with_retry(
    client: CompletionClient,
    messages: List[LLMMessage],
    max_retries: int = 2,
    *,
    temperature: float = 0.7,
    max_tokens: int = 2000,
    retry_delay: Optional[float] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> LLMResponse:
    """Call the provider, retrying transient failures.

    After failed attempt i (0-based) the loop waits retry_delay * (i + 1)
    before the next one. The last error is raised once the budget is spent.
    """
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")
    delay = settings.LLM_RETRY_DELAY_SECONDS if retry_delay is None else retry_delay

    last_error: Optional[Exception] = None
    for attempt in range(max_retries + 1):
        try:
            return await client.complete(messages, temperature=temperature, max_tokens=max_tokens)
        except ConfigurationError:
            raise
        except Exception as exc:
            last_error = exc
            log_event(
                "warning",
                "llm.attempt_failed",
                event_type="llm_retry",
                error_code=getattr(exc, "code", exc.__class__.__name__),
                extra={"attempt": attempt + 1, "max_attempts": max_retries + 1, "error": exc},
            )
            if attempt < max_retries:
                await sleep(delay * (attempt + 1))

    raise last_error or CompletionError("Failed to call LLM")
