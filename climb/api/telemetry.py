"""Client telemetry intake, guarded per client IP.

The guard is checked before the body is read, so malformed or invalid
payloads count toward the caller's window like any other request.
"""

import json
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from pydantic import Field
from pydantic import ValidationError as SchemaValidationError

from climb.core.auth import get_client_ip
from climb.core.config import settings
from climb.core.errors import RateLimitError, ValidationError
from climb.core.logging import get_request_id, log_event
from climb.core.ratelimit import FixedWindowLimiter
from climb.models import CamelModel

router = APIRouter(prefix="/api/telemetry", tags=["telemetry"])


class TelemetryEvent(CamelModel):
    event: str = Field(min_length=2, max_length=120)
    category: Literal["navigation", "ai", "funnel", "workspace", "security", "performance"] = "navigation"
    path: Optional[str] = Field(default=None, min_length=1, max_length=260)
    value: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    workspace_id: Optional[UUID] = None


def get_request_guard(request: Request) -> FixedWindowLimiter:
    return request.app.state.request_guard


async def _read_event(request: Request) -> TelemetryEvent:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("Invalid JSON body")
    try:
        return TelemetryEvent.model_validate(payload)
    except SchemaValidationError as exc:
        errors = exc.errors()
        raise ValidationError(errors[0].get("msg", "Invalid telemetry event") if errors else "Invalid telemetry event")


@router.post("/event")
async def telemetry_event_endpoint(
    request: Request,
    guard: FixedWindowLimiter = Depends(get_request_guard),
):
    ip_address = get_client_ip(request)
    decision = guard.check(f"telemetry:{ip_address}", settings.TELEMETRY_RATE_LIMIT, settings.TELEMETRY_WINDOW_MS)
    if not decision.allowed:
        rid = getattr(request.state, "request_id", None) or get_request_id()
        raise RateLimitError(
            "Rate limit exceeded",
            request_id=rid,
            details={"resetAt": decision.reset_at},
            headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": str(decision.reset_at // 1000)},
        )

    body = await _read_event(request)

    user_id = request.headers.get("X-User-Id")
    if user_id:
        log_event(
            "info",
            "telemetry.event",
            user_id=user_id,
            event_type=f"telemetry.{body.category}.{body.event}",
            extra={
                "path": body.path,
                "value": body.value,
                "workspace_id": body.workspace_id,
                "ip_address": ip_address,
                "user_agent": request.headers.get("user-agent"),
            },
        )

    return {"success": True, "remaining": decision.remaining}
