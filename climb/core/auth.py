"""
Identity for API routes.

Session handling lives in the gateway in front of this service; it forwards
the authenticated user as the X-User-Id header.
"""
from typing import Optional

from fastapi import Header, Request

from climb.core.errors import UnauthorizedError
from climb.core.logging import get_request_id


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Authenticated user id set by the gateway"),
) -> str:
    """Return the caller's user id or raise 401."""
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()

    rid = getattr(request.state, "request_id", None) or get_request_id()
    raise UnauthorizedError("Missing X-User-Id header", request_id=rid)


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return (
        request.headers.get("x-real-ip")
        or (request.client.host if request.client else None)
        or "0.0.0.0"
    )
