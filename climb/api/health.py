"""
Health endpoints.

Liveness never touches dependencies; readiness reports which providers are
configured without exposing secrets.
"""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz(request: Request):
    client = request.app.state.completion_client
    meter = request.app.state.usage_meter
    return {
        "status": "ok",
        "llm_configured": client.configured,
        "tracked_quota_keys": len(meter.store),
        "tracked_guard_keys": len(request.app.state.request_guard.store),
    }
