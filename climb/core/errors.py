"""
Typed application errors and the FastAPI handlers that render them.

Every error response has the same envelope:

    {"error": {"code", "message", "request_id"}, "detail": message, **details}

and echoes the request id in the x-request-id header. Quota denials add
their retry hints to `details` and their X-RateLimit-* values to `headers`.
"""

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from climb.core.logging import LOGGER_NAME, get_request_id

logger = logging.getLogger(LOGGER_NAME)


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.code
        self.status_code = status_code or self.status_code
        self.request_id = request_id
        self.details = details or {}
        self.headers = headers or {}


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class UnauthorizedError(AppError):
    code = "unauthorized"
    status_code = 401


class RateLimitError(AppError):
    code = "rate_limited"
    status_code = 429


class AIRateLimitError(RateLimitError):
    """Per-user AI quota exhausted for a feature."""
    code = "ai_rate_limited"


class ConfigurationError(AppError):
    """Provider credentials or settings are missing. Retrying cannot help."""
    code = "not_configured"
    status_code = 503


class CompletionError(AppError):
    """Transient completion provider failure (network, non-2xx, bad envelope)."""
    code = "completion_failed"
    status_code = 502


class UnparseableResponseError(AppError, ValueError):
    """No candidate in the model output parsed and validated."""
    code = "unparseable_response"
    status_code = 502


def _request_id_for(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id() or str(uuid4())


def _error_response(
    rid: str,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {
        "error": {"code": code, "message": message, "request_id": rid},
        "detail": message,
    }
    content.update(details or {})
    response = JSONResponse(status_code=status_code, content=content)
    response.headers.update(headers or {})
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _request_id_for(request)
    logger.log(
        logging.ERROR if exc.status_code >= 500 else logging.WARNING,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "status": exc.status_code, "details": {"message": exc.message}},
    )
    return _error_response(rid, exc.status_code, exc.code, exc.message, exc.details, exc.headers)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _request_id_for(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    return _error_response(rid, exc.status_code, code, str(exc.detail or "HTTP error"), headers=exc.headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are client errors: 400 with the first pydantic message."""
    rid = _request_id_for(request)
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request body") if errors else "Invalid request body"
    logger.warning("request.invalid", extra={"request_id": rid, "error_code": "validation_error", "status": 400})
    return _error_response(rid, 400, "validation_error", message)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _request_id_for(request)
    logger.error("unhandled.exception", exc_info=exc, extra={"request_id": rid, "error_code": "internal_error"})
    return _error_response(rid, 500, "internal_error", "Unexpected error")
