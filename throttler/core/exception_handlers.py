"""Global exception handlers for consistent error responses.

- AppError subclasses map to 400 / 403 / 404 / 500
- Unexpected exceptions map to a generic 500 with no internals leaked
- Every body carries the request id for correlation

Throttling is not routed through here: a 429 is built directly by
``throttler.core.rate_limit.deny``.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from throttler.core.errors import (
    AppError,
    AuthenticationAppError,
    ConfigurationAppError,
    LimiterNotFoundAppError,
)
from throttler.core.logging import get_request_id

logger = logging.getLogger(__name__)


def _status_for(exc: AppError) -> int:
    """Map an AppError subclass to its HTTP status (400 for plain validation errors)."""
    if isinstance(exc, AuthenticationAppError):
        return 403
    if isinstance(exc, LimiterNotFoundAppError):
        return 404
    if isinstance(exc, ConfigurationAppError):
        return 500
    return 400


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError as ``{"error": {code, message, request_id, details?}}``."""
    status_code = _status_for(exc)

    logger.warning(
        "app_error_handled",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "status_code": status_code,
            "has_details": bool(exc.details),
        },
    )

    error_content = {
        "code": exc.code,
        "message": exc.message,
        "request_id": get_request_id(),
    }
    if exc.details:
        error_content["details"] = exc.details

    return JSONResponse(status_code=status_code, content={"error": error_content})


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Safety net for anything unhandled; logs details, returns a generic 500."""
    logger.error(
        "unhandled_exception",
        extra={
            "error_type": type(exc).__name__,
            "error_msg": str(exc),
            "request_path": request.url.path,
            "request_method": request.method,
        },
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "internal_server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "request_id": get_request_id(),
            }
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the AppError and catch-all handlers on ``app``.

    Args:
        app: FastAPI application instance.
    """
    app.exception_handler(AppError)(app_error_handler)
    app.exception_handler(Exception)(general_exception_handler)
