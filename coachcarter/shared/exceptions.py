"""Custom exception hierarchy and handlers."""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    status_code = 400
    code = "app_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AuthenticationException(AppException):
    """Raised when an inbound provider event fails signature verification."""

    status_code = 400
    code = "authentication_failed"


class NotFoundException(AppException):
    """Raised when entity is not found."""

    status_code = 404
    code = "not_found"


class ConflictException(AppException):
    """Raised when a unique key is already taken.

    ``field`` names the conflicting key so callers can tell a redelivered
    event (``session_id``) from a reference collision (``booking_reference``).
    """

    status_code = 409
    code = "conflict"

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class InvalidTransitionException(AppException):
    """Raised when a status compare-and-swap does not match the stored status."""

    status_code = 409
    code = "invalid_transition"


class UnauthorizedException(AppException):
    """Raised when caller has no rights for operation."""

    status_code = 403
    code = "forbidden"


class NotificationDeliveryException(AppException):
    """Raised by a single notification channel; never reaches the HTTP layer."""

    status_code = 502
    code = "notification_delivery_failed"

    def __init__(self, message: str, channel: str) -> None:
        super().__init__(message)
        self.channel = channel


class UpstreamQueryException(AppException):
    """Raised when the payment provider cannot be queried."""

    status_code = 502
    code = "upstream_error"


async def app_exception_handler(_: Request, exc: AppException) -> JSONResponse:
    """Handle custom domain exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": exc.code, "message": exc.message}},
    )


async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions in unified shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": "http_error", "message": str(exc.detail)}},
    )


async def unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "internal_error", "message": "Internal server error"}},
    )


def register_exception_handlers(app) -> None:
    """Register global exception handlers."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
