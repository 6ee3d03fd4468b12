"""
LandlordComply - Error Handling

Domain exceptions raised by the services and the handlers that turn them
(and anything else that escapes a route) into consistent JSON bodies:

    {"error": "<code>", "message": "<human readable>", ...extra}

Every error is scoped to the request that raised it; nothing is retried.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


# =============================================================================
# Domain Exceptions
# =============================================================================

class LandlordComplyError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error: str = "bad_request"

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "message": self.message, **self.extra}


class NotFoundError(LandlordComplyError):
    """No jurisdiction / rule set / case / child record matched."""

    status_code = status.HTTP_404_NOT_FOUND
    error = "not_found"


class InvalidTransitionError(LandlordComplyError):
    """Requested status edge is not in the transition table."""

    error = "invalid_transition"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Invalid status transition from {current} to {requested}",
            current=current,
            requested=requested,
        )
        self.current = current
        self.requested = requested


class InvalidRequestError(LandlordComplyError):
    """Input that parses but cannot be acted on (bad email, expired draft)."""

    error = "invalid_request"


class UnsupportedJurisdictionError(LandlordComplyError):
    """No active jurisdiction covers the address."""

    error = "jurisdiction_not_supported"


class MissingPreconditionError(LandlordComplyError):
    """A required field was not supplied (e.g. delivery method)."""

    error = "missing_precondition"


class BlockedError(LandlordComplyError):
    """Outstanding export-blocking checklist items."""

    error = "blocked"

    def __init__(self, blockers: list[str], message: Optional[str] = None):
        super().__init__(
            message or "Cannot proceed - there are incomplete required checklist items",
            blockers=blockers,
        )
        self.blockers = blockers


class RateLimitedError(LandlordComplyError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error = "rate_limit_exceeded"

    def __init__(self, message: str, retry_after: Optional[int] = None):
        super().__init__(message, retry_after=retry_after)
        self.retry_after = retry_after


class ServiceUnavailableError(LandlordComplyError):
    """An external provider (AI, email) is not configured or failed."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "service_unavailable"


# =============================================================================
# Exception Handlers
# =============================================================================

_HTTP_ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
    413: "payload_too_large",
    429: "rate_limit_exceeded",
    500: "internal_error",
    503: "service_unavailable",
}


async def domain_exception_handler(request: Request, exc: LandlordComplyError) -> JSONResponse:
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.error, exc.message)
    headers = None
    if isinstance(exc, RateLimitedError) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Map HTTPException to the same body shape; dict details are passed through."""
    if exc.status_code >= 500:
        logger.error("HTTP %s on %s: %s", exc.status_code, request.url.path, exc.detail)

    if isinstance(exc.detail, dict):
        content = {"error": _HTTP_ERROR_CODES.get(exc.status_code, "error"), **exc.detail}
        content.setdefault("message", str(exc.detail))
    else:
        content = {
            "error": _HTTP_ERROR_CODES.get(exc.status_code, "error"),
            "message": str(exc.detail),
        }
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for error in exc.errors():
        loc = error.get("loc", [])
        details.append({
            "field": ".".join(str(x) for x in loc) if loc else None,
            "message": error.get("msg", "Validation error"),
            "code": error.get("type", "validation"),
        })

    logger.warning("Validation error on %s: %d errors", request.url.path, len(details))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "message": "Request validation failed",
            "details": details,
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the traceback, return a generic 500."""
    logger.error(
        "Unhandled exception on %s %s: %s: %s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_error", "message": "An unexpected error occurred"},
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the app."""
    app.add_exception_handler(LandlordComplyError, domain_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
