"""Domain exceptions and the handlers that turn them into JSON responses.

The ledger and registry services raise the subclasses of
``AgriTraceException`` defined here; FastAPI handlers registered by
``register_exception_handlers`` map them to a consistent error body:

    {"error": {"code": "INSUFFICIENT_QUANTITY", "message": "..."}}
"""

import logging
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AgriTraceException(Exception):
    """Base exception for AgriTrace application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(AgriTraceException):
    """Malformed input: unknown enum value, non-positive quantity, bad coordinates."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="VALIDATION_ERROR",
        )


class AuthorizationError(AgriTraceException):
    """Actor is not allowed to perform the operation."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="PERMISSION_DENIED",
        )


class NotFoundError(AgriTraceException):
    """Unknown batch, transaction or identity reference."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class InsufficientQuantityError(AgriTraceException):
    """Requested transfer exceeds the batch's remaining quantity."""

    def __init__(self, requested: float, available: float | None = None):
        self.requested = requested
        self.available = available
        if available is None:
            message = f"Insufficient quantity available for transfer of {requested:g}"
        else:
            message = (
                f"Insufficient quantity available: requested {requested:g}, "
                f"remaining {available:g}"
            )
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="INSUFFICIENT_QUANTITY",
        )


class DuplicateReviewError(AgriTraceException):
    """Reviewer has already reviewed this batch."""

    def __init__(self, batch_id: str, reviewer_id: str):
        super().__init__(
            message=f"Reviewer {reviewer_id} has already reviewed batch {batch_id}",
            status_code=status.HTTP_409_CONFLICT,
            error_code="DUPLICATE_REVIEW",
        )


class InvalidStateTransitionError(AgriTraceException):
    """Transaction status change is not allowed by the state machine."""

    def __init__(self, current: str, requested: str, message: str | None = None):
        self.current = current
        self.requested = requested
        super().__init__(
            message=message or f"Cannot move transaction from '{current}' to '{requested}'",
            status_code=status.HTTP_409_CONFLICT,
            error_code="INVALID_STATE_TRANSITION",
        )


# ── Response body ────────────────────────────────────────────

def error_body(code: str, message: str, details: dict | list | None = None) -> dict:
    body = {"error": {"code": code, "message": message}}
    if details:
        body["error"]["details"] = details
    return body


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_body(error_code, message, details),
    )


def _where(request: Request) -> str:
    return f"{request.method} {request.url.path}"


# ── Handlers ─────────────────────────────────────────────────

async def agritrace_exception_handler(
    request: Request,
    exc: AgriTraceException,
) -> JSONResponse:
    """Domain errors raised by the registry, ledger and provenance services."""
    # Lost quantity races and illegal transitions are expected traffic
    logger.warning("%s on %s: %s", exc.error_code, _where(request), exc.message)
    return create_error_response(exc.status_code, exc.message, exc.error_code)


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Auth failures (401/403 from ``auth.deps``) and routing errors."""
    if exc.status_code >= 500:
        logger.error("HTTP %d on %s: %s", exc.status_code, _where(request), exc.detail)

    response = create_error_response(
        exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}",
    )
    if getattr(exc, "headers", None):
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, PydanticValidationError],
) -> JSONResponse:
    """Request bodies and query parameters that fail schema validation."""
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning("Invalid request on %s: %d error(s)", _where(request), len(errors))
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "VALIDATION_ERROR",
        details={"errors": errors},
    )


# (fragments that must all appear in the driver message, status, code, message)
_INTEGRITY_RULES = (
    (("unique", "batch_reviews"), status.HTTP_409_CONFLICT, "DUPLICATE_REVIEW",
     "Reviewer has already reviewed this batch"),
    (("unique",), status.HTTP_409_CONFLICT, "DUPLICATE_RECORD",
     "A record with this value already exists"),
    (("foreign key",), status.HTTP_422_UNPROCESSABLE_ENTITY, "FOREIGN_KEY_VIOLATION",
     "Referenced batch, transaction or identity does not exist"),
    (("not null",), status.HTTP_422_UNPROCESSABLE_ENTITY, "NULL_VALUE_NOT_ALLOWED",
     "Required field is missing"),
)


async def database_exception_handler(
    request: Request,
    exc: IntegrityError,
) -> JSONResponse:
    """Constraint violations that slipped past service-level validation."""
    detail = str(getattr(exc, "orig", exc)).lower()
    logger.error("Integrity error on %s: %s", _where(request), detail)

    for fragments, status_code, code, message in _INTEGRITY_RULES:
        if all(f in detail for f in fragments):
            return create_error_response(status_code, message, code)
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "Database constraint violation", "INTEGRITY_ERROR",
    )


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    """Connection loss or lock timeouts; the request's transaction was rolled back."""
    logger.error("Database unavailable on %s: %s", _where(request), exc)
    return create_error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Database temporarily unavailable. Please try again.",
        "DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    logger.error("Unhandled exception on %s: %s", _where(request), exc, exc_info=True)
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        "INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register every handler above on the FastAPI app."""
    app.add_exception_handler(AgriTraceException, agritrace_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, database_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
