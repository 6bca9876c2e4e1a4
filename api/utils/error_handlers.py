"""
Global Exception Handlers

Maps every exception that escapes a route to a standardized ErrorResponse
body with a matching status code, and logs it with request context.

Design Considerations:
- One error body shape for HTTP, validation, lookup and sync failures
- Unexpected errors are sanitized; only the exception type is returned
- Server errors log with traceback, client errors log as warnings
"""

import json
import logging
import traceback
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse as StarletteJSONResponse

from api.models.errors import ErrorResponse, ValidationErrorItem, ValidationErrorResponse
from src.email_processing.errors import SyncError

logger = logging.getLogger(__name__)


class DateTimeEncoder(json.JSONEncoder):
    """JSON encoder that writes datetimes as ISO 8601."""
    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


def serialize_json(obj):
    return json.dumps(obj, cls=DateTimeEncoder)


class JSONResponse(StarletteJSONResponse):
    """JSONResponse that handles datetime serialization."""
    def render(self, content):
        return serialize_json(content).encode("utf-8")


def add_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, pydantic_validation_handler)
    app.add_exception_handler(LookupError, lookup_error_handler)
    app.add_exception_handler(SyncError, sync_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered")


def _error_body(message: str, error_code: str, details=None) -> dict:
    return ErrorResponse(
        status="error",
        message=message,
        error_code=error_code,
        details=details,
        timestamp=datetime.now(timezone.utc)
    ).model_dump()


def _validation_items(errors) -> list:
    return [
        ValidationErrorItem(
            loc=[str(loc_item) for loc_item in error["loc"]],
            msg=error["msg"],
            type=error["type"]
        )
        for error in errors
    ]


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    log_exception(request, exc, exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail), f"HTTP_{exc.status_code}", getattr(exc, "details", None))
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle request validation errors with field-level detail.

    Args:
        request: Request that caused exception
        exc: Validation exception

    Returns:
        422 response listing each failed field
    """
    log_exception(request, exc, status.HTTP_422_UNPROCESSABLE_ENTITY)

    error_response = ValidationErrorResponse(
        status="error",
        message="Request validation error",
        error_code="VALIDATION_ERROR",
        validation_errors=_validation_items(exc.errors()),
        timestamp=datetime.now(timezone.utc)
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response.model_dump()
    )


async def pydantic_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    log_exception(request, exc, status.HTTP_422_UNPROCESSABLE_ENTITY)

    error_response = ValidationErrorResponse(
        status="error",
        message="Data validation error",
        error_code="VALIDATION_ERROR",
        validation_errors=_validation_items(exc.errors()),
        timestamp=datetime.now(timezone.utc)
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response.model_dump()
    )


async def lookup_error_handler(request: Request, exc: LookupError) -> JSONResponse:
    """Missing messages and policies surface as 404."""
    log_exception(request, exc, status.HTTP_404_NOT_FOUND)
    message = exc.args[0] if exc.args else "Resource not found"
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=_error_body(str(message), "NOT_FOUND")
    )


async def sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
    """A failed mailbox sync returns its single user-facing message."""
    log_exception(request, exc, status.HTTP_502_BAD_GATEWAY)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=_error_body(str(exc), "SYNC_FAILED")
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all unhandled exceptions with a sanitized error body.

    Args:
        request: Request that caused exception
        exc: Unhandled exception

    Returns:
        500 response naming only the exception type
    """
    log_exception(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, include_traceback=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(
            "An unexpected error occurred",
            "INTERNAL_SERVER_ERROR",
            {"type": exc.__class__.__name__}
        )
    )


def log_exception(request: Request, exc: Exception, status_code: int,
                  include_traceback: bool = False) -> None:
    """
    Log exception with request context at a severity matching the status code.

    Args:
        request: Request that caused exception
        exc: Exception instance
        status_code: HTTP status code
        include_traceback: Whether to include full traceback
    """
    if status_code >= 500:
        log_level = logging.ERROR
    elif status_code >= 400:
        log_level = logging.WARNING
    else:
        log_level = logging.INFO

    error_details = {
        "status_code": status_code,
        "error_type": exc.__class__.__name__,
        "error_message": str(exc),
        "client_host": request.client.host if request.client else "unknown"
    }
    if include_traceback:
        error_details["traceback"] = traceback.format_exc()

    logger.log(
        log_level,
        f"Exception during request to {request.method} {request.url.path}",
        extra={"error_details": error_details}
    )
