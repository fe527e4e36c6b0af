"""Gallery API error handling.

Provides GalleryHttpError and the FastAPI exception handlers that turn every
failure into the JSON error envelope with request_id tracing.

Global exception handlers:
- GalleryHttpError: Application-specific errors with structured envelope
- ObjectStorageError: Portable storage errors, mapped by ErrorCode
- HTTPException: FastAPI/Starlette HTTP exceptions
- RequestValidationError: Pydantic validation errors
- Exception: Catch-all for unhandled exceptions (fail closed, no stack traces)
"""

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from gallery.api.error_model import get_error_code_for_status, make_error_response
from gallery.storage.errors import ErrorCode, ObjectStorageError, UploadTooLargeError

logger = logging.getLogger(__name__)

STORAGE_ERROR_STATUS: dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_ARGUMENT: 400,
    ErrorCode.PERMISSION_DENIED: 502,
    ErrorCode.INTERNAL: 500,
}


class GalleryHttpError(Exception):
    """Application-level HTTP error with structured error envelope.

    Attributes:
        status_code: HTTP status code (e.g., 400, 404).
        code: Machine-readable error code (e.g., "MISSING_FILE").
        message: Human-readable error message.
        details: Optional dict with additional error context.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


def status_for_storage_error(exc: ObjectStorageError) -> int:
    """Return the HTTP status for a storage error's portable code."""
    return STORAGE_ERROR_STATUS.get(exc.code, 500)


async def gallery_http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for GalleryHttpError."""
    assert isinstance(exc, GalleryHttpError)

    return make_error_response(
        request,
        code=exc.code,
        message=exc.message,
        http_status=exc.status_code,
        details=exc.details,
    )


async def storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for ObjectStorageError.

    Client-side codes (NOT_FOUND, INVALID_ARGUMENT) echo the error message;
    backend failures return a generic message and are logged.
    """
    assert isinstance(exc, ObjectStorageError)

    status = status_for_storage_error(exc)
    details: dict[str, Any] | None = None

    if exc.code in (ErrorCode.NOT_FOUND, ErrorCode.INVALID_ARGUMENT):
        message = exc.message
        if isinstance(exc, UploadTooLargeError):
            details = {"limit": exc.limit, "size": exc.size}
    else:
        logger.error(
            "Storage backend failure: %s (%s)",
            type(exc).__name__,
            exc.code.value,
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        message = "Storage backend error"

    return make_error_response(
        request,
        code=exc.code.value,
        message=message,
        http_status=status,
        details=details,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for HTTPException."""
    assert isinstance(exc, HTTPException)

    code = get_error_code_for_status(exc.status_code)
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"

    return make_error_response(
        request,
        code=code,
        message=message,
        http_status=exc.status_code,
    )


async def request_validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for RequestValidationError.

    Missing or malformed form fields are a client error (400).
    """
    assert isinstance(exc, RequestValidationError)

    safe_details: list[dict[str, Any]] = []
    for error in exc.errors():
        loc = error.get("loc", ())
        safe_loc = [str(part) for part in loc if part not in ("body", "query", "path")]
        safe_details.append(
            {
                "field": ".".join(safe_loc) if safe_loc else "request",
                "message": error.get("msg", "Validation error"),
            }
        )

    return make_error_response(
        request,
        code="REQUEST_VALIDATION_FAILED",
        message="Request validation failed",
        http_status=400,
        details={"errors": safe_details} if safe_details else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler for unhandled exceptions.

    Fails closed: returns 500 with safe generic message and logs the
    exception. Never exposes stack traces to clients.
    """
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "Unhandled exception: %s",
        type(exc).__name__,
        extra={"request_id": request_id},
    )

    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message="An internal error occurred",
        http_status=500,
    )
