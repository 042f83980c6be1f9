"""
Exception handlers for the FastAPI application.

Maps the domain error taxonomy onto HTTP responses with one body shape:
{"error": true, "message": ..., "details": {...}, "status_code": N}
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from domain.errors import (
    AuthorizationError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    RetryableError,
    TransactionAbortError,
    TransitCoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _error_response(
    status_code: int,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "message": message,
            "details": details or {},
            "status_code": status_code,
        },
        headers=headers,
    )


def status_for(exc: TransitCoreError) -> int:
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, AuthorizationError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, RetryableError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def transit_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle every TransitCoreError subclass."""
    if not isinstance(exc, TransitCoreError):
        return await generic_exception_handler(request, exc)

    status_code = status_for(exc)

    if isinstance(exc, RetryableError):
        logger.warning(f"Retryable failure on {request.url.path}: {exc.message}")
        return _error_response(
            status_code,
            exc.message,
            exc.details,
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    if isinstance(exc, ConfigurationError):
        logger.error(f"Configuration error on {request.url.path}: {exc.message}", extra={"details": exc.details})
        return _error_response(status_code, exc.message, exc.details)

    if isinstance(exc, TransactionAbortError) or status_code >= 500:
        logger.error(f"Transaction aborted on {request.url.path}: {exc.message}", extra={"details": exc.details})
        return _error_response(status_code, "Internal server error")

    return _error_response(status_code, exc.message, exc.details)


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Malformed request bodies are client errors like any other ValidationError."""
    if not isinstance(exc, RequestValidationError):
        return _error_response(status.HTTP_400_BAD_REQUEST, str(exc))

    fields = {}
    for error in exc.errors():
        loc = [str(part) for part in error["loc"] if part not in ("body", "query", "path", "header")]
        fields[".".join(loc) or "body"] = error["msg"]

    logger.warning(f"Validation error on {request.url.path}: {fields}")
    return _error_response(status.HTTP_400_BAD_REQUEST, "Validation error", {"fields": fields})


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TransitCoreError, transit_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
