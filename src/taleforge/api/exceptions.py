"""Exception handlers for the Tale Forge offline API."""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from taleforge.storage.local_store import (
    DuplicateKeyError,
    LocalStoreError,
    RecordNotFoundError,
    StorageUnavailableError,
)
from taleforge.storage.operation_queue import (
    ExecutorNotSetError,
    InvalidTransitionError,
    OperationConflictError,
    OperationNotFoundError,
    OperationQueueError,
)

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base API error."""

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class NotFoundError(APIError):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str | None = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} '{resource_id}' not found"
        super().__init__(message, status_code=404)


class UnauthorizedError(APIError):
    """Authentication required."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status_code=401)


class ServiceUnavailableError(APIError):
    """A backing service (local storage, sync) cannot be used right now."""

    def __init__(self, message: str):
        super().__init__(message, status_code=503)


def _status_for_store_error(exc: LocalStoreError) -> int:
    if isinstance(exc, StorageUnavailableError):
        return 503
    if isinstance(exc, DuplicateKeyError):
        return 409
    if isinstance(exc, RecordNotFoundError):
        return 404
    return 500


def _status_for_queue_error(exc: OperationQueueError) -> int:
    if isinstance(exc, OperationNotFoundError):
        return 404
    if isinstance(exc, (InvalidTransitionError, OperationConflictError)):
        return 409
    if isinstance(exc, ExecutorNotSetError):
        return 503
    return 500


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Handle APIError exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.message,
            "details": exc.details,
        },
    )


async def store_error_handler(request: Request, exc: LocalStoreError) -> JSONResponse:
    """Handle errors raised by the local store."""
    status_code = _status_for_store_error(exc)
    if status_code >= 500:
        logger.error(f"Local store error on {request.url.path}: {exc}")
    details = {}
    if isinstance(exc, (DuplicateKeyError, RecordNotFoundError)):
        details = {"table": exc.table, "record_id": exc.record_id}
    return JSONResponse(
        status_code=status_code,
        content={"error": str(exc), "details": details},
    )


async def queue_error_handler(request: Request, exc: OperationQueueError) -> JSONResponse:
    """Handle errors raised by the operation queue."""
    details = {}
    if isinstance(exc, OperationNotFoundError):
        details = {"operation_id": exc.operation_id}
    return JSONResponse(
        status_code=_status_for_queue_error(exc),
        content={"error": str(exc), "details": details},
    )


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle Pydantic validation errors."""
    return JSONResponse(
        status_code=422,
        content={
            "error": "Validation error",
            "details": exc.errors(),
        },
    )


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("Unexpected error", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "details": {},
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers."""
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(LocalStoreError, store_error_handler)
    app.add_exception_handler(OperationQueueError, queue_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)
