"""
Centralized API Error Handling
Maps sync exceptions and HTTP errors onto the standard error envelope
"""

import logging
import uuid
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from techsync.api.schemas import APIErrorDetail, APIErrorResponse, ErrorCode
from techsync.core.exceptions import (
    ConfigurationError, DatastoreError, DeliveryError, PayloadValidationError,
    QueueItemNotFoundError, QueueStoreError, SyncError
)

logger = logging.getLogger(__name__)


# Most specific first
SYNC_ERROR_MAPPING = (
    (PayloadValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY, ErrorCode.VALIDATION_ERROR),
    (QueueItemNotFoundError, status.HTTP_404_NOT_FOUND, ErrorCode.NOT_FOUND),
    (QueueStoreError, status.HTTP_503_SERVICE_UNAVAILABLE, ErrorCode.QUEUE_UNAVAILABLE),
    (ConfigurationError, status.HTTP_503_SERVICE_UNAVAILABLE, ErrorCode.NOT_CONFIGURED),
    (DatastoreError, status.HTTP_502_BAD_GATEWAY, ErrorCode.DATASTORE_ERROR),
    (DeliveryError, status.HTTP_502_BAD_GATEWAY, ErrorCode.DELIVERY_ERROR),
)

HTTP_ERROR_CODES = {
    401: ErrorCode.UNAUTHORIZED,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
}


def error_response(message: str, error_code: ErrorCode, status_code: int,
                   details: Optional[List[APIErrorDetail]] = None,
                   headers: Optional[dict] = None) -> JSONResponse:
    """Create a JSONResponse with the standard error envelope"""
    body = APIErrorResponse(
        error=message,
        error_code=error_code,
        details=details,
        request_id=str(uuid.uuid4())
    )
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body.model_dump()),
        headers=headers
    )


async def sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
    for exc_type, status_code, error_code in SYNC_ERROR_MAPPING:
        if isinstance(exc, exc_type):
            break
    else:
        status_code, error_code = status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorCode.INTERNAL_ERROR

    details = None
    if isinstance(exc, PayloadValidationError):
        details = [APIErrorDetail(field=exc.field, message=str(exc), code="invalid_payload")]

    log = logger.error if status_code >= 500 else logger.warning
    log(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc}")

    return error_response(str(exc), error_code, status_code, details=details)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    error_code = HTTP_ERROR_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    return error_response(str(exc.detail), error_code, exc.status_code, headers=getattr(exc, 'headers', None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors"""
    field_errors = []
    for error in exc.errors():
        field_path = " -> ".join(str(loc) for loc in error["loc"])
        field_errors.append(APIErrorDetail(field=field_path, message=error["msg"], code=error["type"]))

    logger.warning(f"Validation error on {request.url.path}: {len(field_errors)} field error(s)")

    return error_response(
        "Validation failed", ErrorCode.VALIDATION_ERROR,
        status.HTTP_422_UNPROCESSABLE_ENTITY, details=field_errors
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler"""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return error_response(
        "Internal server error", ErrorCode.INTERNAL_ERROR, status.HTTP_500_INTERNAL_SERVER_ERROR
    )


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(SyncError, sync_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
