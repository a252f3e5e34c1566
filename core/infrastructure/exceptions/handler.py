import traceback
from typing import Any, Dict, List

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from notifications.domain.exceptions import (
    NotFound,
    NotificationError,
    StoreUnavailable,
    ValidationError,
)

from ..factory import get_data_sanitizer

NOTIFICATION_ERROR_STATUS = (
    (ValidationError, status.HTTP_400_BAD_REQUEST, "Invalid notification request"),
    (NotFound, status.HTTP_404_NOT_FOUND, "Resource not found"),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE, "Service unavailable"),
)


def normalize_error_detail(detail: Any) -> str | List[str] | Dict[str, Any]:
    """Normalize an error detail to a string, list of strings, or dictionary.

    Args:
        detail: The raw error detail, which can be a string, dictionary, or list.

    Returns:
        A normalized representation of the error detail.
    """
    if isinstance(detail, str):
        return detail

    if isinstance(detail, dict):
        return {str(key): str(value) for key, value in detail.items()}

    if hasattr(detail, "__iter__"):
        return [str(item) for item in detail]

    return str(detail)


def error_response(
    request: Request,
    status_code: int,
    message: str,
    error: str,
    detail: Any,
    errors: Dict[str, Any] | None = None,
) -> JSONResponse:
    """Build the error envelope shared by every failed request."""
    content = {
        "success": False,
        "message": message,
        "error": error,
        "detail": detail,
        "errors": errors if errors is not None else {"detail": detail},
        "status_code": status_code,
        "path": str(request.url),
        "method": request.method,
    }

    return JSONResponse(status_code=status_code, content=content)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for the FastAPI application.

    Maps notification errors, request validation errors and HTTP errors to a
    consistent JSON envelope. Exception text is sanitized before logging.

    Args:
        request: The incoming FastAPI request object.
        exc: The exception that was caught.

    Returns:
        A `JSONResponse` with the error envelope and matching HTTP status code.
    """
    exc_type = type(exc).__name__
    sanitizer = get_data_sanitizer()

    if hasattr(exc, "statement") and hasattr(exc, "params"):
        exc_msg = sanitizer.sanitize_sql_for_logging(exc.statement, exc.params)
    else:
        exc_msg = sanitizer.sanitize_exception_for_logging(str(exc))

    if isinstance(exc, NotificationError):
        for error_class, status_code, message in NOTIFICATION_ERROR_STATUS:
            if isinstance(exc, error_class):
                break
        else:
            status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
            message = "Internal server error"

        errors = {"detail": exc.detail}
        if isinstance(exc, ValidationError) and exc.field:
            errors[exc.field] = exc.detail

        if status_code >= 500:
            logger.error(f"🔴 {exc.code} -> {exc_msg}")
        else:
            logger.info(f"🟡 {exc.code} -> {exc_msg}")

        return error_response(
            request, status_code, message, exc.code, exc.detail, errors
        )

    if isinstance(
        exc, (PydanticValidationError, RequestValidationError, ResponseValidationError)
    ):
        errors = {}
        for error in exc.errors():
            field = ".".join(str(x) for x in error["loc"])
            errors[field] = error["msg"]

        detail = "; ".join(f"{msg} in {field}" for field, msg in errors.items())
        status_code = (
            status.HTTP_500_INTERNAL_SERVER_ERROR
            if isinstance(exc, ResponseValidationError)
            else status.HTTP_400_BAD_REQUEST
        )

        return error_response(
            request, status_code, "Validation error", "ValidationError", detail, errors
        )

    if isinstance(exc, ValueError):
        return error_response(
            request,
            status.HTTP_400_BAD_REQUEST,
            "Invalid field items",
            "ValidationError",
            str(exc),
        )

    if isinstance(exc, SQLAlchemyError):
        logger.error(f"📝 SQLAlchemyError -> {exc_type}: {exc_msg}")

        return error_response(
            request,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "Database error occurred",
            StoreUnavailable.code,
            "A database error occurred",
        )

    if isinstance(exc, (HTTPException, StarletteHTTPException)):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            message = "Resource not found"
        elif exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED:
            message = "Method not allowed"
        elif exc.status_code == status.HTTP_400_BAD_REQUEST:
            message = "Bad request"
        elif exc.status_code >= 500:
            message = "Internal server error"
        else:
            message = "HTTP error occurred"

        return error_response(
            request,
            exc.status_code,
            message,
            "HTTPError",
            normalize_error_detail(exc.detail),
        )

    # For all other unhandled exceptions, log and return a generic 500 error
    tb = traceback.extract_tb(exc.__traceback__)
    if tb:
        last_frame = tb[-1]
        location = f'File "{last_frame.filename}", line {last_frame.lineno}, in {last_frame.name}'
    else:
        location = "No traceback available"

    logger.critical(
        f"☢️ Unhandled exception -> {exc_type}: {exc_msg}\nLocation: {location}"
    )

    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        "InternalError",
        "An unexpected error occurred",
    )
