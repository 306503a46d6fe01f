"""Centralized error handling and logging for the Orda API.

This module provides:
- Global exception handlers for FastAPI
- Structured logging with correlation IDs
- Environment-aware error responses (generic in production, detailed in dev)
- Mapping of menu extraction failures to HTTP status codes
"""

import logging
import sys
import traceback
import uuid
from contextvars import ContextVar
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pythonjsonlogger.json import JsonFormatter
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from core.config import get_settings
from core.exceptions import CartNotFoundError, DomainError, MenuNotFoundError
from core.security_config import get_allowed_error_fields, is_sensitive_key
from schemas.api import ErrorResponse, ExtractionErrorBody
from services.extraction.exceptions import (
    CompressionExhaustedError,
    ExtractionFailure,
    MenuExtractionError,
    ModelStreamError,
    PersistenceError,
    UpstreamFetchError,
)
from services.extraction.exceptions import ValidationError as InputValidationError


# Context variable for correlation ID tracking across async calls
_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

logger = logging.getLogger(__name__)

ERROR_TYPE_MESSAGES: dict[type[Exception], str] = {
    MenuNotFoundError: "Menu not found",
    CartNotFoundError: "Cart not found",
    ValidationError: "Invalid request data provided",
    SQLAlchemyError: "A database error occurred",
}

# Menu extraction failures in a non-streaming request
EXTRACTION_STATUS_CODES: dict[type[MenuExtractionError], int] = {
    InputValidationError: 400,
    CompressionExhaustedError: 400,
    ExtractionFailure: 400,
    UpstreamFetchError: 502,
    ModelStreamError: 502,
    PersistenceError: 500,
}


def extraction_status_code(exc: MenuExtractionError) -> int:
    for exc_type, status_code in EXTRACTION_STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return status_code
    return 500


def get_correlation_id() -> str:
    """Get or create a correlation ID for request tracing."""
    correlation_id: str | None = _correlation_id_var.get()
    if not correlation_id:
        new_id = str(uuid.uuid4())
        _correlation_id_var.set(new_id)
        return new_id
    return correlation_id


def set_correlation_id(correlation_id: str | None) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id_var.set(correlation_id)


class StructuredLogger:
    """Structured logger that includes correlation IDs and sanitized data."""

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)

    def _log_with_context(
        self,
        level: int,
        message: str,
        extra_data: dict[str, Any] | None = None,
        exc_info: bool = False,
    ) -> None:
        correlation_id = get_correlation_id()
        log_data = {
            "correlation_id": correlation_id,
            "message": message,
            **self._sanitize_data(extra_data or {}),
        }

        # Production logs go through the JSON formatter, which reads
        # `structured_data` from the record; development logs stay readable.
        if get_settings().ENVIRONMENT == "production":
            rendered = message
        else:
            fields = " ".join(
                f"{k}={v}" for k, v in log_data.items() if k not in ("message", "correlation_id")
            )
            rendered = f"[{correlation_id}] {message}" + (f" {fields}" if fields else "")
        self.logger.log(
            level, rendered, extra={"structured_data": log_data}, exc_info=exc_info
        )

    def _sanitize_data(self, data: dict[str, Any]) -> dict[str, Any]:
        """Mask sensitive keys (recursively) before they reach the logs."""
        sanitized: dict[str, Any] = {}
        for key, value in data.items():
            if is_sensitive_key(key):
                sanitized[key] = "[REDACTED]"
            else:
                sanitized[key] = self._sanitize_value(value)
        return sanitized

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self._sanitize_data(value)
        if isinstance(value, list):
            return [self._sanitize_value(item) for item in value]
        return value

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info level message."""
        self._log_with_context(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning level message."""
        self._log_with_context(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error level message."""
        self._log_with_context(logging.ERROR, message, kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._log_with_context(logging.ERROR, message, kwargs, exc_info=True)


# Global structured logger instance
structured_logger = StructuredLogger(__name__)


class ExceptionNormalizationMiddleware(BaseHTTPMiddleware):
    """Catch any uncaught Exception and delegate to global_exception_handler."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:  # noqa: BLE001
            return await global_exception_handler(request, exc)


def _build_error_response(
    *,
    correlation_id: str,
    error_type: str,
    message: str,
    environment: str,
    details: dict[str, Any] | None = None,
    traceback_str: str | None = None,
    exception_type: str | None = None,
    validation_errors: Any | None = None,
    status_code: int = 500,
) -> JSONResponse:
    """Construct a sanitized JSON error response respecting environment rules."""
    allowed_fields = get_allowed_error_fields(environment)

    error_body: dict[str, Any] = {
        "correlation_id": correlation_id,
        "type": error_type,
    }
    if "details" in allowed_fields and details:
        error_body["details"] = details
    if "traceback" in allowed_fields and traceback_str:
        error_body["traceback"] = traceback_str
    if "exception_type" in allowed_fields and exception_type:
        error_body["exception_type"] = exception_type
    if "validation_errors" in allowed_fields and validation_errors is not None:
        error_body["validation_errors"] = validation_errors

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            message=message,
            error=error_body,
            success=False,
        ).model_dump(),
    )


def extraction_error_response(exc: MenuExtractionError) -> JSONResponse:
    """`{error}` body used by the parse-menu endpoint in JSON mode."""
    return JSONResponse(
        status_code=extraction_status_code(exc),
        content=ExtractionErrorBody(
            error=exc.message, error_code=exc.error_code
        ).model_dump(),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler providing structured, sanitized responses."""
    environment = get_settings().ENVIRONMENT
    correlation_id = get_correlation_id()

    if isinstance(exc, StarletteHTTPException):
        http_error_body: dict[str, Any] = {
            "correlation_id": correlation_id,
            "type": "http_error",
        }
        if environment != "production":
            http_error_body["details"] = {"detail": exc.detail}
            http_error_body["exception_type"] = exc.__class__.__name__
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                message="An HTTP error occurred", error=http_error_body, success=False
            ).model_dump(),
        )

    if isinstance(exc, ValidationError | RequestValidationError):
        validation_details = jsonable_encoder(exc.errors())
        structured_logger.warning("Validation error", validation_errors=validation_details)
        return _build_error_response(
            correlation_id=correlation_id,
            error_type="validation_error",
            message="Invalid request data provided",
            environment=environment,
            validation_errors=validation_details,
            status_code=422,
        )

    if isinstance(exc, MenuExtractionError):
        structured_logger.warning(
            "Menu extraction error", error_code=exc.error_code, path=request.url.path
        )
        return extraction_error_response(exc)

    if isinstance(exc, DomainError):
        structured_logger.warning(
            "Domain error", error_type=exc.__class__.__name__, domain_message=str(exc)
        )
        return _build_error_response(
            correlation_id=correlation_id,
            error_type="not_found",
            message=ERROR_TYPE_MESSAGES.get(type(exc), "Domain error"),
            environment=environment,
            status_code=404,
        )

    if isinstance(exc, SQLAlchemyError):
        structured_logger.error("Database error", error=str(exc))
        return _build_error_response(
            correlation_id=correlation_id,
            error_type="database_error",
            message=ERROR_TYPE_MESSAGES[SQLAlchemyError],
            environment=environment,
        )

    structured_logger.exception(
        "Unhandled exception", exception_type=exc.__class__.__name__, error=str(exc)
    )
    traceback_str: str | None = None
    if environment != "production":
        traceback_str = "".join(traceback.format_exception(exc)).strip()

    return _build_error_response(
        correlation_id=correlation_id,
        error_type="internal_server_error",
        message="An internal error occurred",
        environment=environment,
        traceback_str=traceback_str,
        exception_type=exc.__class__.__name__ if environment != "production" else None,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Route every error type through `global_exception_handler`."""
    app.add_exception_handler(StarletteHTTPException, global_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, global_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(MenuExtractionError, global_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(DomainError, global_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_middleware(ExceptionNormalizationMiddleware)


def setup_logging() -> None:
    """Configure application logging; idempotent."""
    settings = get_settings()
    log_level = logging.DEBUG if settings.ENVIRONMENT == "development" else logging.INFO
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    formatter: logging.Formatter
    if settings.ENVIRONMENT == "production":
        formatter = JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(log_level)
    root_logger.setLevel(log_level)
    root_logger.addHandler(handler)

    if settings.ENVIRONMENT == "production":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
