"""Error Handlers — global exception handlers for the targeting API.

Invariants:
    - SwapTargetingError -> its http_status with {success:false, error, metadata}
    - RequestValidationError -> 400 VALIDATION_ERROR with field-level details
    - Exception (catch-all) -> 500 INTERNAL_ERROR, never leaks internal details

Design Decisions:
    - Three-layer handler: domain (SwapTargetingError), validation (Pydantic), catch-all
    - Extracted from main.py to keep the entry point's import fan-out small
    - Rule violations and 4xx logged at WARNING; only 5xx at ERROR
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from swap_targeting.api.request_context import error_envelope
from swap_targeting.core.errors import (
    ErrorCategory, ErrorSeverity, SwapTargetingError, TargetingErrorCode,
    user_message,
)

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""
    _register_domain_error_handler(app)
    _register_validation_error_handler(app)
    _register_generic_error_handler(app)


def _register_domain_error_handler(app: FastAPI) -> None:
    """Register targeting domain/infrastructure error handler."""

    @app.exception_handler(SwapTargetingError)
    async def targeting_error_handler(request: Request, exc: SwapTargetingError):
        """Handle all targeting domain/infrastructure errors."""
        log = logger.error if exc.http_status >= 500 else logger.warning
        log(
            f"SwapTargetingError: {exc.message}",
            extra={
                "error_code": exc.code.value,
                "path": request.url.path,
                "user_id": exc.context.user_id,
                "request_id": getattr(request.state, "request_id", None),
            },
        )
        headers = None
        if exc.context.retry_after_ms is not None:
            headers = {"Retry-After": str(max(1, -(-exc.context.retry_after_ms // 1000)))}
        return JSONResponse(
            status_code=exc.http_status,
            content=error_envelope(request, exc.to_response()),
            headers=headers,
        )


def _register_validation_error_handler(app: FastAPI) -> None:
    """Register Pydantic validation error handler."""

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError,
    ):
        """Handle Pydantic validation errors."""
        logger.warning(
            f"Validation error on {request.url.path}: {exc.errors()}",
            extra={"path": request.url.path, "error_code": "VALIDATION_ERROR"},
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_envelope(request, _build_validation_error_response(exc)),
        )


def _register_generic_error_handler(app: FastAPI) -> None:
    """Register catch-all error handler."""

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        """Catch-all — never leaks internal details."""
        logger.error(
            f"Unhandled exception on {request.url.path}: {exc}",
            exc_info=True,
            extra={"path": request.url.path, "error_code": "INTERNAL_ERROR"},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_envelope(request, {
                "success": False,
                "error": {
                    "code": TargetingErrorCode.INTERNAL_ERROR.value,
                    "message": user_message(TargetingErrorCode.INTERNAL_ERROR),
                    "category": ErrorCategory.INTERNAL.value,
                    "severity": ErrorSeverity.CRITICAL.value,
                    "timestamp": _now(),
                },
            }),
        )


def _build_validation_error_response(exc: RequestValidationError) -> dict:
    """Build structured validation error response."""
    return {
        "success": False,
        "error": {
            "code": TargetingErrorCode.VALIDATION_ERROR.value,
            "message": user_message(TargetingErrorCode.VALIDATION_ERROR),
            "category": ErrorCategory.VALIDATION.value,
            "severity": ErrorSeverity.ERROR.value,
            "timestamp": _now(),
            "details": [
                {
                    "field": ".".join(str(loc) for loc in e["loc"]),
                    "message": e["msg"],
                    "type": e["type"],
                }
                for e in exc.errors()
            ],
        },
    }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
