"""
healthsync/core/errors.py

Purpose: Map exceptions to the `{error, code, details}` envelope

Flow I/O failures never reach these handlers; the controller reports them in
the snapshot. What arrives here is bad input, out-of-order events, unknown
clients and bugs.
"""

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from healthsync.core.config import settings
from healthsync.core.exceptions import HealthSyncError
from healthsync.core.logging import get_logger
from healthsync.schemas.response import ErrorResponse

logger = get_logger(__name__)

GENERIC_ERROR_MESSAGE = "An internal error occurred. Please try again later."


def error_response(status_code: int, error: str, code: str, details: Optional[Any] = None) -> JSONResponse:
    body = ErrorResponse(error=error, code=code, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def jsonable_errors(errors):
    """Pydantic error dicts may carry exception objects in `ctx`; keep only what serializes."""
    return [
        {
            "loc": list(error.get("loc", ())),
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in errors
    ]


async def _handle_domain_error(request: Request, exc: HealthSyncError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return error_response(exc.status_code, exc.message, exc.code, exc.details)


async def _handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # 404 for unknown routes, 405 for wrong methods
    return error_response(exc.status_code, str(exc.detail), "HTTP_ERROR")


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(422, "Input validation failed", "VALIDATION_ERROR", jsonable_errors(exc.errors()))


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}",
        exc_info=True,
    )
    message = GENERIC_ERROR_MESSAGE if settings.is_production else str(exc)
    return error_response(500, message, "INTERNAL_ERROR")


def add_exception_handlers(app: FastAPI):
    """
    Registers the envelope handlers on the app.
    """
    app.add_exception_handler(HealthSyncError, _handle_domain_error)
    app.add_exception_handler(StarletteHTTPException, _handle_http_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(Exception, _handle_unexpected)
