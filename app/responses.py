"""Response envelope and error mapping.

Successful non-paginated payloads are wrapped as
``{success, data, message, timestamp}``; pages pass through as-is.
Every failure, typed or not, is rendered as
``{success: false, error, statusCode}``.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import AppError
from .schemas import ErrorResponse, isoformat_utc

logger = logging.getLogger("contacts_api.responses")

DEFAULT_MESSAGE = "Operation completed successfully"
PAGE_KEYS = {"items", "total", "page", "limit"}


def _keys(payload: Any) -> set[str]:
    if isinstance(payload, BaseModel):
        return set(payload.model_dump(by_alias=True).keys())
    if isinstance(payload, dict):
        return set(payload.keys())
    return set()


def is_paginated(payload: Any) -> bool:
    """Return True if ``payload`` has the page shape."""
    keys = _keys(payload)
    return PAGE_KEYS.issubset(keys) and bool({"totalPages", "total_pages"} & keys)


def wrap(payload: Any, message: str = DEFAULT_MESSAGE) -> Any:
    """
    Wrap a handler result in the success envelope.

    Pages and payloads that already carry ``success`` are returned
    unchanged.

    Args:
        payload: Handler result.
        message: Human readable outcome.

    Returns:
        The envelope dict, or ``payload`` itself when it must not be wrapped.
    """
    if is_paginated(payload) or "success" in _keys(payload):
        return payload
    return {
        "success": True,
        "data": payload,
        "message": message,
        "timestamp": isoformat_utc(datetime.now(timezone.utc)),
    }


def error_response(status_code: int, message: str) -> JSONResponse:
    """Build the failure envelope response."""
    body = ErrorResponse(error=message, status_code=status_code)
    return JSONResponse(
        status_code=status_code, content=body.model_dump(by_alias=True)
    )


def _describe_validation(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Validation failed"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ())[1:])
    detail = first.get("msg", "invalid value")
    return f"{location}: {detail}" if location else detail


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s - %s", request.method, request.url.path, exc.message)
    else:
        logger.info(
            "%s %s - %d - %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.message,
        )
    return error_response(exc.status_code, exc.message)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "An error occurred"
    response = error_response(exc.status_code, message)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return error_response(status.HTTP_400_BAD_REQUEST, _describe_validation(exc))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install the failure-envelope handlers on ``app``."""
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
