"""
Global error handling for the FastAPI application.

Catches MindWellError subclasses, Pydantic validation errors, and
unhandled exceptions, converting them into a consistent JSON envelope.
"""

import logging
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from mindwell.core.exceptions import MindWellError

logger = logging.getLogger(__name__)


def error_body(detail: str, code: str, timestamp: str | None = None) -> dict:
    return {
        "detail": detail,
        "code": code,
        "timestamp": timestamp or datetime.now(UTC).isoformat(),
    }


def register_error_handlers(app: FastAPI) -> None:
    """Attach exception handlers to the FastAPI application.

    1. ``MindWellError`` - domain errors, with their own status and code.
    2. ``RequestValidationError`` - malformed body / params (422).
    3. ``Exception`` - anything else (500), without leaking internals.
    """

    @app.exception_handler(MindWellError)
    async def mindwell_error_handler(_request: Request, exc: MindWellError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.detail, exc.code, exc.timestamp),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = [
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content=error_body("; ".join(messages) or "Invalid request", "VALIDATION_ERROR"),
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=error_body("Internal server error", "INTERNAL_ERROR"),
        )
