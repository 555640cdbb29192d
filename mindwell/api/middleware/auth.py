"""
Bearer token authentication for the journal API.

Resolves ``Authorization: Bearer <token>`` to a user id via
``settings.auth_tokens`` and stores it on ``request.state.user_id``. With no
tokens configured (development mode) every request acts as
``settings.default_user_id``. Health and docs endpoints are never guarded.
"""

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from mindwell.api.middleware.error_handler import error_body
from mindwell.core.config import get_settings
from mindwell.core.exceptions import AuthenticationError


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Attach the caller's user id to every /api/v1/ request."""

    _SKIP_PATHS = ("/health", "/api/v1/health", "/docs", "/openapi.json", "/redoc")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        settings = get_settings()
        path = request.url.path

        if not path.startswith("/api/v1/") or path in self._SKIP_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        if not settings.auth_tokens:
            request.state.user_id = settings.default_user_id
            return await call_next(request)

        auth_header = request.headers.get("authorization", "")
        scheme, _, token = auth_header.partition(" ")
        user_id = settings.auth_tokens.get(token.strip()) if scheme.lower() == "bearer" else None
        if user_id is None:
            exc = AuthenticationError()
            return JSONResponse(
                status_code=exc.status_code,
                content=error_body(exc.detail, exc.code, exc.timestamp),
                headers={"WWW-Authenticate": "Bearer"},
            )

        request.state.user_id = user_id
        return await call_next(request)
