"""Bearer-token authentication middleware for the Planboard API.

Every route except the public ones requires ``Authorization: Bearer pbt_...``.
A valid token attaches a ``Principal`` to ``request.state.principal``; any
failure (missing header, bad signature, expired, deleted user) is a uniform
401 envelope.
"""

from __future__ import annotations

import logging

from fastapi import Request as FastAPIRequest
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from planboard.core.api.errors import make_error_envelope
from planboard.core.api.metrics import metrics
from planboard.core.errors import Unauthenticated
from planboard.core.security.guard import Principal

logger = logging.getLogger("planboard.auth")

# Paths that never require auth.
PUBLIC_PATHS = frozenset({
    "/health",
    "/metrics",
    "/docs",
    "/docs/oauth2-redirect",
    "/openapi.json",
    "/auth/register",
    "/auth/login",
})


def _reject(request_id: str, exc: Unauthenticated) -> JSONResponse:
    metrics.record_error(exc.error_type)
    return JSONResponse(
        status_code=401,
        content=make_error_envelope(exc.error_type, exc.message, request_id, code=exc.code),
        headers={"WWW-Authenticate": "Bearer"},
    )


class BearerTokenMiddleware(BaseHTTPMiddleware):
    """Validate session tokens through ``app.state.auth_service``."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Public endpoints and CORS preflight skip auth.
        if request.url.path in PUBLIC_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        request_id = getattr(request.state, "request_id", None) or "?"

        auth_header = request.headers.get("authorization", "")
        if not auth_header.startswith("Bearer "):
            logger.warning(
                "auth_rejected request_id=%s path=%s reason=missing_token",
                request_id,
                request.url.path,
            )
            return _reject(
                request_id,
                Unauthenticated("Missing or invalid Authorization header.", code="missing_token"),
            )

        token = auth_header[7:].strip()  # strip "Bearer "
        try:
            principal = request.app.state.auth_service.validate_token(token)
        except Unauthenticated as exc:
            logger.warning(
                "auth_rejected request_id=%s path=%s reason=%s",
                request_id,
                request.url.path,
                exc.code,
            )
            return _reject(request_id, exc)

        request.state.principal = principal
        return await call_next(request)


def current_principal(request: FastAPIRequest) -> Principal:
    """FastAPI dependency: the principal attached by BearerTokenMiddleware."""
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise Unauthenticated("Authentication required.", code="missing_token")
    return principal
