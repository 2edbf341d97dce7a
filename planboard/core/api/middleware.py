"""Request-ID middleware and structured request logging for the Planboard API.

Adds X-Request-ID to every response (reads from header or generates one).
Logs one compact line per request: request_id, method, path, status,
elapsed_ms, user_id.  Never logs request bodies, passwords or tokens.

Supports PLANBOARD_LOG_FORMAT=json for machine-readable JSON log lines.
"""

from __future__ import annotations

import datetime
import json
import logging
import time
import uuid
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Match

from planboard.core.api.metrics import metrics

logger = logging.getLogger("planboard.api")


def route_template(request: Request) -> str:
    """The matched route's path template (``/tasks/{task_id}``), not the raw path."""
    route = request.scope.get("route")
    if route is not None and hasattr(route, "path"):
        return route.path
    for candidate in request.app.router.routes:
        match, _ = candidate.matches(request.scope)
        if match == Match.FULL:
            return getattr(candidate, "path", "<unmatched>")
    return "<unmatched>"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Attach request ID, log metadata, update metrics counters."""

    def __init__(self, app, log_format: str = "text") -> None:  # type: ignore[no-untyped-def]
        super().__init__(app)
        self.log_format = log_format

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Request ID: use client-provided or generate
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
        request.state.request_id = request_id
        request.state.principal = None

        metrics.inc_requests_total()
        metrics.inc_inflight()

        t0 = time.monotonic()
        try:
            response = await call_next(request)
        finally:
            metrics.dec_inflight()

        elapsed_ms = int((time.monotonic() - t0) * 1000)
        route = route_template(request)
        metrics.record_route_request(
            route, request.method, elapsed_ms, is_error=response.status_code >= 400
        )

        response.headers["x-request-id"] = request_id

        principal = getattr(request.state, "principal", None)
        user_id: Optional[int] = principal.user_id if principal is not None else None

        # Structured log -- metadata only, never bodies or credentials
        if self.log_format == "json":
            log_event = {
                "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(),
                "level": "INFO",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "route": route,
                "status": response.status_code,
                "elapsed_ms": elapsed_ms,
                "user_id": user_id,
            }
            logger.info(json.dumps(log_event, separators=(",", ":")))
        else:
            logger.info(
                "request_id=%s method=%s path=%s status=%d elapsed_ms=%d user_id=%s",
                request_id,
                request.method,
                request.url.path,
                response.status_code,
                elapsed_ms,
                user_id,
            )

        return response
