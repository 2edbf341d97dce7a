"""Normalized error envelope for the Planboard API.

Every API error follows:
    {"error": {"type": "<TYPE>", "code": "<code>", "message": "<human readable>",
               "request_id": "<id>", "details": [...]}}

``details`` is present only for validation failures.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from starlette.responses import JSONResponse

from planboard.core.api.metrics import metrics
from planboard.core.errors import InternalError, PlanboardError
from planboard.core.redaction import redact_text
from planboard.core.store.storage import StorageError

logger = logging.getLogger("planboard.api")

_STATUS_TO_TYPE: Dict[int, str] = {
    400: "VALIDATION_ERROR",
    401: "AUTH_ERROR",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    412: "PRECONDITION_FAILED",
    422: "VALIDATION_ERROR",
}


def make_error_envelope(
    error_type: str,
    message: str,
    request_id: Optional[str] = None,
    *,
    code: Optional[str] = None,
    details: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """Build the standard error envelope dict."""
    body: Dict[str, Any] = {
        "type": error_type,
        "code": code or error_type.lower(),
        "message": message,
        "request_id": request_id,
    }
    if details:
        body["details"] = details
    return {"error": body}


def error_response(
    status_code: int,
    error_type: str,
    message: str,
    request_id: Optional[str] = None,
    **kwargs: Any,
) -> JSONResponse:
    metrics.record_error(error_type)
    return JSONResponse(
        status_code=status_code,
        content=make_error_envelope(error_type, redact_text(message), request_id, **kwargs),
    )


async def planboard_error_handler(request: Request, exc: PlanboardError) -> JSONResponse:
    """Render a domain error with its own status, type and code."""
    request_id = getattr(request.state, "request_id", None)
    if exc.status_code >= 500:
        logger.error("request_id=%s internal error: %s", request_id, redact_text(exc.message))
        message = "Internal server error."
    else:
        message = exc.message
    return error_response(
        exc.status_code,
        exc.error_type,
        message,
        request_id,
        code=exc.code,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert HTTPException (unknown route, bad method) to the envelope."""
    request_id = getattr(request.state, "request_id", None)
    error_type = _STATUS_TO_TYPE.get(exc.status_code, "INTERNAL_ERROR")

    if isinstance(exc.detail, str):
        message = exc.detail
    else:
        message = str(exc.detail)

    return error_response(exc.status_code, error_type, message, request_id)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert Pydantic validation errors to a 400 envelope with field details."""
    request_id = getattr(request.state, "request_id", None)
    details: List[Dict[str, Any]] = []
    parts = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", []) if part != "body"]
        msg = err.get("msg", "")
        details.append({"field": ".".join(loc), "message": msg})
        parts.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    message = "; ".join(parts) or "Invalid request."

    return error_response(
        400, "VALIDATION_ERROR", message, request_id, code="invalid_input", details=details
    )


async def storage_exception_handler(request: Request, exc: StorageError) -> JSONResponse:
    """Storage unavailable: log detail server-side, sanitized 500 to the client."""
    request_id = getattr(request.state, "request_id", None)
    logger.error("request_id=%s storage failure: %s", request_id, redact_text(str(exc)))
    return error_response(
        InternalError.status_code,
        InternalError.error_type,
        "Internal server error.",
        request_id,
        code="storage_unavailable",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions -- return 500 with envelope."""
    request_id = getattr(request.state, "request_id", None)
    logger.exception("request_id=%s unhandled exception", request_id)
    return error_response(500, "INTERNAL_ERROR", "Internal server error.", request_id)
