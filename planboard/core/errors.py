"""Domain error taxonomy for Planboard.

Every error carries the HTTP status it maps to, a stable envelope type and a
machine-readable code.  Stores, the authorization guard and the planner raise
these; the API layer renders them through ``core/api/errors.py``.

Stable envelope types:
    VALIDATION_ERROR, AUTH_ERROR, FORBIDDEN, NOT_FOUND, CONFLICT,
    PRECONDITION_FAILED, INTERNAL_ERROR
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class PlanboardError(Exception):
    """Base error for all Planboard business-rule outcomes."""

    status_code: int = 500
    error_type: str = "INTERNAL_ERROR"
    code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details


class ValidationError(PlanboardError):
    """Malformed or missing input."""

    status_code = 400
    error_type = "VALIDATION_ERROR"
    code = "invalid_input"


class InvalidCredentials(PlanboardError):
    """Unknown identifier or wrong password -- deliberately indistinguishable."""

    status_code = 400
    error_type = "AUTH_ERROR"
    code = "invalid_credentials"

    def __init__(self) -> None:
        super().__init__("Invalid email or password.")


class Unauthenticated(PlanboardError):
    """Missing, malformed, badly signed or expired token."""

    status_code = 401
    error_type = "AUTH_ERROR"
    code = "unauthenticated"


class PrincipalNotFound(Unauthenticated):
    """Token is valid but the user it names no longer exists."""

    code = "principal_not_found"


class Forbidden(PlanboardError):
    """Authenticated, but not permitted."""

    status_code = 403
    error_type = "FORBIDDEN"
    code = "forbidden"


class NotFound(PlanboardError):
    status_code = 404
    error_type = "NOT_FOUND"
    code = "not_found"


class NotAMember(NotFound):
    code = "not_a_member"


class Conflict(PlanboardError):
    """Duplicate unique field (email, username, membership)."""

    status_code = 400
    error_type = "CONFLICT"
    code = "conflict"


class CreatorRemoval(Conflict):
    code = "creator_removal"

    def __init__(self) -> None:
        super().__init__("The project creator cannot be removed from the project.")


class VersionConflict(PlanboardError):
    """If-Match version does not match the stored record."""

    status_code = 412
    error_type = "PRECONDITION_FAILED"
    code = "version_conflict"


class InternalError(PlanboardError):
    """Storage unavailable or another unexpected failure."""
