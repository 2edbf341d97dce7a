"""Typed input structs: creation payloads and per-entity patches.

Patches carry only optional fields.  ``changes()`` returns exactly the fields
the caller supplied, so a merge never touches anything else.  Fields that may
not be cleared reject an explicit ``null``.
"""

from __future__ import annotations

import re
from datetime import date, time
from typing import Any, ClassVar, Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from planboard.core.store.models import MemberRole, ProjectStatus, TaskPriority, TaskStatus

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
USERNAME_PATTERN = r"^[A-Za-z0-9_.\-]+$"


def normalize_email(value: str) -> str:
    value = value.strip().lower()
    if not _EMAIL_RE.match(value):
        raise ValueError("value is not a valid email address")
    return value


class _Input(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class _Patch(_Input):
    """Base for partial updates."""

    NON_NULLABLE: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode="after")
    def reject_null_for_required(self) -> "_Patch":
        for name in self.model_fields_set & self.NON_NULLABLE:
            if getattr(self, name) is None:
                raise ValueError(f"{name} may not be null")
        return self

    def changes(self) -> Dict[str, Any]:
        """Supplied fields only, as Python values (enums, dates)."""
        return {name: getattr(self, name) for name in self.model_fields_set}


# ── Users ───────────────────────────────────────────────────────


class UserCreate(_Input):
    name: str = Field(..., min_length=2, max_length=200)
    email: str
    password: str = Field(..., min_length=6, max_length=128)
    username: Optional[str] = Field(None, min_length=2, max_length=64, pattern=USERNAME_PATTERN)
    position: Optional[str] = None
    department: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return normalize_email(v)


class UserPatch(_Patch):
    NON_NULLABLE: ClassVar[FrozenSet[str]] = frozenset({"name", "email"})

    name: Optional[str] = Field(None, min_length=2, max_length=200)
    email: Optional[str] = None
    username: Optional[str] = Field(None, min_length=2, max_length=64, pattern=USERNAME_PATTERN)
    position: Optional[str] = None
    department: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = Field(None, max_length=2000)
    avatar: Optional[str] = None

    @field_validator("email")
    @classmethod
    def check_optional_email(cls, v: Optional[str]) -> Optional[str]:
        return normalize_email(v) if v is not None else v


# ── Projects ────────────────────────────────────────────────────


class ProjectCreate(_Input):
    name: str = Field(..., min_length=2, max_length=200)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: ProjectStatus = ProjectStatus.NOT_STARTED

    @model_validator(mode="after")
    def check_dates_ordered(self) -> "ProjectCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ProjectPatch(_Patch):
    NON_NULLABLE: ClassVar[FrozenSet[str]] = frozenset({"name", "status"})

    name: Optional[str] = Field(None, min_length=2, max_length=200)
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[ProjectStatus] = None


class MemberAdd(_Input):
    user_id: int
    role: MemberRole = MemberRole.MEMBER

    @field_validator("role")
    @classmethod
    def check_not_owner(cls, v: MemberRole) -> MemberRole:
        if v is MemberRole.OWNER:
            raise ValueError("the owner role is reserved for the project creator")
        return v


# ── Tasks ───────────────────────────────────────────────────────


class TaskCreate(_Input):
    title: str = Field(..., min_length=2, max_length=300)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    project_id: Optional[int] = None
    assignee_id: Optional[int] = None
    due_date: Optional[date] = None


class TaskPatch(_Patch):
    NON_NULLABLE: ClassVar[FrozenSet[str]] = frozenset({"title", "status", "priority"})

    title: Optional[str] = Field(None, min_length=2, max_length=300)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    project_id: Optional[int] = None
    assignee_id: Optional[int] = None
    due_date: Optional[date] = None


class CommentCreate(_Input):
    content: str = Field(..., min_length=1, max_length=5000)


# ── Calendar ────────────────────────────────────────────────────


class CalendarEventCreate(_Input):
    title: str = Field(..., min_length=2, max_length=300)
    description: Optional[str] = None
    start_date: date
    start_time: Optional[time] = None
    end_date: Optional[date] = None
    end_time: Optional[time] = None
    all_day: bool = False
    location: Optional[str] = None
    color: Optional[str] = Field(None, max_length=32)
    reminder: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_dates_ordered(self) -> "CalendarEventCreate":
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class CalendarEventPatch(_Patch):
    NON_NULLABLE: ClassVar[FrozenSet[str]] = frozenset({"title", "start_date", "all_day"})

    title: Optional[str] = Field(None, min_length=2, max_length=300)
    description: Optional[str] = None
    start_date: Optional[date] = None
    start_time: Optional[time] = None
    end_date: Optional[date] = None
    end_time: Optional[time] = None
    all_day: Optional[bool] = None
    location: Optional[str] = None
    color: Optional[str] = Field(None, max_length=32)
    reminder: Optional[int] = Field(None, ge=0)
