"""Pydantic request/response models for the Planboard API.

Input payloads for resources live in ``planboard.core.schemas``; this module
holds the auth request and the response shapes.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# ── Health ───────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    time: str
    storage: str


# ── Auth ─────────────────────────────────────────────────────────

class LoginRequest(BaseModel):
    """``identifier`` is an email or a username; ``email``/``username`` are accepted too."""

    model_config = ConfigDict(str_strip_whitespace=True)

    identifier: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("identifier", "email", "username"),
    )
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    username: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[str] = None
    is_admin: bool = False
    created_at: str
    updated_at: str
    version: int


class SessionResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_at: int
    user: UserResponse


class SuccessResponse(BaseModel):
    success: bool = True


# ── Projects ─────────────────────────────────────────────────────

class ProjectResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: str
    created_by: int
    members: List[int]
    created_at: str
    updated_at: str
    version: int


class MemberResponse(BaseModel):
    project_id: int
    user_id: int
    role: str
    joined_at: str
    user: Optional[UserResponse] = None


# ── Tasks ────────────────────────────────────────────────────────

class TaskResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    project_id: Optional[int] = None
    created_by: int
    assignee_id: Optional[int] = None
    due_date: Optional[str] = None
    created_at: str
    updated_at: str
    version: int


class CommentResponse(BaseModel):
    id: int
    task_id: int
    author_id: int
    content: str
    created_at: str


# ── Calendar ─────────────────────────────────────────────────────

class CalendarEventResponse(BaseModel):
    id: int
    owner_id: int
    title: str
    description: Optional[str] = None
    start_date: str
    start_time: Optional[str] = None
    end_date: Optional[str] = None
    end_time: Optional[str] = None
    all_day: bool
    location: Optional[str] = None
    color: Optional[str] = None
    reminder: Optional[int] = None
    created_at: str
    updated_at: str
    version: int


# ── Dashboard ────────────────────────────────────────────────────

class DashboardResponse(BaseModel):
    as_of: str
    window_days: int
    total_projects: int
    active_projects: int
    total_tasks: int
    completed_tasks: int
    upcoming_deadlines: int
    upcoming_tasks: List[TaskResponse]
    projects_by_status: Dict[str, int]
    tasks_by_status: Dict[str, int]
