"""Planboard data models -- User, Project, ProjectMember, Task, TaskComment, CalendarEvent.

All models are plain dataclasses with to_dict() for the wire and
to_record()/from_record() for the storage layer.  Records are JSON-safe:
dates and times are ISO strings.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Dict, FrozenSet, List, Optional


class ProjectStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"


class TaskStatus(str, enum.Enum):
    """Four ordered stages; DONE is terminal."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"

    @property
    def is_terminal(self) -> bool:
        return self is TaskStatus.DONE


class TaskPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class MemberRole(str, enum.Enum):
    OWNER = "owner"
    MANAGER = "manager"
    MEMBER = "member"
    OBSERVER = "observer"


def utc_now() -> str:
    """UTC ISO timestamp."""
    return datetime.now(timezone.utc).isoformat()


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _parse_time(value: Optional[str]) -> Optional[time]:
    return time.fromisoformat(value) if value else None


@dataclass
class User:
    """A registered user. The password hash never leaves the store layer."""

    id: int
    name: str
    email: str
    password_hash: str
    username: Optional[str] = None
    position: Optional[str] = None
    department: Optional[str] = None
    phone: Optional[str] = None
    bio: Optional[str] = None
    avatar: Optional[str] = None
    is_admin: bool = False
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    version: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "username": self.username,
            "position": self.position,
            "department": self.department,
            "phone": self.phone,
            "bio": self.bio,
            "avatar": self.avatar,
            "is_admin": self.is_admin,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "version": self.version,
        }

    def to_record(self) -> Dict[str, Any]:
        return {**self.to_dict(), "password_hash": self.password_hash}

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "User":
        return cls(
            id=rec["id"],
            name=rec["name"],
            email=rec["email"],
            password_hash=rec["password_hash"],
            username=rec.get("username"),
            position=rec.get("position"),
            department=rec.get("department"),
            phone=rec.get("phone"),
            bio=rec.get("bio"),
            avatar=rec.get("avatar"),
            is_admin=rec.get("is_admin", False),
            created_at=rec["created_at"],
            updated_at=rec["updated_at"],
            version=rec.get("version", 1),
        )


@dataclass
class ProjectMember:
    """Links a user to a project with a role. One record per (project, user)."""

    project_id: int
    user_id: int
    role: MemberRole = MemberRole.MEMBER
    joined_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "user_id": self.user_id,
            "role": self.role.value,
            "joined_at": self.joined_at,
        }

    to_record = to_dict

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "ProjectMember":
        return cls(
            project_id=rec["project_id"],
            user_id=rec["user_id"],
            role=MemberRole(rec["role"]),
            joined_at=rec["joined_at"],
        )


@dataclass
class Project:
    """A project shared by its member set.

    ``members`` is filled in by the repository from membership records; it is
    not part of the stored project record.
    """

    id: int
    name: str
    created_by: int
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: ProjectStatus = ProjectStatus.NOT_STARTED
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    version: int = 1
    members: List[ProjectMember] = field(default_factory=list)

    @property
    def member_ids(self) -> FrozenSet[int]:
        return frozenset(m.user_id for m in self.members)

    def has_member(self, user_id: int) -> bool:
        return any(m.user_id == user_id for m in self.members)

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.to_record(),
            "members": sorted(self.member_ids),
        }

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "status": self.status.value,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "version": self.version,
        }

    @classmethod
    def from_record(
        cls, rec: Dict[str, Any], members: Optional[List[ProjectMember]] = None
    ) -> "Project":
        return cls(
            id=rec["id"],
            name=rec["name"],
            created_by=rec["created_by"],
            description=rec.get("description"),
            start_date=_parse_date(rec.get("start_date")),
            end_date=_parse_date(rec.get("end_date")),
            status=ProjectStatus(rec["status"]),
            created_at=rec["created_at"],
            updated_at=rec["updated_at"],
            version=rec.get("version", 1),
            members=list(members or []),
        )


@dataclass
class Task:
    id: int
    title: str
    created_by: int
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    project_id: Optional[int] = None
    assignee_id: Optional[int] = None
    due_date: Optional[date] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    version: int = 1

    @property
    def is_project_bound(self) -> bool:
        return self.project_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "project_id": self.project_id,
            "created_by": self.created_by,
            "assignee_id": self.assignee_id,
            "due_date": _iso(self.due_date),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "version": self.version,
        }

    to_record = to_dict

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "Task":
        return cls(
            id=rec["id"],
            title=rec["title"],
            created_by=rec["created_by"],
            description=rec.get("description"),
            status=TaskStatus(rec["status"]),
            priority=TaskPriority(rec["priority"]),
            project_id=rec.get("project_id"),
            assignee_id=rec.get("assignee_id"),
            due_date=_parse_date(rec.get("due_date")),
            created_at=rec["created_at"],
            updated_at=rec["updated_at"],
            version=rec.get("version", 1),
        )


@dataclass
class TaskComment:
    """Append-only comment on a task."""

    id: int
    task_id: int
    author_id: int
    content: str
    created_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "author_id": self.author_id,
            "content": self.content,
            "created_at": self.created_at,
        }

    to_record = to_dict

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "TaskComment":
        return cls(
            id=rec["id"],
            task_id=rec["task_id"],
            author_id=rec["author_id"],
            content=rec["content"],
            created_at=rec["created_at"],
        )


@dataclass
class CalendarEvent:
    """A calendar entry owned by exactly one user. Never shared."""

    id: int
    owner_id: int
    title: str
    start_date: date
    description: Optional[str] = None
    start_time: Optional[time] = None
    end_date: Optional[date] = None
    end_time: Optional[time] = None
    all_day: bool = False
    location: Optional[str] = None
    color: Optional[str] = None
    reminder: Optional[int] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)
    version: int = 1

    @property
    def effective_end_date(self) -> date:
        return self.end_date or self.start_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "description": self.description,
            "start_date": _iso(self.start_date),
            "start_time": _iso(self.start_time),
            "end_date": _iso(self.end_date),
            "end_time": _iso(self.end_time),
            "all_day": self.all_day,
            "location": self.location,
            "color": self.color,
            "reminder": self.reminder,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "version": self.version,
        }

    to_record = to_dict

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "CalendarEvent":
        return cls(
            id=rec["id"],
            owner_id=rec["owner_id"],
            title=rec["title"],
            start_date=date.fromisoformat(rec["start_date"]),
            description=rec.get("description"),
            start_time=_parse_time(rec.get("start_time")),
            end_date=_parse_date(rec.get("end_date")),
            end_time=_parse_time(rec.get("end_time")),
            all_day=rec.get("all_day", False),
            location=rec.get("location"),
            color=rec.get("color"),
            reminder=rec.get("reminder"),
            created_at=rec["created_at"],
            updated_at=rec["updated_at"],
            version=rec.get("version", 1),
        )
