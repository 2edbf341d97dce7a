"""Resource repositories -- User, Project (+ membership), Task, Comment, CalendarEvent.

Each repository wraps a ``Storage`` and speaks domain dataclasses:
  - get_by_id(id) -> entity or None (never raises for a missing id)
  - update(id, patch, expected_version=None) merges only supplied fields,
    refreshes updated_at and bumps version
  - list_by(**criteria) exact-match filters over stored records

Repositories enforce data invariants (unique email/username, one membership
per (project, user), creator always a member).  Access rules live in the
authorization guard.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import date
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

from planboard.core.errors import (
    Conflict,
    CreatorRemoval,
    NotAMember,
    NotFound,
    ValidationError,
    VersionConflict,
)
from planboard.core.schemas import (
    CalendarEventCreate,
    CalendarEventPatch,
    ProjectCreate,
    ProjectPatch,
    TaskCreate,
    TaskPatch,
    UserCreate,
    UserPatch,
)
from planboard.core.store.models import (
    CalendarEvent,
    MemberRole,
    Project,
    ProjectMember,
    Task,
    TaskComment,
    User,
    utc_now,
)
from planboard.core.store.storage import Record, Storage

logger = logging.getLogger("planboard.store")

E = TypeVar("E")


class _Repository(Generic[E]):
    """Shared plumbing: id allocation, typed reads, versioned merge."""

    KIND: str = ""
    MODEL: Type[Any] = object
    LABEL: str = "Record"

    def __init__(self, storage: Storage) -> None:
        self._storage = storage

    def _load(self, rec: Record) -> E:
        return self.MODEL.from_record(rec)

    def get_by_id(self, entity_id: int) -> Optional[E]:
        rec = self._storage.get(self.KIND, entity_id)
        return self._load(rec) if rec is not None else None

    def require(self, entity_id: int) -> E:
        entity = self.get_by_id(entity_id)
        if entity is None:
            raise NotFound(f"{self.LABEL} {entity_id} not found.")
        return entity

    def list_by(self, **criteria: Any) -> List[E]:
        """Exact-match filter on stored record fields, ordered by id."""
        records = [
            rec for rec in self._storage.scan(self.KIND)
            if all(rec.get(k) == v for k, v in criteria.items())
        ]
        records.sort(key=lambda r: r["id"])
        return [self._load(rec) for rec in records]

    def _filter(self, predicate: Callable[[E], bool]) -> List[E]:
        return [e for e in self.list_by() if predicate(e)]

    def _insert(self, entity: E) -> E:
        self._storage.put(self.KIND, entity.id, entity.to_record())  # type: ignore[attr-defined]
        return entity

    def _merge(
        self,
        entity_id: int,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
        check: Optional[Callable[[E, Dict[str, Any]], None]] = None,
    ) -> E:
        """Read-modify-write under the storage lock.

        Only keys in ``changes`` are overwritten.  A stale ``expected_version``
        raises VersionConflict and nothing is written.
        """
        with self._storage.transaction():
            current = self.require(entity_id)
            if expected_version is not None and expected_version != current.version:  # type: ignore[attr-defined]
                raise VersionConflict(
                    f"{self.LABEL} {entity_id} is at version {current.version}, "  # type: ignore[attr-defined]
                    f"not {expected_version}."
                )
            if check is not None:
                check(current, changes)
            updated = dataclasses.replace(
                current,
                **changes,
                updated_at=utc_now(),
                version=current.version + 1,  # type: ignore[attr-defined]
            )
            self._storage.put(self.KIND, entity_id, updated.to_record())  # type: ignore[attr-defined]
        return updated


# ── Users ───────────────────────────────────────────────────────


class UserRepository(_Repository[User]):
    KIND = "users"
    MODEL = User
    LABEL = "User"

    def create(self, data: UserCreate, *, password_hash: str, is_admin: bool = False) -> User:
        with self._storage.transaction():
            self._check_unique(email=data.email, username=data.username)
            user = User(
                id=self._storage.next_id(self.KIND),
                name=data.name,
                email=data.email,
                password_hash=password_hash,
                username=data.username,
                position=data.position,
                department=data.department,
                phone=data.phone,
                is_admin=is_admin,
            )
            self._insert(user)
        logger.info("user created: id=%s admin=%s", user.id, is_admin)
        return user

    def get_by_email(self, email: str) -> Optional[User]:
        found = self.list_by(email=email.strip().lower())
        return found[0] if found else None

    def get_by_username(self, username: str) -> Optional[User]:
        found = self.list_by(username=username.strip())
        return found[0] if found else None

    def find_by_identifier(self, identifier: str) -> Optional[User]:
        """Look up by email when the identifier looks like one, else by username."""
        if "@" in identifier:
            return self.get_by_email(identifier)
        return self.get_by_username(identifier)

    def update(
        self, user_id: int, patch: UserPatch, expected_version: Optional[int] = None
    ) -> User:
        def unique(current: User, changes: Dict[str, Any]) -> None:
            self._check_unique(
                email=changes.get("email"),
                username=changes.get("username"),
                exclude_id=current.id,
            )

        return self._merge(user_id, patch.changes(), expected_version, check=unique)

    def _check_unique(
        self,
        *,
        email: Optional[str] = None,
        username: Optional[str] = None,
        exclude_id: Optional[int] = None,
    ) -> None:
        for rec in self._storage.scan(self.KIND):
            if rec["id"] == exclude_id:
                continue
            if email and rec["email"] == email:
                raise Conflict("A user with this email already exists.", code="duplicate_email")
            if username and rec.get("username") == username:
                raise Conflict(
                    "A user with this username already exists.", code="duplicate_username"
                )


# ── Projects ────────────────────────────────────────────────────


def _membership_key(project_id: int, user_id: int) -> str:
    return f"{project_id}:{user_id}"


class ProjectRepository(_Repository[Project]):
    """Projects plus their membership records.

    The member set is stored as one ``memberships`` record per (project,
    user) and attached to every Project this repository returns.
    """

    KIND = "projects"
    MEMBERSHIPS = "memberships"
    MODEL = Project
    LABEL = "Project"

    def _load(self, rec: Record) -> Project:
        return Project.from_record(rec, members=self.list_members(rec["id"]))

    def create(self, data: ProjectCreate, *, created_by: int) -> Project:
        with self._storage.transaction():
            project = Project(
                id=self._storage.next_id(self.KIND),
                name=data.name,
                created_by=created_by,
                description=data.description,
                start_date=data.start_date,
                end_date=data.end_date,
                status=data.status,
            )
            self._insert(project)
            owner = ProjectMember(project_id=project.id, user_id=created_by, role=MemberRole.OWNER)
            self._storage.put(
                self.MEMBERSHIPS, _membership_key(project.id, created_by), owner.to_record()
            )
            project.members = [owner]
        logger.info("project created: id=%s creator=%s", project.id, created_by)
        return project

    def update(
        self, project_id: int, patch: ProjectPatch, expected_version: Optional[int] = None
    ) -> Project:
        def dates_ordered(current: Project, changes: Dict[str, Any]) -> None:
            start = changes.get("start_date", current.start_date)
            end = changes.get("end_date", current.end_date)
            if start and end and end < start:
                raise ValidationError("end_date must not be before start_date")

        return self._merge(project_id, patch.changes(), expected_version, check=dates_ordered)

    def list_for_member(self, user_id: int) -> List[Project]:
        """Projects whose member set contains ``user_id``."""
        ids = {
            rec["project_id"]
            for rec in self._storage.scan(self.MEMBERSHIPS)
            if rec["user_id"] == user_id
        }
        return [p for p in (self.get_by_id(pid) for pid in sorted(ids)) if p is not None]

    # ── Membership ────────────────────────────────────────────

    def list_members(self, project_id: int) -> List[ProjectMember]:
        records = [
            rec for rec in self._storage.scan(self.MEMBERSHIPS)
            if rec["project_id"] == project_id
        ]
        records.sort(key=lambda r: (r["joined_at"], r["user_id"]))
        return [ProjectMember.from_record(rec) for rec in records]

    def add_member(
        self, project_id: int, user_id: int, role: MemberRole = MemberRole.MEMBER
    ) -> ProjectMember:
        key = _membership_key(project_id, user_id)
        with self._storage.transaction():
            self.require(project_id)
            if self._storage.get(self.MEMBERSHIPS, key) is not None:
                raise Conflict(
                    f"User {user_id} is already a member of project {project_id}.",
                    code="duplicate_member",
                )
            member = ProjectMember(project_id=project_id, user_id=user_id, role=role)
            self._storage.put(self.MEMBERSHIPS, key, member.to_record())
        logger.info("member added: project=%s user=%s role=%s", project_id, user_id, role.value)
        return member

    def remove_member(self, project_id: int, user_id: int) -> None:
        """Delete one membership.  The creator can never be removed."""
        key = _membership_key(project_id, user_id)
        with self._storage.transaction():
            project = self.require(project_id)
            if user_id == project.created_by:
                raise CreatorRemoval()
            if not self._storage.delete(self.MEMBERSHIPS, key):
                raise NotAMember(f"User {user_id} is not a member of project {project_id}.")
        logger.info("member removed: project=%s user=%s", project_id, user_id)


# ── Tasks ───────────────────────────────────────────────────────


class TaskRepository(_Repository[Task]):
    KIND = "tasks"
    MODEL = Task
    LABEL = "Task"

    def create(self, data: TaskCreate, *, created_by: int) -> Task:
        with self._storage.transaction():
            task = Task(
                id=self._storage.next_id(self.KIND),
                title=data.title,
                created_by=created_by,
                description=data.description,
                status=data.status,
                priority=data.priority,
                project_id=data.project_id,
                assignee_id=data.assignee_id,
                due_date=data.due_date,
            )
            self._insert(task)
        return task

    def update(
        self, task_id: int, patch: TaskPatch, expected_version: Optional[int] = None
    ) -> Task:
        return self._merge(task_id, patch.changes(), expected_version)

    def list_for_user(self, user_id: int) -> List[Task]:
        """Tasks the user created or is assigned to, each once."""
        return self._filter(lambda t: user_id in (t.created_by, t.assignee_id))


class CommentRepository(_Repository[TaskComment]):
    """Append-only: no update, no delete."""

    KIND = "comments"
    MODEL = TaskComment
    LABEL = "Comment"

    def create(self, *, task_id: int, author_id: int, content: str) -> TaskComment:
        with self._storage.transaction():
            comment = TaskComment(
                id=self._storage.next_id(self.KIND),
                task_id=task_id,
                author_id=author_id,
                content=content,
            )
            self._insert(comment)
        return comment


# ── Calendar ────────────────────────────────────────────────────


class CalendarEventRepository(_Repository[CalendarEvent]):
    KIND = "events"
    MODEL = CalendarEvent
    LABEL = "Calendar event"

    def create(self, data: CalendarEventCreate, *, owner_id: int) -> CalendarEvent:
        with self._storage.transaction():
            event = CalendarEvent(
                id=self._storage.next_id(self.KIND),
                owner_id=owner_id,
                **data.model_dump(),
            )
            self._insert(event)
        return event

    def update(
        self, event_id: int, patch: CalendarEventPatch, expected_version: Optional[int] = None
    ) -> CalendarEvent:
        def dates_ordered(current: CalendarEvent, changes: Dict[str, Any]) -> None:
            start = changes.get("start_date", current.start_date)
            end = changes.get("end_date", current.end_date)
            if end and end < start:
                raise ValidationError("end_date must not be before start_date")

        return self._merge(event_id, patch.changes(), expected_version, check=dates_ordered)

    def delete(self, event_id: int) -> bool:
        return self._storage.delete(self.KIND, event_id)

    def list_for_owner(
        self,
        owner_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[CalendarEvent]:
        """Owner's events; ``start`` bounds start_date, ``end`` bounds the effective end."""
        events = self.list_by(owner_id=owner_id)
        if start is not None:
            events = [e for e in events if e.start_date >= start]
        if end is not None:
            events = [e for e in events if e.effective_end_date <= end]
        return events
