"""Planner: the authorization-scoped operations behind every route.

Each operation resolves ids first (missing -> NotFound), then asks the
guard (denied -> Forbidden), then reads or writes through a repository.
Handlers stay thin; they only translate HTTP to these calls.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from planboard.core.errors import NotFound, ValidationError
from planboard.core.schemas import (
    CalendarEventCreate,
    CalendarEventPatch,
    CommentCreate,
    MemberAdd,
    ProjectCreate,
    ProjectPatch,
    TaskCreate,
    TaskPatch,
    UserPatch,
)
from planboard.core.security.guard import Action, AuthorizationGuard, Principal, Resource
from planboard.core.store.models import (
    CalendarEvent,
    Project,
    ProjectMember,
    Task,
    TaskComment,
    User,
)
from planboard.core.store.repositories import (
    CalendarEventRepository,
    CommentRepository,
    ProjectRepository,
    TaskRepository,
    UserRepository,
)
from planboard.core.store.storage import Storage

logger = logging.getLogger("planboard.api")


class Planner:
    def __init__(self, storage: Storage, guard: AuthorizationGuard) -> None:
        self.guard = guard
        self.users = UserRepository(storage)
        self.projects = ProjectRepository(storage)
        self.tasks = TaskRepository(storage)
        self.comments = CommentRepository(storage)
        self.events = CalendarEventRepository(storage)

    def _authorize(
        self,
        principal: Principal,
        action: Action,
        resource: Resource,
        project: Optional[Project] = None,
    ) -> None:
        self.guard.authorize(principal, action, resource, project).enforce()

    # ── Users ─────────────────────────────────────────────────

    def me(self, principal: Principal) -> User:
        return self.users.require(principal.user_id)

    def list_users(self, principal: Principal) -> List[User]:
        self._authorize(principal, Action.LIST, None)
        return self.users.list_by()

    def get_user(self, principal: Principal, user_id: int) -> User:
        user = self.users.require(user_id)
        self._authorize(principal, Action.READ, user)
        return user

    def update_user(
        self,
        principal: Principal,
        user_id: int,
        patch: UserPatch,
        expected_version: Optional[int] = None,
    ) -> User:
        target = self.users.require(user_id)
        self._authorize(principal, Action.UPDATE, target)
        return self.users.update(user_id, patch, expected_version)

    # ── Projects ──────────────────────────────────────────────

    def create_project(self, principal: Principal, data: ProjectCreate) -> Project:
        return self.projects.create(data, created_by=principal.user_id)

    def list_projects(self, principal: Principal) -> List[Project]:
        return self.projects.list_for_member(principal.user_id)

    def get_project(self, principal: Principal, project_id: int) -> Project:
        project = self.projects.require(project_id)
        self._authorize(principal, Action.READ, project)
        return project

    def update_project(
        self,
        principal: Principal,
        project_id: int,
        patch: ProjectPatch,
        expected_version: Optional[int] = None,
    ) -> Project:
        project = self.projects.require(project_id)
        self._authorize(principal, Action.UPDATE, project)
        return self.projects.update(project_id, patch, expected_version)

    def list_members(self, principal: Principal, project_id: int) -> List[Dict[str, Any]]:
        """Membership records joined with each member's public profile."""
        project = self.get_project(principal, project_id)
        out = []
        for member in project.members:
            user = self.users.get_by_id(member.user_id)
            out.append({**member.to_dict(), "user": user.to_dict() if user else None})
        return out

    def add_member(self, principal: Principal, project_id: int, data: MemberAdd) -> ProjectMember:
        project = self.projects.require(project_id)
        self._authorize(principal, Action.MANAGE_MEMBERS, project)
        self.users.require(data.user_id)
        return self.projects.add_member(project_id, data.user_id, data.role)

    def remove_member(self, principal: Principal, project_id: int, user_id: int) -> None:
        project = self.projects.require(project_id)
        self._authorize(principal, Action.MANAGE_MEMBERS, project)
        self.projects.remove_member(project_id, user_id)

    def list_project_tasks(self, principal: Principal, project_id: int) -> List[Task]:
        self.get_project(principal, project_id)
        return self.tasks.list_by(project_id=project_id)

    # ── Tasks ─────────────────────────────────────────────────

    def _bound_project(self, task: Task) -> Optional[Project]:
        if task.project_id is None:
            return None
        return self.projects.get_by_id(task.project_id)

    def _require_assignee(self, assignee_id: Optional[int]) -> None:
        if assignee_id is not None and self.users.get_by_id(assignee_id) is None:
            raise ValidationError(
                f"Assignee {assignee_id} does not exist.",
                details=[{"field": "assignee_id", "message": "unknown user"}],
            )

    def create_task(self, principal: Principal, data: TaskCreate) -> Task:
        project = None
        if data.project_id is not None:
            project = self.projects.require(data.project_id)
        self._authorize(principal, Action.CREATE, None, project)
        self._require_assignee(data.assignee_id)
        return self.tasks.create(data, created_by=principal.user_id)

    def list_tasks(self, principal: Principal, project_id: Optional[int] = None) -> List[Task]:
        """Tasks of one project (members only), else the principal's own tasks."""
        if project_id is not None:
            return self.list_project_tasks(principal, project_id)
        return self.tasks.list_for_user(principal.user_id)

    def get_task(self, principal: Principal, task_id: int) -> Task:
        return self._task_for(principal, Action.READ, task_id)

    def _task_for(self, principal: Principal, action: Action, task_id: int) -> Task:
        task = self.tasks.require(task_id)
        self._authorize(principal, action, task, self._bound_project(task))
        return task

    def update_task(
        self,
        principal: Principal,
        task_id: int,
        patch: TaskPatch,
        expected_version: Optional[int] = None,
    ) -> Task:
        task = self._task_for(principal, Action.UPDATE, task_id)
        changes = patch.changes()
        target_project = changes.get("project_id")
        if target_project is not None and target_project != task.project_id:
            self._authorize(
                principal, Action.CREATE, None, self.projects.require(target_project)
            )
        if "assignee_id" in changes:
            self._require_assignee(changes["assignee_id"])
        return self.tasks.update(task_id, patch, expected_version)

    def add_comment(self, principal: Principal, task_id: int, data: CommentCreate) -> TaskComment:
        self._task_for(principal, Action.COMMENT, task_id)
        return self.comments.create(
            task_id=task_id, author_id=principal.user_id, content=data.content
        )

    def list_comments(self, principal: Principal, task_id: int) -> List[TaskComment]:
        self.get_task(principal, task_id)
        return self.comments.list_by(task_id=task_id)

    # ── Calendar ──────────────────────────────────────────────

    def create_event(self, principal: Principal, data: CalendarEventCreate) -> CalendarEvent:
        return self.events.create(data, owner_id=principal.user_id)

    def list_events(
        self,
        principal: Principal,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[CalendarEvent]:
        if start is not None and end is not None and end < start:
            raise ValidationError("end must not be before start")
        return self.events.list_for_owner(principal.user_id, start=start, end=end)

    def get_event(self, principal: Principal, event_id: int) -> CalendarEvent:
        return self._event_for(principal, Action.READ, event_id)

    def _event_for(self, principal: Principal, action: Action, event_id: int) -> CalendarEvent:
        event = self.events.require(event_id)
        self._authorize(principal, action, event)
        return event

    def update_event(
        self,
        principal: Principal,
        event_id: int,
        patch: CalendarEventPatch,
        expected_version: Optional[int] = None,
    ) -> CalendarEvent:
        self._event_for(principal, Action.UPDATE, event_id)
        return self.events.update(event_id, patch, expected_version)

    def delete_event(self, principal: Principal, event_id: int) -> None:
        self._event_for(principal, Action.DELETE, event_id)
        if not self.events.delete(event_id):
            raise NotFound(f"Calendar event {event_id} not found.")
        logger.info("event deleted: id=%s owner=%s", event_id, principal.user_id)
