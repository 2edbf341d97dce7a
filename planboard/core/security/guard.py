"""Authorization guard: who may do what to which resource.

Every rule is a pure function of the principal and a resource snapshot.  The
guard returns a ``Decision``; it never raises and never touches storage.
Callers turn a denial into ``Forbidden`` with ``Decision.enforce()``, and
resolve missing ids to ``NotFound`` before asking the guard, so the two stay
distinguishable.

Rules:
  project read              member
  project update            creator (policy "creator") or member (policy "member")
  project members add/remove creator
  task create               anyone; member of the target project if bound
  task read/update/comment  creator, assignee, or member of the bound project
  calendar event (any)      owner only, no admin override
  user list                 any authenticated principal
  user update               self or admin
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Union

from planboard.core.errors import Forbidden
from planboard.core.store.models import CalendarEvent, Project, Task, User

logger = logging.getLogger("planboard.guard")

POLICY_CREATOR = "creator"
POLICY_MEMBER = "member"
VALID_POLICIES = frozenset({POLICY_CREATOR, POLICY_MEMBER})


class Action(str, enum.Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    LIST = "list"
    MANAGE_MEMBERS = "manage_members"
    COMMENT = "comment"


@dataclass(frozen=True)
class Principal:
    """The authenticated identity behind a request."""

    user_id: int
    email: str
    is_admin: bool = False

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(user_id=user.id, email=user.email, is_admin=user.is_admin)


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: str = ""

    @classmethod
    def allow(cls) -> "Decision":
        return cls(True)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.allowed

    def enforce(self) -> None:
        """Raise Forbidden if this decision is a denial."""
        if not self.allowed:
            raise Forbidden(self.reason or "Access denied.")


Resource = Union[Project, Task, CalendarEvent, User, None]


class AuthorizationGuard:
    """Membership and ownership rules for projects, tasks, comments and events."""

    def __init__(self, project_write_policy: str = POLICY_CREATOR) -> None:
        if project_write_policy not in VALID_POLICIES:
            raise ValueError(
                f"Invalid project write policy: {project_write_policy}. "
                f"Must be one of {sorted(VALID_POLICIES)}"
            )
        self.project_write_policy = project_write_policy

    # ── Projects ──────────────────────────────────────────────

    def can_read_project(self, principal: Principal, project: Project) -> Decision:
        if project.has_member(principal.user_id):
            return Decision.allow()
        return self._deny(principal, "You are not a member of this project.", project=project.id)

    def can_update_project(self, principal: Principal, project: Project) -> Decision:
        if principal.user_id == project.created_by:
            return Decision.allow()
        if self.project_write_policy == POLICY_MEMBER and project.has_member(principal.user_id):
            return Decision.allow()
        if self.project_write_policy == POLICY_MEMBER:
            return self._deny(principal, "You are not a member of this project.", project=project.id)
        return self._deny(
            principal, "Only the project creator can update this project.", project=project.id
        )

    def can_manage_members(self, principal: Principal, project: Project) -> Decision:
        if principal.user_id == project.created_by:
            return Decision.allow()
        return self._deny(
            principal, "Only the project creator can manage members.", project=project.id
        )

    # ── Tasks & comments ──────────────────────────────────────

    def can_create_task(self, principal: Principal, project: Optional[Project] = None) -> Decision:
        """``project`` is the target project for a bound task, None for unbound."""
        if project is None or project.has_member(principal.user_id):
            return Decision.allow()
        return self._deny(principal, "You are not a member of this project.", project=project.id)

    def can_access_task(
        self, principal: Principal, task: Task, project: Optional[Project] = None
    ) -> Decision:
        """Read, update, comment and list-comments share one predicate.

        ``project`` must be the task's bound project when it has one.
        """
        uid = principal.user_id
        if uid == task.created_by or (task.assignee_id is not None and uid == task.assignee_id):
            return Decision.allow()
        if task.is_project_bound and project is not None and project.has_member(uid):
            return Decision.allow()
        return self._deny(principal, "You do not have access to this task.", task=task.id)

    # ── Calendar ──────────────────────────────────────────────

    def can_access_event(self, principal: Principal, event: CalendarEvent) -> Decision:
        if principal.user_id == event.owner_id:
            return Decision.allow()
        return self._deny(principal, "You do not have access to this event.", event=event.id)

    # ── Users ─────────────────────────────────────────────────

    def can_list_users(self, principal: Principal) -> Decision:
        return Decision.allow()

    def can_update_user(self, principal: Principal, target: User) -> Decision:
        if principal.user_id == target.id or principal.is_admin:
            return Decision.allow()
        return self._deny(principal, "You can only update your own profile.", user=target.id)

    # ── Dispatcher ────────────────────────────────────────────

    def authorize(
        self,
        principal: Principal,
        action: Action,
        resource: Resource,
        project: Optional[Project] = None,
    ) -> Decision:
        """Single entry point: route (action, resource type) to its rule.

        For tasks ``project`` is the bound project; for task creation
        ``resource`` is None and ``project`` the target (or None).
        """
        if isinstance(resource, Project):
            if action is Action.READ:
                return self.can_read_project(principal, resource)
            if action is Action.UPDATE:
                return self.can_update_project(principal, resource)
            if action is Action.MANAGE_MEMBERS:
                return self.can_manage_members(principal, resource)
        elif isinstance(resource, Task):
            if action in (Action.READ, Action.UPDATE, Action.COMMENT):
                return self.can_access_task(principal, resource, project)
        elif isinstance(resource, CalendarEvent):
            if action in (Action.READ, Action.UPDATE, Action.DELETE):
                return self.can_access_event(principal, resource)
        elif isinstance(resource, User):
            if action is Action.UPDATE:
                return self.can_update_user(principal, resource)
            if action is Action.READ:
                return Decision.allow()
        elif resource is None:
            if action is Action.CREATE:
                return self.can_create_task(principal, project)
            if action is Action.LIST:
                return self.can_list_users(principal)
        kind = type(resource).__name__ if resource is not None else "none"
        return self._deny(principal, f"Action {action.value} is not defined for {kind}.")

    def _deny(self, principal: Principal, reason: str, **resource: int) -> Decision:
        target = " ".join(f"{k}={v}" for k, v in resource.items())
        logger.info("denied: user=%s %s reason=%s", principal.user_id, target, reason)
        return Decision.deny(reason)
