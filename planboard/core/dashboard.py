"""Dashboard aggregates for one principal.

Recomputed on every call from the repositories; no caching, no writes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from planboard.core.security.guard import Principal
from planboard.core.store.models import ProjectStatus, Task, TaskStatus
from planboard.core.store.repositories import ProjectRepository, TaskRepository


@dataclass
class DashboardSummary:
    as_of: date
    window_days: int
    total_projects: int
    active_projects: int
    total_tasks: int
    completed_tasks: int
    upcoming: List[Task] = field(default_factory=list)
    projects_by_status: Dict[str, int] = field(default_factory=dict)
    tasks_by_status: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "window_days": self.window_days,
            "total_projects": self.total_projects,
            "active_projects": self.active_projects,
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "upcoming_deadlines": len(self.upcoming),
            "upcoming_tasks": [t.to_dict() for t in self.upcoming],
            "projects_by_status": dict(self.projects_by_status),
            "tasks_by_status": dict(self.tasks_by_status),
        }


class DashboardAggregator:
    """Counts over the principal's projects (by membership) and assigned tasks."""

    def __init__(
        self,
        projects: ProjectRepository,
        tasks: TaskRepository,
        window_days: int = 7,
    ) -> None:
        self._projects = projects
        self._tasks = tasks
        self.window_days = window_days

    def compute(self, principal: Principal, today: Optional[date] = None) -> DashboardSummary:
        """``today`` defaults to the current UTC date, matching stored timestamps."""
        today = today or datetime.now(timezone.utc).date()
        horizon = today + timedelta(days=self.window_days)

        projects = self._projects.list_for_member(principal.user_id)
        projects_by_status = {s.value: 0 for s in ProjectStatus}
        for p in projects:
            projects_by_status[p.status.value] += 1

        tasks = self._tasks.list_by(assignee_id=principal.user_id)
        tasks_by_status = {s.value: 0 for s in TaskStatus}
        for t in tasks:
            tasks_by_status[t.status.value] += 1

        upcoming = [
            t for t in tasks
            if not t.status.is_terminal
            and t.due_date is not None
            and today <= t.due_date <= horizon
        ]
        upcoming.sort(key=lambda t: (t.due_date, t.id))

        return DashboardSummary(
            as_of=today,
            window_days=self.window_days,
            total_projects=len(projects),
            active_projects=projects_by_status[ProjectStatus.IN_PROGRESS.value],
            total_tasks=len(tasks),
            completed_tasks=tasks_by_status[TaskStatus.DONE.value],
            upcoming=upcoming,
            projects_by_status=projects_by_status,
            tasks_by_status=tasks_by_status,
        )
