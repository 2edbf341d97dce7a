"""Planboard HTTP API server (FastAPI + uvicorn)."""

from __future__ import annotations

import datetime
import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, Query
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from starlette.responses import PlainTextResponse

from planboard import __version__
from planboard.core.api.auth import BearerTokenMiddleware, current_principal
from planboard.core.api.errors import (
    generic_exception_handler,
    http_exception_handler,
    planboard_error_handler,
    storage_exception_handler,
    validation_exception_handler,
)
from planboard.core.api.metrics import metrics
from planboard.core.api.middleware import RequestIDMiddleware
from planboard.core.api.models import (
    CalendarEventResponse,
    CommentResponse,
    DashboardResponse,
    HealthResponse,
    LoginRequest,
    MemberResponse,
    ProjectResponse,
    SessionResponse,
    SuccessResponse,
    TaskResponse,
    UserResponse,
)
from planboard.core.api.settings import Settings, load_settings, validate_host
from planboard.core.dashboard import DashboardAggregator
from planboard.core.errors import PlanboardError, ValidationError
from planboard.core.planner import Planner
from planboard.core.schemas import (
    CalendarEventCreate,
    CalendarEventPatch,
    CommentCreate,
    MemberAdd,
    ProjectCreate,
    ProjectPatch,
    TaskCreate,
    TaskPatch,
    UserCreate,
    UserPatch,
)
from planboard.core.security.guard import AuthorizationGuard, Principal
from planboard.core.sessions import AuthService
from planboard.core.store.storage import Storage, StorageError, create_storage

logger = logging.getLogger("planboard.api")


@asynccontextmanager
async def _lifespan_context(app: FastAPI) -> AsyncGenerator[None, None]:
    settings: Settings = app.state.settings
    logger.info(
        "Planboard v%s starting: env=%s storage=%s write_policy=%s",
        __version__,
        settings.env,
        settings.storage,
        settings.project_write_policy,
    )
    yield
    logger.info("Planboard shutting down.")


def parse_if_match(value: Optional[str]) -> Optional[int]:
    """``If-Match: 3`` or ``If-Match: "3"`` -> 3; absent -> None."""
    if value is None:
        return None
    raw = value.strip()
    if raw.startswith("W/"):
        raw = raw[2:]
    raw = raw.strip('"')
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(
            "If-Match must be a record version number.",
            details=[{"field": "If-Match", "message": "expected an integer version"}],
        ) from None


def create_app(settings: Optional[Settings] = None, storage: Optional[Storage] = None) -> FastAPI:
    """Create and return the FastAPI application.

    ``storage`` overrides the backend named in settings (tests inject one).
    """
    if settings is None:
        settings = load_settings()
    settings.validate()
    settings = settings.with_session_secret()

    if storage is None:
        storage = create_storage(settings.storage, settings.store_path)

    docs_url = "/docs" if settings.enable_docs else None
    openapi_url = "/openapi.json" if settings.enable_docs else None

    app = FastAPI(
        title="Planboard API",
        description="Projects, tasks, comments and personal calendars behind token auth.",
        version=__version__,
        docs_url=docs_url,
        openapi_url=openapi_url,
        redoc_url=None,
        lifespan=_lifespan_context,
    )

    guard = AuthorizationGuard(settings.project_write_policy)
    planner = Planner(storage, guard)
    auth_service = AuthService(
        planner.users,
        secret=settings.token_secret,
        ttl_seconds=settings.token_ttl_seconds,
        password_rounds=settings.password_rounds,
    )
    dashboard = DashboardAggregator(
        planner.projects, planner.tasks, window_days=settings.deadline_window_days
    )

    app.state.settings = settings
    app.state.storage = storage
    app.state.planner = planner
    app.state.auth_service = auth_service
    app.state.dashboard = dashboard

    # ── Normalized error envelope (always-on) ────────────────────
    app.add_exception_handler(PlanboardError, planboard_error_handler)
    app.add_exception_handler(StorageError, storage_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # ── Middleware ────────────────────────────────────────────────
    # Starlette processes in reverse add order (last added = outermost).
    # Desired order: RequestID -> BearerToken -> handler
    app.add_middleware(BearerTokenMiddleware)
    app.add_middleware(RequestIDMiddleware, log_format=settings.log_format)

    # ── Reset singletons for test isolation ──────────────────────
    metrics.reset()

    # ── Health & metrics ─────────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "time": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "storage": settings.storage,
        }

    @app.get("/metrics", response_class=PlainTextResponse)
    def get_metrics() -> str:
        return metrics.format_metrics()

    # ── Auth ─────────────────────────────────────────────────────

    @app.post("/auth/register", response_model=SessionResponse, status_code=201)
    def register(body: UserCreate) -> Dict[str, Any]:
        user = auth_service.register(body)
        return auth_service.issue_token(user).to_dict()

    @app.post("/auth/login", response_model=SessionResponse)
    def login(body: LoginRequest) -> Dict[str, Any]:
        user = auth_service.authenticate(body.identifier, body.password)
        return auth_service.issue_token(user).to_dict()

    # ── Users ────────────────────────────────────────────────────

    @app.get("/me", response_model=UserResponse)
    def me(principal: Principal = Depends(current_principal)) -> Dict[str, Any]:
        return planner.me(principal).to_dict()

    @app.get("/users", response_model=List[UserResponse])
    def list_users(principal: Principal = Depends(current_principal)) -> List[Dict[str, Any]]:
        return [u.to_dict() for u in planner.list_users(principal)]

    @app.get("/users/{user_id}", response_model=UserResponse)
    def get_user(
        user_id: int, principal: Principal = Depends(current_principal)
    ) -> Dict[str, Any]:
        return planner.get_user(principal, user_id).to_dict()

    @app.put("/users/{user_id}", response_model=UserResponse)
    def update_user(
        user_id: int,
        body: UserPatch,
        if_match: Optional[str] = Header(None),
        principal: Principal = Depends(current_principal),
    ) -> Dict[str, Any]:
        user = planner.update_user(principal, user_id, body, parse_if_match(if_match))
        return user.to_dict()

    # ── Projects ─────────────────────────────────────────────────

    @app.post("/projects", response_model=ProjectResponse, status_code=201)
    def create_project(
        body: ProjectCreate, principal: Principal = Depends(current_principal)
    ) -> Dict[str, Any]:
        return planner.create_project(principal, body).to_dict()

    @app.get("/projects", response_model=List[ProjectResponse])
    def list_projects(principal: Principal = Depends(current_principal)) -> List[Dict[str, Any]]:
        return [p.to_dict() for p in planner.list_projects(principal)]

    @app.get("/projects/{project_id}", response_model=ProjectResponse)
    def get_project(
        project_id: int, principal: Principal = Depends(current_principal)
    ) -> Dict[str, Any]:
        return planner.get_project(principal, project_id).to_dict()

    @app.put("/projects/{project_id}", response_model=ProjectResponse)
    def update_project(
        project_id: int,
        body: ProjectPatch,
        if_match: Optional[str] = Header(None),
        principal: Principal = Depends(current_principal),
    ) -> Dict[str, Any]:
        project = planner.update_project(principal, project_id, body, parse_if_match(if_match))
        return project.to_dict()

    @app.get("/projects/{project_id}/members", response_model=List[MemberResponse])
    def list_members(
        project_id: int, principal: Principal = Depends(current_principal)
    ) -> List[Dict[str, Any]]:
        return planner.list_members(principal, project_id)

    @app.post("/projects/{project_id}/members", response_model=MemberResponse, status_code=201)
    def add_member(
        project_id: int, body: MemberAdd, principal: Principal = Depends(current_principal)
    ) -> Dict[str, Any]:
        return planner.add_member(principal, project_id, body).to_dict()

    @app.delete("/projects/{project_id}/members/{user_id}", response_model=SuccessResponse)
    def remove_member(
        project_id: int, user_id: int, principal: Principal = Depends(current_principal)
    ) -> Dict[str, Any]:
        planner.remove_member(principal, project_id, user_id)
        return {"success": True}

    @app.get("/projects/{project_id}/tasks", response_model=List[TaskResponse])
    def list_project_tasks(
        project_id: int, principal: Principal = Depends(current_principal)
    ) -> List[Dict[str, Any]]:
        return [t.to_dict() for t in planner.list_project_tasks(principal, project_id)]

    # ── Tasks ────────────────────────────────────────────────────

    @app.post("/tasks", response_model=TaskResponse, status_code=201)
    def create_task(
        body: TaskCreate, principal: Principal = Depends(current_principal)
    ) -> Dict[str, Any]:
        return planner.create_task(principal, body).to_dict()

    @app.get("/tasks", response_model=List[TaskResponse])
    def list_tasks(
        project_id: Optional[int] = Query(None, alias="projectId"),
        principal: Principal = Depends(current_principal),
    ) -> List[Dict[str, Any]]:
        return [t.to_dict() for t in planner.list_tasks(principal, project_id)]

    @app.get("/tasks/{task_id}", response_model=TaskResponse)
    def get_task(task_id: int, principal: Principal = Depends(current_principal)) -> Dict[str, Any]:
        return planner.get_task(principal, task_id).to_dict()

    @app.put("/tasks/{task_id}", response_model=TaskResponse)
    def update_task(
        task_id: int,
        body: TaskPatch,
        if_match: Optional[str] = Header(None),
        principal: Principal = Depends(current_principal),
    ) -> Dict[str, Any]:
        return planner.update_task(principal, task_id, body, parse_if_match(if_match)).to_dict()

    @app.post("/tasks/{task_id}/comments", response_model=CommentResponse, status_code=201)
    def add_comment(
        task_id: int, body: CommentCreate, principal: Principal = Depends(current_principal)
    ) -> Dict[str, Any]:
        return planner.add_comment(principal, task_id, body).to_dict()

    @app.get("/tasks/{task_id}/comments", response_model=List[CommentResponse])
    def list_comments(
        task_id: int, principal: Principal = Depends(current_principal)
    ) -> List[Dict[str, Any]]:
        return [c.to_dict() for c in planner.list_comments(principal, task_id)]

    # ── Calendar ─────────────────────────────────────────────────

    @app.post("/calendar-events", response_model=CalendarEventResponse, status_code=201)
    def create_event(
        body: CalendarEventCreate, principal: Principal = Depends(current_principal)
    ) -> Dict[str, Any]:
        return planner.create_event(principal, body).to_dict()

    @app.get("/calendar-events", response_model=List[CalendarEventResponse])
    def list_events(
        start: Optional[date] = Query(None),
        end: Optional[date] = Query(None),
        principal: Principal = Depends(current_principal),
    ) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in planner.list_events(principal, start, end)]

    @app.get("/calendar-events/{event_id}", response_model=CalendarEventResponse)
    def get_event(
        event_id: int, principal: Principal = Depends(current_principal)
    ) -> Dict[str, Any]:
        return planner.get_event(principal, event_id).to_dict()

    @app.put("/calendar-events/{event_id}", response_model=CalendarEventResponse)
    def update_event(
        event_id: int,
        body: CalendarEventPatch,
        if_match: Optional[str] = Header(None),
        principal: Principal = Depends(current_principal),
    ) -> Dict[str, Any]:
        return planner.update_event(principal, event_id, body, parse_if_match(if_match)).to_dict()

    @app.delete("/calendar-events/{event_id}", response_model=SuccessResponse)
    def delete_event(
        event_id: int, principal: Principal = Depends(current_principal)
    ) -> Dict[str, Any]:
        planner.delete_event(principal, event_id)
        return {"success": True}

    # ── Dashboard ────────────────────────────────────────────────

    @app.get("/dashboard", response_model=DashboardResponse)
    def get_dashboard(principal: Principal = Depends(current_principal)) -> Dict[str, Any]:
        return dashboard.compute(principal).to_dict()

    return app


def start_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8080,
    allow_nonlocal: bool = False,
    reload: bool = False,
    settings: Optional[Settings] = None,
) -> None:
    """Validate host and settings, create app, and start uvicorn."""
    import uvicorn

    from planboard.core.api.settings import print_startup_warnings

    validate_host(host, allow_nonlocal)

    if settings is None:
        settings = load_settings(
            bind=host, port=port, allow_nonlocal=allow_nonlocal,
        )
    settings.validate()

    print_startup_warnings(settings)

    # Configure structured logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    # Create app factory closure for uvicorn
    def app_factory() -> FastAPI:
        return create_app(settings)

    uvicorn.run(
        app_factory,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
        factory=True,
    )
