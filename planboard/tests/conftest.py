"""Shared fixtures for Planboard tests.

Every test gets a fresh in-memory store and app.  bcrypt runs at cost 4 so
registration and login stay fast.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Tuple

import pytest
from fastapi.testclient import TestClient

from planboard.core.api.server import create_app
from planboard.core.api.settings import Settings, load_settings
from planboard.core.security.guard import AuthorizationGuard
from planboard.core.planner import Planner
from planboard.core.store.storage import MemoryStorage

TEST_SECRET = "test-secret-key-1234"


@pytest.fixture
def settings() -> Settings:
    return load_settings(
        env="dev",
        token_secret=TEST_SECRET,
        password_rounds=4,
        storage="memory",
        project_write_policy="creator",
        deadline_window_days=7,
    )


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def planner(storage) -> Planner:
    return Planner(storage, AuthorizationGuard())


@pytest.fixture
def app(settings, storage):
    return create_app(settings, storage=storage)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register(client) -> Callable[..., Tuple[Dict[str, str], Dict[str, Any]]]:
    """Register a user through the API; returns (auth headers, user dict)."""

    def _register(name: str, email: str, password: str = "secret123", **extra: Any):
        resp = client.post(
            "/auth/register",
            json={"name": name, "email": email, "password": password, **extra},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return bearer(body["token"]), body["user"]

    return _register
