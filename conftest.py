"""Repo-wide test fixtures.

Snapshots and restores PLANBOARD_* environment variables between tests so a
test that mutates os.environ cannot leak configuration into the next one.
"""

from __future__ import annotations

import os

import pytest

_PLANBOARD_ENV_VARS = [
    "PLANBOARD_ENV",
    "PLANBOARD_BIND",
    "PLANBOARD_PORT",
    "PLANBOARD_ALLOW_NONLOCAL",
    "PLANBOARD_ENABLE_DOCS",
    "PLANBOARD_TOKEN_SECRET",
    "PLANBOARD_TOKEN_TTL_HOURS",
    "PLANBOARD_PASSWORD_ROUNDS",
    "PLANBOARD_STORAGE",
    "PLANBOARD_STORE_PATH",
    "PLANBOARD_LOG_FORMAT",
    "PLANBOARD_PROJECT_WRITE_POLICY",
    "PLANBOARD_DEADLINE_WINDOW_DAYS",
]


@pytest.fixture(autouse=True)
def _restore_env():
    """Snapshot PLANBOARD_* env vars before each test and restore after."""
    snapshot = {var: os.environ[var] for var in _PLANBOARD_ENV_VARS if var in os.environ}

    yield

    for var in _PLANBOARD_ENV_VARS:
        if var in snapshot:
            os.environ[var] = snapshot[var]
        else:
            os.environ.pop(var, None)
