"""Centralized server settings for the Planboard API.

Reads environment variables with sensible defaults. Distinguishes dev vs prod
mode. Never exposes secrets in repr or serialization.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger("planboard.api")

VALID_ENVS = ("dev", "prod")
VALID_STORAGE = ("memory", "json")
VALID_LOG_FORMATS = ("text", "json")
VALID_WRITE_POLICIES = ("creator", "member")


def _bool_env(key: str, default: bool) -> bool:
    """Parse a 0/1 env var to bool."""
    val = os.environ.get(key)
    if val is None:
        return default
    return val.strip() in ("1", "true", "yes", "True", "TRUE")


def _int_env(key: str, default: int) -> int:
    """Parse an int env var with fallback."""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Immutable server configuration. Safe to log -- secrets are masked."""

    # ── Core ───────────────────────────────────────────────────────
    env: str = "dev"
    bind: str = "127.0.0.1"
    port: int = 8080
    allow_nonlocal: bool = False
    enable_docs: bool = True

    # ── Sessions ───────────────────────────────────────────────────
    token_secret: str = ""
    token_ttl_hours: int = 168
    password_rounds: int = 12

    # ── Persistence ────────────────────────────────────────────────
    storage: str = "memory"
    store_path: str = ""

    # ── Logging ────────────────────────────────────────────────────
    log_format: str = "text"

    # ── Access policy ──────────────────────────────────────────────
    project_write_policy: str = "creator"
    deadline_window_days: int = 7

    @property
    def token_ttl_seconds(self) -> int:
        return self.token_ttl_hours * 3600

    def __repr__(self) -> str:
        return (
            f"Settings(env={self.env!r}, bind={self.bind!r}, port={self.port}, "
            f"allow_nonlocal={self.allow_nonlocal}, enable_docs={self.enable_docs}, "
            f"token_secret={'***' if self.token_secret else ''!r}, "
            f"token_ttl_hours={self.token_ttl_hours}, storage={self.storage!r}, "
            f"store_path={self.store_path!r}, log_format={self.log_format!r}, "
            f"project_write_policy={self.project_write_policy!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe dict with token_secret masked."""
        return {
            "env": self.env,
            "bind": self.bind,
            "port": self.port,
            "allow_nonlocal": self.allow_nonlocal,
            "enable_docs": self.enable_docs,
            "token_secret": "configured" if self.token_secret else "not set",
            "token_ttl_hours": self.token_ttl_hours,
            "password_rounds": self.password_rounds,
            "storage": self.storage,
            "store_path": self.store_path or "not set",
            "log_format": self.log_format,
            "project_write_policy": self.project_write_policy,
            "deadline_window_days": self.deadline_window_days,
        }

    def validate(self) -> None:
        """Raise ValueError listing every configuration problem."""
        errors = []
        if self.env not in VALID_ENVS:
            errors.append(f"PLANBOARD_ENV must be one of {VALID_ENVS}, got {self.env!r}")
        if self.env == "prod" and not self.token_secret:
            errors.append("PLANBOARD_ENV=prod requires PLANBOARD_TOKEN_SECRET")
        if self.storage not in VALID_STORAGE:
            errors.append(f"PLANBOARD_STORAGE must be one of {VALID_STORAGE}, got {self.storage!r}")
        if self.storage == "json" and not self.store_path:
            errors.append("PLANBOARD_STORAGE=json requires PLANBOARD_STORE_PATH")
        if self.log_format not in VALID_LOG_FORMATS:
            errors.append(
                f"PLANBOARD_LOG_FORMAT must be one of {VALID_LOG_FORMATS}, got {self.log_format!r}"
            )
        if self.project_write_policy not in VALID_WRITE_POLICIES:
            errors.append(
                "PLANBOARD_PROJECT_WRITE_POLICY must be one of "
                f"{VALID_WRITE_POLICIES}, got {self.project_write_policy!r}"
            )
        if self.token_ttl_hours <= 0:
            errors.append("PLANBOARD_TOKEN_TTL_HOURS must be positive")
        if self.deadline_window_days <= 0:
            errors.append("PLANBOARD_DEADLINE_WINDOW_DAYS must be positive")
        if not 4 <= self.password_rounds <= 31:
            errors.append("PLANBOARD_PASSWORD_ROUNDS must be between 4 and 31")

        if errors:
            raise ValueError("\n".join(["Configuration errors:"] +
                             [f"  {i+1}. {e}" for i, e in enumerate(errors)]))

    def with_session_secret(self) -> "Settings":
        """Fill an empty dev token secret with a per-process random one."""
        if self.token_secret:
            return self
        logger.warning(
            "PLANBOARD_TOKEN_SECRET not set -- using a random per-process secret; "
            "sessions will not survive a restart."
        )
        return dataclasses.replace(self, token_secret=secrets.token_hex(32))


def load_settings(
    bind: Optional[str] = None,
    port: Optional[int] = None,
    allow_nonlocal: Optional[bool] = None,
    **overrides: Any,
) -> Settings:
    """Load settings from environment with optional overrides.

    Args:
        bind: Override bind host
        port: Override port
        allow_nonlocal: Override nonlocal binding check
        **overrides: Additional field overrides

    Returns:
        Settings instance
    """
    env = overrides.get("env", os.environ.get("PLANBOARD_ENV", "dev"))
    settings = Settings(
        env=os.environ.get("PLANBOARD_ENV", "dev"),
        bind=os.environ.get("PLANBOARD_BIND", "127.0.0.1"),
        port=_int_env("PLANBOARD_PORT", 8080),
        allow_nonlocal=_bool_env("PLANBOARD_ALLOW_NONLOCAL", False),
        enable_docs=_bool_env("PLANBOARD_ENABLE_DOCS", env != "prod"),
        token_secret=os.environ.get("PLANBOARD_TOKEN_SECRET", ""),
        token_ttl_hours=_int_env("PLANBOARD_TOKEN_TTL_HOURS", 168),
        password_rounds=_int_env("PLANBOARD_PASSWORD_ROUNDS", 12),
        storage=os.environ.get("PLANBOARD_STORAGE", "memory"),
        store_path=os.environ.get("PLANBOARD_STORE_PATH", ""),
        log_format=os.environ.get("PLANBOARD_LOG_FORMAT", "text"),
        project_write_policy=os.environ.get("PLANBOARD_PROJECT_WRITE_POLICY", "creator"),
        deadline_window_days=_int_env("PLANBOARD_DEADLINE_WINDOW_DAYS", 7),
    )

    # Apply function overrides
    if bind is not None:
        overrides["bind"] = bind
    if port is not None:
        overrides["port"] = port
    if allow_nonlocal is not None:
        overrides["allow_nonlocal"] = allow_nonlocal

    if overrides:
        settings = dataclasses.replace(settings, **overrides)

    return settings


def validate_host(host: str, allow_nonlocal: bool) -> None:
    """Refuse to bind to non-localhost unless explicitly allowed."""
    local_hosts = {"127.0.0.1", "localhost", "::1"}
    if host not in local_hosts and not allow_nonlocal:
        raise ValueError(
            f"Refusing to bind to non-local host '{host}'. "
            f"Pass --allow-nonlocal (or PLANBOARD_ALLOW_NONLOCAL=1) to override "
            f"this safety check."
        )


def print_startup_warnings(settings: Settings) -> None:
    """Print warnings about potentially unsafe settings."""
    warnings = []

    if not settings.token_secret:
        warnings.append("No token secret configured -- sessions reset on every restart.")

    if settings.allow_nonlocal:
        warnings.append(
            "Non-local binding enabled -- ensure you have proper firewall rules."
        )

    if settings.storage == "memory":
        warnings.append("In-memory storage -- all data is lost when the server stops.")

    if warnings:
        import click

        click.secho("\nWarnings:", fg="yellow")
        for w in warnings:
            click.secho(f"  • {w}", fg="yellow")
        click.echo()
