"""Session/token issuer: registration, credential checks, bearer tokens.

``authenticate`` fails the same way, after the same bcrypt work, whether the
identifier is unknown or the password is wrong.  ``validate_token`` treats a
token for a deleted user as revoked.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from planboard.core.errors import InvalidCredentials, PrincipalNotFound
from planboard.core.schemas import UserCreate
from planboard.core.security.guard import Principal
from planboard.core.security.passwords import (
    DEFAULT_ROUNDS,
    hash_password,
    make_dummy_hash,
    verify_password,
)
from planboard.core.security.tokens import create_token, verify_token
from planboard.core.store.models import User
from planboard.core.store.repositories import UserRepository

logger = logging.getLogger("planboard.auth")


@dataclass(frozen=True)
class IssuedSession:
    token: str
    expires_at: float
    user: User

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "token_type": "bearer",
            "expires_at": int(self.expires_at),
            "user": self.user.to_dict(),
        }


class AuthService:
    """Issues and validates session tokens against the identity store."""

    def __init__(
        self,
        users: UserRepository,
        secret: str,
        ttl_seconds: int,
        password_rounds: int = DEFAULT_ROUNDS,
    ) -> None:
        if not secret:
            raise ValueError("AuthService requires a non-empty token secret")
        self._users = users
        self._secret = secret
        self._ttl_seconds = ttl_seconds
        self._rounds = password_rounds
        self._dummy_hash = make_dummy_hash(password_rounds)

    def register(self, data: UserCreate, *, is_admin: bool = False) -> User:
        """Create a user with a hashed password. Duplicate email/username -> Conflict."""
        password_hash = hash_password(data.password, self._rounds)
        return self._users.create(data, password_hash=password_hash, is_admin=is_admin)

    def authenticate(self, identifier: str, password: str) -> User:
        user = self._users.find_by_identifier(identifier)
        if user is None:
            verify_password(password, self._dummy_hash)
            logger.info("login failed: reason=unknown_identifier")
            raise InvalidCredentials()
        if not verify_password(password, user.password_hash):
            logger.info("login failed: user=%s reason=bad_password", user.id)
            raise InvalidCredentials()
        logger.info("login ok: user=%s", user.id)
        return user

    def issue_token(self, user: User, now: Optional[float] = None) -> IssuedSession:
        issued = time.time() if now is None else now
        token = create_token(self._secret, user.id, self._ttl_seconds, now=issued)
        return IssuedSession(token=token, expires_at=issued + self._ttl_seconds, user=user)

    def validate_token(self, token: str, now: Optional[float] = None) -> Principal:
        """Raises Unauthenticated for bad tokens, PrincipalNotFound for deleted users."""
        payload = verify_token(self._secret, token, now=now)
        user = self._users.get_by_id(payload.sub)
        if user is None:
            raise PrincipalNotFound("The user for this token no longer exists.")
        return Principal.from_user(user)
