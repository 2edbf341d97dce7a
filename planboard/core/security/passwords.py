"""bcrypt password hashing."""

from __future__ import annotations

import secrets

import bcrypt

DEFAULT_ROUNDS = 12

# bcrypt only reads the first 72 bytes of a password.
MAX_PASSWORD_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:MAX_PASSWORD_BYTES]


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_encode(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time check of ``password`` against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash.
        return False


def make_dummy_hash(rounds: int = DEFAULT_ROUNDS) -> str:
    """A hash of a random throwaway password.

    Verifying against it when an identifier does not resolve makes an unknown
    user cost the same bcrypt work as a wrong password.
    """
    return hash_password(secrets.token_urlsafe(16), rounds)
