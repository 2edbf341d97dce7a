"""Session tokens with HMAC-SHA256 signatures.

Token format:  pbt_<base64url(JSON)>.<hex HMAC-SHA256>
Payload keys:  sub (user id), iat, exp (unix seconds).
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Optional

from planboard.core.errors import Unauthenticated

TOKEN_PREFIX = "pbt_"


@dataclass(frozen=True)
class TokenPayload:
    """Decoded and verified token payload."""

    sub: int
    iat: float
    exp: float


def create_token(secret: str, user_id: int, ttl_seconds: float, now: Optional[float] = None) -> str:
    """Create a signed session token for ``user_id``.

    Returns:
        Token string ``pbt_<b64payload>.<hex_signature>``.
    """
    issued = time.time() if now is None else now
    payload = {"sub": user_id, "iat": int(issued), "exp": int(issued + ttl_seconds)}
    json_bytes = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
    b64_payload = base64.urlsafe_b64encode(json_bytes).decode().rstrip("=")
    sig = hmac.new(secret.encode(), json_bytes, hashlib.sha256).hexdigest()
    return f"{TOKEN_PREFIX}{b64_payload}.{sig}"


def verify_token(secret: str, token: str, now: Optional[float] = None) -> TokenPayload:
    """Verify a session token.

    Raises:
        Unauthenticated: on invalid format, bad signature, or expired token.
    """
    if not token.startswith(TOKEN_PREFIX):
        raise Unauthenticated("Invalid token.", code="malformed_token")

    body = token[len(TOKEN_PREFIX):]
    parts = body.split(".", 1)
    if len(parts) != 2:
        raise Unauthenticated("Invalid token.", code="malformed_token")

    b64_part, sig_part = parts

    # Re-pad base64
    padding = 4 - (len(b64_part) % 4)
    if padding != 4:
        b64_part += "=" * padding

    try:
        json_bytes = base64.urlsafe_b64decode(b64_part)
    except (binascii.Error, ValueError):
        raise Unauthenticated("Invalid token.", code="malformed_token") from None

    # Verify HMAC (constant-time)
    expected_sig = hmac.new(secret.encode(), json_bytes, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(sig_part.encode("utf-8"), expected_sig.encode()):
        raise Unauthenticated("Invalid token.", code="bad_signature")

    try:
        data = json.loads(json_bytes)
        payload = TokenPayload(sub=int(data["sub"]), iat=float(data["iat"]), exp=float(data["exp"]))
    except (ValueError, KeyError, TypeError):
        raise Unauthenticated("Invalid token.", code="malformed_token") from None

    current = time.time() if now is None else now
    if current > payload.exp:
        raise Unauthenticated("Token expired.", code="token_expired")

    return payload


def is_session_token(token_str: str) -> bool:
    """Quick check whether a string looks like a session token."""
    return token_str.startswith(TOKEN_PREFIX)
