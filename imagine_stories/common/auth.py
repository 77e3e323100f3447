from __future__ import annotations

import base64
import hashlib
import hmac
import time
from typing import Optional

HASH_NAME = "sha256"
ADMIN_ROLE = "admin"


def check_password(candidate: str, expected: str) -> bool:
    if not candidate or not expected:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))


def _signature(payload: str, secret: str) -> str:
    dk = hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), HASH_NAME).digest()
    return base64.urlsafe_b64encode(dk).decode("ascii").rstrip("=")


def sign_session(secret: str, role: str = ADMIN_ROLE, now: Optional[float] = None) -> str:
    if not secret:
        raise ValueError("Session secret cannot be empty.")
    issued = int(now if now is not None else time.time())
    payload = f"{role}.{issued}"
    return f"{payload}.{_signature(payload, secret)}"


def verify_session(
    token: Optional[str],
    secret: str,
    max_age: int,
    role: str = ADMIN_ROLE,
    now: Optional[float] = None,
) -> bool:
    if not token or not secret:
        return False
    try:
        token_role, issued_str, sig = token.split(".", 2)
        issued = int(issued_str)
    except ValueError:
        return False
    if token_role != role:
        return False
    expected = _signature(f"{token_role}.{issued}", secret)
    if not hmac.compare_digest(sig, expected):
        return False
    current = now if now is not None else time.time()
    return 0 <= current - issued <= max_age
