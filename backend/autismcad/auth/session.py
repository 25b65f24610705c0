"""
AutismCad Backend — Signed Tokens
==================================

What:  HS256 JWTs (PyJWT) for two purposes:
         - session tokens:  sub=<user id>, role, typ="session", exp=now+8h
         - file tokens:     typ="file", op="put"|"get", key, content type, short exp
Why:   Stateless sessions: the API never stores tokens, so logout is a
       client-side concern and any worker can validate any request.
How:   Both kinds are signed with settings.auth_secret; the `typ` claim keeps
       a file token from being replayed as a session and vice versa.
"""

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import jwt

from autismcad.config import settings
from autismcad.exceptions import ForbiddenError, UnauthorizedError

ALGORITHM = "HS256"
DEFAULT_ROLE = "terapeuta"


@dataclass(frozen=True)
class SessionUser:
    """The authenticated caller as carried by the token."""

    id: int
    role: str = DEFAULT_ROLE


def create_session_token(user_id: int, role: Optional[str]) -> Tuple[str, int]:
    """Returns (token, expires_in_seconds)."""
    now = int(time.time())
    max_age = settings.session_max_age_seconds
    payload = {
        "sub": str(user_id),
        "role": role or DEFAULT_ROLE,
        "typ": "session",
        "iat": now,
        "exp": now + max_age,
    }
    return jwt.encode(payload, settings.auth_secret, algorithm=ALGORITHM), max_age


def decode_session_token(token: str) -> SessionUser:
    try:
        claims = jwt.decode(token, settings.auth_secret, algorithms=[ALGORITHM])
    except jwt.InvalidTokenError as e:
        raise UnauthorizedError(context={"reason": type(e).__name__})

    if claims.get("typ") != "session":
        raise UnauthorizedError(context={"reason": "wrong_token_type"})
    try:
        user_id = int(claims.get("sub", ""))
    except (TypeError, ValueError):
        raise UnauthorizedError(context={"reason": "bad_subject"})
    if user_id <= 0:
        raise UnauthorizedError(context={"reason": "bad_subject"})

    return SessionUser(id=user_id, role=claims.get("role") or DEFAULT_ROLE)


def create_file_token(
    op: str,
    key: str,
    content_type: Optional[str] = None,
    expires_in: Optional[int] = None,
) -> str:
    now = int(time.time())
    payload: Dict[str, Any] = {
        "typ": "file",
        "op": op,
        "key": key,
        "iat": now,
        "exp": now + (expires_in or settings.signed_url_expires_seconds),
    }
    if content_type:
        payload["ct"] = content_type
    return jwt.encode(payload, settings.auth_secret, algorithm=ALGORITHM)


def decode_file_token(token: str, op: str) -> Dict[str, Any]:
    """Validates a signed file URL token for the given operation; 403 otherwise."""
    try:
        claims = jwt.decode(token, settings.auth_secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise ForbiddenError("Link expirado")
    except jwt.InvalidTokenError:
        raise ForbiddenError("Link invalido")

    if claims.get("typ") != "file" or claims.get("op") != op or not claims.get("key"):
        raise ForbiddenError("Link invalido")
    return claims
