"""Identity & permission helpers.

The current user is taken from the Flask session (``user_id``) or, for API
clients, from a Clerk session token in ``Authorization: Bearer …``.
Roles come from the local ``users`` row.
"""
from __future__ import annotations

from typing import Any, Optional

from flask import g, has_request_context, request, session

from echo_reads.db.repositories import users_repo
from echo_reads.services import clerk_service
from echo_reads.utils.errors import PermissionDenied, Unauthorized

ROLE_LEVELS = {"user": 0, "moderator": 1, "admin": 2}
_UNSET = object()


def normalize_email(raw: Any) -> Optional[str]:
    if not isinstance(raw, str):
        return None
    cleaned = raw.strip().lower()
    return cleaned or None


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def get_current_user_id() -> Optional[str]:
    if not has_request_context():
        return None
    cached = g.get("_echo_user_id", _UNSET)
    if cached is not _UNSET:
        return cached
    uid = session.get("user_id")
    user_id: Optional[str] = str(uid) if uid else None
    if user_id is None:
        token = _bearer_token()
        if token:
            claims = clerk_service.verify_session_token(token)
            user_id = claims.get("sub") if claims else None
    g._echo_user_id = user_id
    return user_id


def require_user_id() -> str:
    user_id = get_current_user_id()
    if not user_id:
        raise Unauthorized()
    return user_id


def role_level(role: Optional[str]) -> int:
    return ROLE_LEVELS.get(role or "user", 0)


def get_user_role(user_id: str) -> str:
    user = users_repo.get_user(user_id)
    return (user.role if user else None) or "user"


def has_role(user_id: str, required: str) -> bool:
    return role_level(get_user_role(user_id)) >= role_level(required)


def require_role(required: str) -> str:
    """Return the current user id when their role is at least ``required``."""
    user_id = require_user_id()
    if not has_role(user_id, required):
        raise PermissionDenied()
    return user_id


__all__ = [
    "ROLE_LEVELS",
    "normalize_email",
    "get_current_user_id",
    "require_user_id",
    "role_level",
    "get_user_role",
    "has_role",
    "require_role",
]
