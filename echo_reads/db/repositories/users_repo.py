"""Repository helpers for user accounts."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from echo_reads.db.engine import app_session
from echo_reads.db.models import User
from echo_reads.db.repositories import like_pattern

_UPDATABLE = {
    "email",
    "username",
    "bio",
    "role",
    "is_premium",
    "premium_since",
    "stripe_customer_id",
    "subscription_anniversary",
}


class UserExistsError(Exception):
    """Raised when an insert or update collides with a unique email/username."""


def get_user(user_id: str) -> Optional[User]:
    with app_session() as session:
        return session.get(User, user_id)


def get_users(user_ids: Iterable[str]) -> List[User]:
    ids = list({uid for uid in user_ids if uid})
    if not ids:
        return []
    with app_session() as session:
        return session.query(User).filter(User.id.in_(ids)).all()


def get_user_by_username(username: str) -> Optional[User]:
    with app_session() as session:
        return session.query(User).filter(User.username == username).one_or_none()


def get_user_by_email(email: str) -> Optional[User]:
    with app_session() as session:
        return session.query(User).filter(func.lower(User.email) == email.lower()).one_or_none()


def get_user_by_stripe_customer(customer_id: str) -> Optional[User]:
    with app_session() as session:
        return session.query(User).filter(User.stripe_customer_id == customer_id).one_or_none()


def ensure_user(user_id: str, email: Optional[str] = None) -> User:
    """Return the user row, inserting a placeholder when the webhook sync lagged."""
    with app_session() as session:
        user = session.get(User, user_id)
        if user is None:
            user = User(id=user_id, email=email or None)
            session.add(user)
            session.flush()
        return user


def upsert_user(user_id: str, *, email: Optional[str], username: Optional[str] = None) -> User:
    try:
        with app_session() as session:
            user = session.get(User, user_id)
            if user is None:
                user = User(id=user_id, email=email, username=username)
                session.add(user)
            else:
                if email is not None:
                    user.email = email
                if username is not None and not user.username:
                    user.username = username
            session.flush()
            return user
    except IntegrityError as exc:
        raise UserExistsError("Email or username already taken") from exc


def update_user(user_id: str, **fields) -> Optional[User]:
    unknown = set(fields) - _UPDATABLE
    if unknown:
        raise ValueError(f"Unknown user fields: {sorted(unknown)}")
    with app_session() as session:
        user = session.get(User, user_id)
        if user is None:
            return None
        for key, value in fields.items():
            setattr(user, key, value)
        session.flush()
        return user


def delete_user(user_id: str) -> bool:
    with app_session() as session:
        user = session.get(User, user_id)
        if user is None:
            return False
        session.delete(user)
        return True


def search_users(query: str, *, exclude_id: Optional[str] = None, limit: int = 20) -> List[User]:
    pattern = like_pattern(query)
    with app_session() as session:
        q = session.query(User).filter(
            or_(User.username.ilike(pattern, escape="\\"), User.email.ilike(pattern, escape="\\"))
        )
        if exclude_id:
            q = q.filter(User.id != exclude_id)
        return q.order_by(User.username.asc()).limit(limit).all()


def list_users(limit: Optional[int] = None) -> List[User]:
    with app_session() as session:
        q = session.query(User).order_by(User.created_at.desc())
        if limit:
            q = q.limit(limit)
        return q.all()


def count_users(since: Optional[datetime] = None) -> int:
    with app_session() as session:
        q = session.query(func.count(User.id))
        if since is not None:
            q = q.filter(User.created_at >= since)
        return int(q.scalar() or 0)


__all__ = [
    "UserExistsError",
    "get_user",
    "get_users",
    "get_user_by_username",
    "get_user_by_email",
    "get_user_by_stripe_customer",
    "ensure_user",
    "upsert_user",
    "update_user",
    "delete_user",
    "search_users",
    "list_users",
    "count_users",
]
