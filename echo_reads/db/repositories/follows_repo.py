"""Repository helpers for the user follow graph."""
from __future__ import annotations

from typing import List

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from echo_reads.db.engine import app_session
from echo_reads.db.models import Follow, User


class FollowExistsError(Exception):
    """Raised when the follower already follows the target."""


def is_following(follower_id: str, following_id: str) -> bool:
    with app_session() as session:
        return session.get(Follow, (follower_id, following_id)) is not None


def create_follow(follower_id: str, following_id: str) -> Follow:
    follow = Follow(follower_id=follower_id, following_id=following_id)
    try:
        with app_session() as session:
            session.add(follow)
            session.flush()
    except IntegrityError as exc:
        raise FollowExistsError("Already following this user") from exc
    return follow


def delete_follow(follower_id: str, following_id: str) -> bool:
    with app_session() as session:
        follow = session.get(Follow, (follower_id, following_id))
        if follow is None:
            return False
        session.delete(follow)
        return True


def following_ids(follower_id: str) -> List[str]:
    with app_session() as session:
        rows = session.query(Follow.following_id).filter(Follow.follower_id == follower_id).all()
        return [row[0] for row in rows]


def list_following(user_id: str) -> List[User]:
    with app_session() as session:
        return (
            session.query(User)
            .join(Follow, Follow.following_id == User.id)
            .filter(Follow.follower_id == user_id)
            .order_by(Follow.created_at.desc())
            .all()
        )


def list_followers(user_id: str) -> List[User]:
    with app_session() as session:
        return (
            session.query(User)
            .join(Follow, Follow.follower_id == User.id)
            .filter(Follow.following_id == user_id)
            .order_by(Follow.created_at.desc())
            .all()
        )


def count_followers(user_id: str) -> int:
    with app_session() as session:
        return int(session.query(func.count()).select_from(Follow).filter(Follow.following_id == user_id).scalar() or 0)


def count_following(user_id: str) -> int:
    with app_session() as session:
        return int(session.query(func.count()).select_from(Follow).filter(Follow.follower_id == user_id).scalar() or 0)


__all__ = [
    "FollowExistsError",
    "is_following",
    "create_follow",
    "delete_follow",
    "following_ids",
    "list_following",
    "list_followers",
    "count_followers",
    "count_following",
]
