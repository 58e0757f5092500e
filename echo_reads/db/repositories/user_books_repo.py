"""Repository helpers for library entries (user ↔ book pairs)."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from echo_reads.db.engine import app_session
from echo_reads.db.models import Book, UserBook

_UPDATABLE = {"status", "current_page", "rating", "is_favorite", "started_at", "finished_at"}


class UserBookExistsError(Exception):
    """Raised when the (user, book) pair is already on the shelf."""


def get_owned(user_id: str, user_book_id: str) -> Optional[Tuple[UserBook, Book]]:
    with app_session() as session:
        row = (
            session.query(UserBook, Book)
            .join(Book, Book.id == UserBook.book_id)
            .filter(UserBook.id == user_book_id, UserBook.user_id == user_id)
            .one_or_none()
        )
        return (row[0], row[1]) if row else None


def find_for_user_and_book(user_id: str, book_id: str) -> Optional[UserBook]:
    with app_session() as session:
        return (
            session.query(UserBook)
            .filter(UserBook.user_id == user_id, UserBook.book_id == book_id)
            .one_or_none()
        )


def create_user_book(
    user_id: str,
    book_id: str,
    *,
    status: str = "want",
    started_at: Optional[datetime] = None,
    finished_at: Optional[datetime] = None,
) -> UserBook:
    entry = UserBook(
        user_id=user_id,
        book_id=book_id,
        status=status,
        started_at=started_at,
        finished_at=finished_at,
    )
    try:
        with app_session() as session:
            session.add(entry)
            session.flush()
    except IntegrityError as exc:
        raise UserBookExistsError("Book already in your library") from exc
    return entry


def update_user_book(user_book_id: str, **fields) -> Optional[UserBook]:
    unknown = set(fields) - _UPDATABLE
    if unknown:
        raise ValueError(f"Unknown user book fields: {sorted(unknown)}")
    with app_session() as session:
        entry = session.get(UserBook, user_book_id)
        if entry is None:
            return None
        for key, value in fields.items():
            setattr(entry, key, value)
        session.flush()
        return entry


def delete_user_book(user_book_id: str) -> bool:
    with app_session() as session:
        entry = session.get(UserBook, user_book_id)
        if entry is None:
            return False
        session.delete(entry)
        return True


def list_for_user(
    user_id: str,
    *,
    status: Optional[str] = None,
    favorites_only: bool = False,
    order_by: str = "created",
    limit: Optional[int] = None,
) -> List[Tuple[UserBook, Book]]:
    """Library rows with their books, newest first by ``order_by`` column."""
    order_col = {
        "created": UserBook.created_at,
        "updated": UserBook.updated_at,
        "finished": UserBook.finished_at,
    }.get(order_by, UserBook.created_at)
    with app_session() as session:
        q = (
            session.query(UserBook, Book)
            .join(Book, Book.id == UserBook.book_id)
            .filter(UserBook.user_id == user_id)
        )
        if status:
            q = q.filter(UserBook.status == status)
        if favorites_only:
            q = q.filter(UserBook.is_favorite.is_(True))
        q = q.order_by(order_col.desc(), UserBook.id.asc())
        if limit:
            q = q.limit(limit)
        return [(ub, book) for ub, book in q.all()]


def list_for_users(
    user_ids: Iterable[str],
    *,
    statuses: Iterable[str],
    limit: int = 20,
) -> List[Tuple[UserBook, Book]]:
    ids = list(user_ids)
    if not ids:
        return []
    with app_session() as session:
        rows = (
            session.query(UserBook, Book)
            .join(Book, Book.id == UserBook.book_id)
            .filter(UserBook.user_id.in_(ids), UserBook.status.in_(list(statuses)))
            .order_by(UserBook.updated_at.desc())
            .limit(limit)
            .all()
        )
        return [(ub, book) for ub, book in rows]


def finished_between(user_id: str, start: datetime, end: datetime) -> List[Tuple[UserBook, Book]]:
    with app_session() as session:
        rows = (
            session.query(UserBook, Book)
            .join(Book, Book.id == UserBook.book_id)
            .filter(
                UserBook.user_id == user_id,
                UserBook.status == "finished",
                UserBook.finished_at >= start,
                UserBook.finished_at < end,
            )
            .order_by(UserBook.finished_at.desc())
            .all()
        )
        return [(ub, book) for ub, book in rows]


def count_for_user(user_id: str, status: Optional[str] = None) -> int:
    with app_session() as session:
        q = session.query(func.count(UserBook.id)).filter(UserBook.user_id == user_id)
        if status:
            q = q.filter(UserBook.status == status)
        return int(q.scalar() or 0)


def count_all() -> int:
    with app_session() as session:
        return int(session.query(func.count(UserBook.id)).scalar() or 0)


__all__ = [
    "UserBookExistsError",
    "get_owned",
    "find_for_user_and_book",
    "create_user_book",
    "update_user_book",
    "delete_user_book",
    "list_for_user",
    "list_for_users",
    "finished_between",
    "count_for_user",
    "count_all",
]
