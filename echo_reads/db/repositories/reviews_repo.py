"""Repository helpers for book reviews."""
from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func, or_

from echo_reads.db.engine import app_session
from echo_reads.db.models import Book, Review, User, utcnow


def get_review(review_id: str) -> Optional[Review]:
    with app_session() as session:
        return session.get(Review, review_id)


def get_review_for(user_id: str, book_id: str) -> Optional[Review]:
    with app_session() as session:
        return (
            session.query(Review)
            .filter(Review.user_id == user_id, Review.book_id == book_id)
            .one_or_none()
        )


def upsert_review(user_id: str, book_id: str, *, content: str, is_private: bool) -> Tuple[Review, bool]:
    """Insert or update the (user, book) review. Returns (review, created)."""
    with app_session() as session:
        review = (
            session.query(Review)
            .filter(Review.user_id == user_id, Review.book_id == book_id)
            .one_or_none()
        )
        if review is not None:
            review.content = content
            review.is_private = is_private
            review.updated_at = utcnow()
            session.flush()
            return review, False
        review = Review(user_id=user_id, book_id=book_id, content=content, is_private=is_private)
        session.add(review)
        session.flush()
        return review, True


def update_review(review_id: str, *, content: Optional[str] = None, is_private: Optional[bool] = None) -> Optional[Review]:
    with app_session() as session:
        review = session.get(Review, review_id)
        if review is None:
            return None
        if content is not None:
            review.content = content
        if is_private is not None:
            review.is_private = is_private
        review.updated_at = utcnow()
        session.flush()
        return review


def delete_review(review_id: str) -> bool:
    with app_session() as session:
        review = session.get(Review, review_id)
        if review is None:
            return False
        session.delete(review)
        return True


def list_for_book(book_id: str, *, viewer_id: Optional[str] = None) -> List[Tuple[Review, User]]:
    """Public reviews of a book plus the viewer's own (even when private)."""
    with app_session() as session:
        visibility = Review.is_private.is_(False)
        if viewer_id:
            visibility = or_(visibility, Review.user_id == viewer_id)
        rows = (
            session.query(Review, User)
            .join(User, User.id == Review.user_id)
            .filter(Review.book_id == book_id, visibility)
            .order_by(Review.created_at.desc())
            .all()
        )
        return [(review, user) for review, user in rows]


def list_for_user(user_id: str) -> List[Tuple[Review, Book]]:
    with app_session() as session:
        rows = (
            session.query(Review, Book)
            .join(Book, Book.id == Review.book_id)
            .filter(Review.user_id == user_id)
            .order_by(Review.created_at.desc())
            .all()
        )
        return [(review, book) for review, book in rows]


def public_for_users(user_ids: Iterable[str], *, limit: int = 10) -> List[Tuple[Review, Book]]:
    ids = list(user_ids)
    if not ids:
        return []
    with app_session() as session:
        rows = (
            session.query(Review, Book)
            .join(Book, Book.id == Review.book_id)
            .filter(Review.user_id.in_(ids), Review.is_private.is_(False))
            .order_by(Review.created_at.desc())
            .limit(limit)
            .all()
        )
        return [(review, book) for review, book in rows]


def count_all() -> int:
    with app_session() as session:
        return int(session.query(func.count(Review.id)).scalar() or 0)


__all__ = [
    "get_review",
    "get_review_for",
    "upsert_review",
    "update_review",
    "delete_review",
    "list_for_book",
    "list_for_user",
    "public_for_users",
    "count_all",
]
