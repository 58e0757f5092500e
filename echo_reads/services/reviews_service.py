"""Book reviews with per-review privacy."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from echo_reads.db.engine import app_session
from echo_reads.db.repositories import books_repo, reviews_repo, users_repo
from echo_reads.utils.errors import NotFoundError, ValidationError
from echo_reads.utils.logging import get_logger

LOG = get_logger("reviews_service")

MAX_REVIEW_LENGTH = 10000


def _clean_content(content: Any) -> str:
    text = content.strip() if isinstance(content, str) else ""
    if not text:
        raise ValidationError("Review content cannot be empty")
    if len(text) > MAX_REVIEW_LENGTH:
        raise ValidationError(f"Review content cannot exceed {MAX_REVIEW_LENGTH} characters")
    return text


def create_or_update_review(user_id: str, book_id: str, content: Any, is_private: Any = False) -> Dict[str, Any]:
    if not book_id:
        raise ValidationError("Missing required fields: bookId, content")
    text = _clean_content(content)
    with app_session():
        if books_repo.get_book(book_id) is None:
            raise NotFoundError("Book not found")
        users_repo.ensure_user(user_id)
        review, created = reviews_repo.upsert_review(user_id, book_id, content=text, is_private=bool(is_private))
        payload = review.as_dict()
    LOG.info("Review %s user=%s book=%s", "created" if created else "updated", user_id, book_id)
    return {"success": True, "created": created, "review": payload}


def _owned_review(user_id: str, review_id: str, message: str):
    review = reviews_repo.get_review(review_id)
    if review is None or review.user_id != user_id:
        raise NotFoundError(message)
    return review


def update_review(user_id: str, review_id: str, content: Any, is_private: Optional[bool] = None) -> Dict[str, Any]:
    with app_session():
        _owned_review(user_id, review_id, "Review not found or you don't have permission to update it")
        if not content:
            raise ValidationError("Missing required field: content")
        text = _clean_content(content)
        review = reviews_repo.update_review(
            review_id,
            content=text,
            is_private=bool(is_private) if is_private is not None else None,
        )
        return {"success": True, "review": review.as_dict()}


def delete_review(user_id: str, review_id: str) -> Dict[str, Any]:
    with app_session():
        _owned_review(user_id, review_id, "Review not found")
        reviews_repo.delete_review(review_id)
    LOG.info("Review deleted user=%s review=%s", user_id, review_id)
    return {"success": True}


def get_review(viewer_id: Optional[str], review_id: str) -> Dict[str, Any]:
    """Single review; private reviews read as missing for anyone but the author."""
    with app_session():
        review = reviews_repo.get_review(review_id)
        if review is None or (review.is_private and review.user_id != viewer_id):
            raise NotFoundError("Review not found")
        payload = review.as_dict()
        author = users_repo.get_user(review.user_id)
        book = books_repo.get_book(review.book_id)
        payload["user"] = author.public_dict() if author else None
        payload["book"] = book.as_dict() if book else None
        return payload


def list_reviews(viewer_id: str, book_id: Optional[str] = None) -> List[Dict[str, Any]]:
    if book_id:
        items = []
        for review, author in reviews_repo.list_for_book(book_id, viewer_id=viewer_id):
            payload = review.as_dict()
            payload["user"] = author.public_dict()
            items.append(payload)
        return items
    items = []
    for review, book in reviews_repo.list_for_user(viewer_id):
        payload = review.as_dict()
        payload["book"] = book.as_dict()
        items.append(payload)
    return items


__all__ = [
    "create_or_update_review",
    "update_review",
    "delete_review",
    "get_review",
    "list_reviews",
]
