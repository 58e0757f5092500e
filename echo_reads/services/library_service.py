"""Personal library operations: add, status, progress, rating, favorites."""
from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from echo_reads.db.engine import app_session
from echo_reads.db.models import READING_STATUSES, Book, UserBook, utcnow
from echo_reads.db.repositories import books_repo, follows_repo, reviews_repo, user_books_repo, users_repo
from echo_reads.services import subscriptions_service
from echo_reads.utils.errors import ConflictError, LimitReachedError, NotFoundError, ValidationError
from echo_reads.utils.logging import get_logger

LOG = get_logger("library_service")

_NOT_FOUND = "Book not found in your library"


def entry_view(entry: UserBook, book: Book) -> Dict[str, Any]:
    payload = entry.as_dict()
    payload["book"] = book.as_dict()
    return payload


def validate_status(status: Any) -> str:
    if status not in READING_STATUSES:
        raise ValidationError("Invalid status. Must be one of: want, reading, finished")
    return status


def _int_or_none(value: Any, field: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{field} must be an integer") from None


def normalize_book_data(book_data: Any) -> Dict[str, Any]:
    if not isinstance(book_data, dict):
        raise ValidationError("Book data is required")
    title = str(book_data.get("title") or "").strip()
    if not title:
        raise ValidationError("Book title is required")
    author = str(book_data.get("author") or "").strip() or "Unknown Author"
    isbn = str(book_data.get("isbn") or "").strip() or None
    pages = _int_or_none(book_data.get("pages"), "pages")
    if pages is not None and pages <= 0:
        pages = None
    return {
        "id": book_data.get("id") or None,
        "isbn": isbn,
        "title": title,
        "author": author,
        "cover_url": book_data.get("coverUrl") or book_data.get("cover_url") or None,
        "pages": pages,
        "published_year": _int_or_none(book_data.get("publishedYear", book_data.get("published_year")), "publishedYear"),
    }


def _find_or_create_book(data: Dict[str, Any]) -> Book:
    if data["id"]:
        found = books_repo.get_book(data["id"])
        if found is not None:
            return found
    if data["isbn"]:
        found = books_repo.get_book_by_isbn(data["isbn"])
        if found is not None:
            return found
    else:
        found = books_repo.get_book_by_title_author(data["title"], data["author"])
        if found is not None:
            return found
    return books_repo.create_book(
        isbn=data["isbn"],
        title=data["title"],
        author=data["author"],
        cover_url=data["cover_url"],
        pages=data["pages"],
        published_year=data["published_year"],
    )


def add_book_to_library(user_id: str, book_data: Any, status: Any = "want") -> Dict[str, Any]:
    status = validate_status(status or "want")
    data = normalize_book_data(book_data)
    with app_session():
        users_repo.ensure_user(user_id)
        allowed = subscriptions_service.can_add_book(user_id)
        if not allowed["allowed"]:
            raise LimitReachedError(allowed["reason"])
        book = _find_or_create_book(data)
        if user_books_repo.find_for_user_and_book(user_id, book.id) is not None:
            raise ConflictError("Book already in your library")
        now = utcnow()
        entry = user_books_repo.create_user_book(
            user_id,
            book.id,
            status=status,
            started_at=now if status == "reading" else None,
            finished_at=now if status == "finished" else None,
        )
        view = entry_view(entry, book)
        recorded = subscriptions_service.record_book_usage(user_id)
    LOG.info("Book added user=%s book=%s status=%s", user_id, book.id, status)
    usage = subscriptions_service.notify_usage_threshold(user_id, recorded)
    return {"userBook": view, "usage": usage}


def _owned(user_id: str, user_book_id: str):
    found = user_books_repo.get_owned(user_id, user_book_id)
    if found is None:
        raise NotFoundError(_NOT_FOUND)
    return found


def get_library_book(user_id: str, user_book_id: str) -> Dict[str, Any]:
    entry, book = _owned(user_id, user_book_id)
    return entry_view(entry, book)


def list_library(user_id: str, status: Optional[str] = None) -> List[Dict[str, Any]]:
    if status:
        validate_status(status)
    return [entry_view(entry, book) for entry, book in user_books_repo.list_for_user(user_id, status=status)]


def get_book_detail(user_id: Optional[str], book_id: str) -> Dict[str, Any]:
    """Book page data: the caller's entry and review plus followed users' public reviews."""
    with app_session():
        book = books_repo.get_book(book_id)
        if book is None:
            raise NotFoundError("Book not found")
        detail: Dict[str, Any] = {"book": book.as_dict(), "userBook": None, "userReview": None, "friendReviews": []}
        if not user_id:
            return detail
        entry = user_books_repo.find_for_user_and_book(user_id, book_id)
        review = reviews_repo.get_review_for(user_id, book_id)
        detail["userBook"] = entry.as_dict() if entry else None
        detail["userReview"] = review.as_dict() if review else None
        following = set(follows_repo.following_ids(user_id))
        if following:
            for other, author in reviews_repo.list_for_book(book_id):
                if other.user_id in following:
                    payload = other.as_dict()
                    payload["user"] = author.public_dict()
                    detail["friendReviews"].append(payload)
        return detail


def update_book_status(user_id: str, user_book_id: str, status: Any) -> Dict[str, Any]:
    status = validate_status(status)
    with app_session():
        entry, book = _owned(user_id, user_book_id)
        changes: Dict[str, Any] = {"status": status}
        now = utcnow()
        if status == "reading" and entry.started_at is None:
            changes["started_at"] = now
        if status == "finished" and entry.finished_at is None:
            changes["finished_at"] = now
        entry = user_books_repo.update_user_book(entry.id, **changes)
        return entry_view(entry, book)


def remove_book_from_library(user_id: str, user_book_id: str) -> Dict[str, Any]:
    with app_session():
        entry, _book = _owned(user_id, user_book_id)
        user_books_repo.delete_user_book(entry.id)
    LOG.info("Book removed user=%s user_book=%s", user_id, user_book_id)
    return {"success": True}


def update_reading_progress(user_id: str, user_book_id: str, current_page: Any) -> Dict[str, Any]:
    page = _int_or_none(current_page, "currentPage")
    if page is None or page < 0:
        raise ValidationError("Current page must be a non-negative number")
    with app_session():
        entry, book = _owned(user_id, user_book_id)
        if book.pages and page > book.pages:
            raise ValidationError("Current page cannot exceed total pages")
        changes: Dict[str, Any] = {"current_page": page}
        if book.pages and page == book.pages and entry.status != "finished":
            now = utcnow()
            changes["status"] = "finished"
            if entry.finished_at is None:
                changes["finished_at"] = now
        entry = user_books_repo.update_user_book(entry.id, **changes)
        return entry_view(entry, book)


def update_book_page_count(user_id: str, user_book_id: str, page_count: Any) -> Dict[str, Any]:
    pages = _int_or_none(page_count, "pageCount")
    if pages is None or pages <= 0:
        raise ValidationError("Page count must be a positive number")
    with app_session():
        entry, book = _owned(user_id, user_book_id)
        book = books_repo.update_book(book.id, pages=pages)
        if entry.current_page > pages:
            entry = user_books_repo.update_user_book(entry.id, current_page=pages)
        return entry_view(entry, book)


def rate_book(user_id: str, user_book_id: str, rating: Any) -> Dict[str, Any]:
    if (
        isinstance(rating, bool)
        or not isinstance(rating, (int, float))
        or not math.isfinite(rating)
        or int(rating) != rating
    ):
        raise ValidationError("Rating must be a number between 1 and 5")
    if rating < 1 or rating > 5:
        raise ValidationError("Rating must be between 1 and 5")
    with app_session():
        entry, book = _owned(user_id, user_book_id)
        entry = user_books_repo.update_user_book(entry.id, rating=int(rating))
        return entry_view(entry, book)


def toggle_book_favorite(user_id: str, user_book_id: str, is_favorite: Any) -> Dict[str, Any]:
    if not isinstance(is_favorite, bool):
        raise ValidationError("isFavorite must be a boolean")
    with app_session():
        entry, book = _owned(user_id, user_book_id)
        entry = user_books_repo.update_user_book(entry.id, is_favorite=is_favorite)
        return entry_view(entry, book)


__all__ = [
    "entry_view",
    "validate_status",
    "normalize_book_data",
    "add_book_to_library",
    "get_library_book",
    "get_book_detail",
    "list_library",
    "update_book_status",
    "remove_book_from_library",
    "update_reading_progress",
    "update_book_page_count",
    "rate_book",
    "toggle_book_favorite",
]
