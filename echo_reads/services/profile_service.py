"""Profile read/update and reading statistics."""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Optional

from echo_reads.db.engine import app_session
from echo_reads.db.models import utcnow
from echo_reads.db.repositories import follows_repo, user_books_repo, users_repo
from echo_reads.services.library_service import entry_view
from echo_reads.utils.errors import ConflictError, NotFoundError, ValidationError
from echo_reads.utils.logging import get_logger

LOG = get_logger("profile_service")

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.]{3,30}$")
USERNAME_RULE = "Username must be 3-30 characters and contain only letters, numbers, underscores, and periods"
MAX_BIO_LENGTH = 500
SHELF_PREVIEW = 6


def validate_username(username: str) -> str:
    if not USERNAME_PATTERN.match(username):
        raise ValidationError(USERNAME_RULE)
    return username


def get_profile(user_id: str) -> Dict[str, Any]:
    user = users_repo.get_user(user_id)
    if user is None:
        raise NotFoundError("Profile not found")
    return user.as_dict()


def update_profile(user_id: str, username: Any, bio: Any = None) -> Dict[str, Any]:
    cleaned_username: Optional[str] = username.strip() if isinstance(username, str) else None
    cleaned_bio: Optional[str] = bio.strip() if isinstance(bio, str) else None
    if cleaned_username:
        validate_username(cleaned_username)
    if cleaned_bio and len(cleaned_bio) > MAX_BIO_LENGTH:
        raise ValidationError(f"Bio cannot exceed {MAX_BIO_LENGTH} characters")
    with app_session():
        users_repo.ensure_user(user_id)
        if cleaned_username:
            existing = users_repo.get_user_by_username(cleaned_username)
            if existing is not None and existing.id != user_id:
                raise ConflictError("Username already taken")
        user = users_repo.update_user(user_id, username=cleaned_username or None, bio=cleaned_bio or None)
        payload = user.as_dict()
    LOG.info("Profile updated user=%s", user_id)
    return {"success": True, "profile": payload}


def get_profile_stats(user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    current = now or utcnow()
    year_start = datetime(current.year, 1, 1)
    next_year = datetime(current.year + 1, 1, 1)
    with app_session():
        user = users_repo.get_user(user_id)
        if user is None:
            raise NotFoundError("Profile not found")
        this_year = user_books_repo.finished_between(user_id, year_start, next_year)
        reading = user_books_repo.list_for_user(user_id, status="reading", order_by="updated", limit=SHELF_PREVIEW)
        finished = user_books_repo.list_for_user(user_id, status="finished", order_by="finished", limit=SHELF_PREVIEW)
        favorites = user_books_repo.list_for_user(user_id, favorites_only=True, order_by="updated")
        return {
            "user": user.as_dict(),
            "booksThisYear": len(this_year),
            "totalPages": sum((book.pages or 0) for _entry, book in this_year),
            "finishedTotal": user_books_repo.count_for_user(user_id, status="finished"),
            "libraryTotal": user_books_repo.count_for_user(user_id),
            "currentlyReading": [entry_view(e, b) for e, b in reading],
            "recentlyFinished": [entry_view(e, b) for e, b in finished],
            "favorites": [entry_view(e, b) for e, b in favorites],
            "followers": follows_repo.count_followers(user_id),
            "following": follows_repo.count_following(user_id),
        }


__all__ = [
    "USERNAME_PATTERN",
    "USERNAME_RULE",
    "validate_username",
    "get_profile",
    "update_profile",
    "get_profile_stats",
]
