"""Follow graph, activity feed and user discovery."""
from __future__ import annotations

from typing import Any, Dict, List

from echo_reads.db.engine import app_session
from echo_reads.db.repositories import follows_repo, reviews_repo, user_books_repo, users_repo
from echo_reads.utils.errors import ConflictError, NotFoundError, ValidationError
from echo_reads.utils.logging import get_logger

LOG = get_logger("social_service")

FEED_BOOK_LIMIT = 20
FEED_REVIEW_LIMIT = 10
USER_SEARCH_LIMIT = 20


def follow_user(user_id: str, following_id: str) -> Dict[str, Any]:
    if not following_id:
        raise ValidationError("Missing required field: userId")
    if user_id == following_id:
        raise ValidationError("You cannot follow yourself")
    with app_session():
        if users_repo.get_user(following_id) is None:
            raise NotFoundError("User not found")
        users_repo.ensure_user(user_id)
        if follows_repo.is_following(user_id, following_id):
            raise ConflictError("Already following this user")
        follows_repo.create_follow(user_id, following_id)
    LOG.info("Follow user=%s -> %s", user_id, following_id)
    return {"success": True}


def unfollow_user(user_id: str, following_id: str) -> Dict[str, Any]:
    removed = follows_repo.delete_follow(user_id, following_id)
    return {"success": True, "removed": removed}


def _display_user(user) -> Dict[str, Any]:
    payload = user.public_dict()
    payload["displayName"] = user.username or user.email
    return payload


def get_feed(user_id: str) -> Dict[str, Any]:
    """Followed users' reading activity and public reviews, newest first."""
    with app_session():
        following = follows_repo.following_ids(user_id)
        if not following:
            return {"following": 0, "activities": []}
        authors = {u.id: u for u in users_repo.get_users(following)}
        activities: List[Dict[str, Any]] = []
        for entry, book in user_books_repo.list_for_users(
            following, statuses=("reading", "finished"), limit=FEED_BOOK_LIMIT
        ):
            data = entry.as_dict()
            data["book"] = book.as_dict()
            author = authors.get(entry.user_id)
            data["user"] = _display_user(author) if author else None
            activities.append({"type": "book", "date": entry.updated_at, "data": data})
        for review, book in reviews_repo.public_for_users(following, limit=FEED_REVIEW_LIMIT):
            data = review.as_dict()
            data["book"] = book.as_dict()
            author = authors.get(review.user_id)
            data["user"] = _display_user(author) if author else None
            activities.append({"type": "review", "date": review.created_at, "data": data})
    activities.sort(key=lambda item: item["date"], reverse=True)
    for item in activities:
        item["date"] = item["date"].isoformat()
    return {"following": len(following), "activities": activities}


def search_users(user_id: str, query: str) -> Dict[str, Any]:
    term = (query or "").strip()
    following = set(follows_repo.following_ids(user_id))
    if not term:
        return {"results": [], "followingIds": sorted(following)}
    results = []
    for user in users_repo.search_users(term, exclude_id=user_id, limit=USER_SEARCH_LIMIT):
        payload = _display_user(user)
        payload["isFollowing"] = user.id in following
        results.append(payload)
    return {"results": results, "followingIds": sorted(following)}


def list_followers(user_id: str) -> List[Dict[str, Any]]:
    return [_display_user(u) for u in follows_repo.list_followers(user_id)]


def list_following(user_id: str) -> List[Dict[str, Any]]:
    return [_display_user(u) for u in follows_repo.list_following(user_id)]


__all__ = [
    "follow_user",
    "unfollow_user",
    "get_feed",
    "search_users",
    "list_followers",
    "list_following",
]
