"""Follow graph rules, activity feed and user search."""
from __future__ import annotations

import pytest  # type: ignore[import-not-found]

from echo_reads.db.engine import init_engine_once, reset_for_tests
from echo_reads.db.repositories import books_repo, reviews_repo, user_books_repo, users_repo
from echo_reads.services import social_service
from echo_reads.utils.errors import ConflictError, NotFoundError, ValidationError


@pytest.fixture(autouse=True)
def in_memory_db(monkeypatch):
    reset_for_tests(drop=True)
    monkeypatch.setenv("ECHO_READS_DB_PATH", ":memory:")
    init_engine_once()
    users_repo.upsert_user("user_a", email="alice@example.com", username="alice")
    users_repo.upsert_user("user_b", email="bob@example.com", username="bob")
    users_repo.upsert_user("user_c", email="carol@example.com", username="carol_100%")
    yield
    reset_for_tests(drop=True)


def test_follow_rules():
    with pytest.raises(ValidationError) as exc:
        social_service.follow_user("user_a", "user_a")
    assert str(exc.value) == "You cannot follow yourself"
    with pytest.raises(NotFoundError):
        social_service.follow_user("user_a", "user_missing")

    assert social_service.follow_user("user_a", "user_b") == {"success": True}
    with pytest.raises(ConflictError) as exc:
        social_service.follow_user("user_a", "user_b")
    assert str(exc.value) == "Already following this user"

    assert [u["username"] for u in social_service.list_following("user_a")] == ["bob"]
    assert [u["username"] for u in social_service.list_followers("user_b")] == ["alice"]


def test_unfollow_is_idempotent():
    social_service.follow_user("user_a", "user_b")
    assert social_service.unfollow_user("user_a", "user_b")["removed"] is True
    assert social_service.unfollow_user("user_a", "user_b")["removed"] is False


def test_feed_is_empty_without_follows():
    assert social_service.get_feed("user_a") == {"following": 0, "activities": []}


def test_feed_merges_reading_activity_and_public_reviews():
    book = books_repo.create_book(isbn=None, title="Emma", author="Jane Austen")
    other = books_repo.create_book(isbn=None, title="Dune", author="Frank Herbert")
    user_books_repo.create_user_book("user_b", book.id, status="reading")
    user_books_repo.create_user_book("user_b", other.id, status="want")
    reviews_repo.upsert_review("user_b", book.id, content="Charming", is_private=False)
    reviews_repo.upsert_review("user_b", other.id, content="Private thoughts", is_private=True)
    social_service.follow_user("user_a", "user_b")

    feed = social_service.get_feed("user_a")

    assert feed["following"] == 1
    kinds = sorted(item["type"] for item in feed["activities"])
    assert kinds == ["book", "review"]
    review = next(i for i in feed["activities"] if i["type"] == "review")
    assert review["data"]["content"] == "Charming"
    assert review["data"]["user"]["displayName"] == "bob"
    dates = [item["date"] for item in feed["activities"]]
    assert dates == sorted(dates, reverse=True)


def test_search_users_excludes_self_and_marks_following():
    social_service.follow_user("user_a", "user_b")
    result = social_service.search_users("user_a", "example.com")
    usernames = {r["username"]: r["isFollowing"] for r in result["results"]}
    assert usernames == {"bob": True, "carol_100%": False}
    assert result["followingIds"] == ["user_b"]


def test_search_users_treats_wildcards_literally():
    result = social_service.search_users("user_a", "100%")
    assert [r["username"] for r in result["results"]] == ["carol_100%"]
    assert social_service.search_users("user_a", "  ")["results"] == []
