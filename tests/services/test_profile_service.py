"""Profile updates and reading statistics."""
from __future__ import annotations

from datetime import datetime

import pytest  # type: ignore[import-not-found]

from echo_reads.db.engine import init_engine_once, reset_for_tests
from echo_reads.db.repositories import books_repo, follows_repo, user_books_repo, users_repo
from echo_reads.services import profile_service
from echo_reads.utils.errors import ConflictError, NotFoundError, ValidationError


@pytest.fixture(autouse=True)
def in_memory_db(monkeypatch):
    reset_for_tests(drop=True)
    monkeypatch.setenv("ECHO_READS_DB_PATH", ":memory:")
    init_engine_once()
    yield
    reset_for_tests(drop=True)


def test_missing_profile_is_not_found():
    with pytest.raises(NotFoundError) as exc:
        profile_service.get_profile("user_ghost")
    assert str(exc.value) == "Profile not found"


@pytest.mark.parametrize("username", ["ab", "has space", "x" * 31, "emoji🙂"])
def test_invalid_usernames_are_rejected(username):
    with pytest.raises(ValidationError) as exc:
        profile_service.update_profile("user_1", username, None)
    assert str(exc.value) == profile_service.USERNAME_RULE


def test_update_profile_sets_fields_and_blank_clears():
    users_repo.ensure_user("user_1")
    result = profile_service.update_profile("user_1", " reader.one ", "Loves sci-fi")
    assert result["profile"]["username"] == "reader.one"
    assert result["profile"]["bio"] == "Loves sci-fi"

    cleared = profile_service.update_profile("user_1", "", "  ")
    assert cleared["profile"]["username"] is None
    assert cleared["profile"]["bio"] is None


def test_username_taken_by_someone_else():
    users_repo.upsert_user("user_1", email="a@example.com", username="taken")
    users_repo.ensure_user("user_2")
    with pytest.raises(ConflictError) as exc:
        profile_service.update_profile("user_2", "taken", None)
    assert str(exc.value) == "Username already taken"
    assert profile_service.update_profile("user_1", "taken", "same user")["success"] is True


def test_profile_stats_counts_this_years_books():
    users_repo.ensure_user("user_1")
    users_repo.ensure_user("user_2")
    emma = books_repo.create_book(isbn=None, title="Emma", author="Jane Austen", pages=300)
    dune = books_repo.create_book(isbn=None, title="Dune", author="Frank Herbert", pages=400)
    hobbit = books_repo.create_book(isbn=None, title="The Hobbit", author="J.R.R. Tolkien", pages=250)
    user_books_repo.create_user_book("user_1", emma.id, status="finished", finished_at=datetime(2024, 3, 1))
    user_books_repo.create_user_book("user_1", dune.id, status="finished", finished_at=datetime(2023, 12, 31))
    reading = user_books_repo.create_user_book("user_1", hobbit.id, status="reading")
    user_books_repo.update_user_book(reading.id, is_favorite=True)
    follows_repo.create_follow("user_2", "user_1")

    stats = profile_service.get_profile_stats("user_1", now=datetime(2024, 6, 1))

    assert stats["booksThisYear"] == 1
    assert stats["totalPages"] == 300
    assert stats["finishedTotal"] == 2
    assert stats["libraryTotal"] == 3
    assert [e["book"]["title"] for e in stats["currentlyReading"]] == ["The Hobbit"]
    assert [e["book"]["title"] for e in stats["recentlyFinished"]] == ["Emma", "Dune"]
    assert [e["book"]["title"] for e in stats["favorites"]] == ["The Hobbit"]
    assert stats["followers"] == 1
    assert stats["following"] == 0
