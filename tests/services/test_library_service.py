"""Library operations: adding books, limits, status timestamps and progress."""
from __future__ import annotations

from typing import Dict, List

import pytest  # type: ignore[import-not-found]

from echo_reads.db import engine as db_engine
from echo_reads.db.engine import init_engine_once, reset_for_tests
from echo_reads.db.repositories import books_repo, usage_repo, user_books_repo, users_repo
from echo_reads.services import library_service, subscriptions_service
from echo_reads.utils.errors import ConflictError, LimitReachedError, NotFoundError, ValidationError

USER = "user_reader"
DUNE = {"title": "Dune", "author": "Frank Herbert", "isbn": "9780441013593", "pages": 412}


@pytest.fixture(autouse=True)
def in_memory_db(monkeypatch):
    reset_for_tests(drop=True)
    monkeypatch.setenv("ECHO_READS_DB_PATH", ":memory:")
    init_engine_once()
    yield
    reset_for_tests(drop=True)


@pytest.fixture(autouse=True)
def no_emails(monkeypatch):
    sent: List[Dict[str, object]] = []

    def fake_warning(to, user_name, books_added, *, limit=50):
        sent.append({"template": "limit_warning", "to": to, "books_added": books_added})
        return {"queued": True}

    def fake_reached(to, user_name, *, limit=50):
        sent.append({"template": "limit_reached", "to": to})
        return {"queued": True}

    monkeypatch.setattr(subscriptions_service.email_delivery, "send_limit_warning_email", fake_warning)
    monkeypatch.setattr(subscriptions_service.email_delivery, "send_limit_reached_email", fake_reached)
    return sent


def _add(status: str = "want", data=None):
    return library_service.add_book_to_library(USER, dict(data or DUNE), status)


def test_add_book_creates_catalog_row_and_counts_usage():
    result = _add("want")

    entry = result["userBook"]
    assert entry["status"] == "want"
    assert entry["book"]["title"] == "Dune"
    assert entry["startedAt"] is None and entry["finishedAt"] is None
    assert result["usage"]["booksAdded"] == 1
    assert books_repo.get_book_by_isbn("9780441013593") is not None


def test_add_book_reuses_existing_book_by_isbn():
    users_repo.ensure_user("user_other")
    library_service.add_book_to_library("user_other", dict(DUNE), "want")
    _add("reading")
    assert books_repo.count_books() == 1


def test_add_book_without_isbn_matches_title_and_author():
    first = _add("want", {"title": "Emma", "author": "Jane Austen"})
    second = library_service.add_book_to_library("user_other", {"title": "Emma", "author": "Jane Austen"}, "want")
    assert first["userBook"]["bookId"] == second["userBook"]["bookId"]


def test_add_duplicate_is_conflict_and_does_not_count_usage():
    _add("want")
    with pytest.raises(ConflictError) as exc:
        _add("reading")
    assert str(exc.value) == "Book already in your library"
    usage = subscriptions_service.get_usage_stats(USER)
    assert usage["booksAdded"] == 1


def test_add_reading_sets_started_at_and_finished_sets_only_finished_at():
    reading = _add("reading")["userBook"]
    assert reading["startedAt"] is not None
    assert reading["finishedAt"] is None

    finished = _add("finished", {"title": "Emma", "author": "Jane Austen"})["userBook"]
    assert finished["finishedAt"] is not None
    assert finished["startedAt"] is None


def test_invalid_status_is_rejected():
    with pytest.raises(ValidationError):
        _add("abandoned")


def test_free_tier_limit_blocks_new_books():
    users_repo.ensure_user(USER)
    usage = subscriptions_service.get_usage_stats(USER)
    usage_repo.increment_books_added(usage["usageId"], amount=50)
    with pytest.raises(LimitReachedError) as exc:
        _add("want")
    assert "limit of 50 books" in str(exc.value)
    assert user_books_repo.count_for_user(USER) == 0


def test_threshold_email_is_sent_after_the_add_commits(monkeypatch, no_emails):
    users_repo.upsert_user(USER, email="reader@example.com", username="reader")
    usage = subscriptions_service.get_usage_stats(USER)
    usage_repo.increment_books_added(usage["usageId"], amount=39)
    depth_at_send: List[int] = []
    real_notify = subscriptions_service._notify_threshold

    def spying_notify(user_id, books_added, limit):
        depth_at_send.append(getattr(db_engine._SCOPE, "depth", 0))
        return real_notify(user_id, books_added, limit)

    monkeypatch.setattr(subscriptions_service, "_notify_threshold", spying_notify)

    result = _add("want")

    assert result["usage"] == {"booksAdded": 40, "limit": 50, "emailSent": "limit_warning"}
    assert depth_at_send == [0]
    assert [e["template"] for e in no_emails] == ["limit_warning"]


def test_failed_add_sends_no_threshold_email(monkeypatch, no_emails):
    users_repo.upsert_user(USER, email="reader@example.com", username="reader")
    usage = subscriptions_service.get_usage_stats(USER)
    usage_repo.increment_books_added(usage["usageId"], amount=39)
    real_record = subscriptions_service.record_book_usage

    def record_then_fail(user_id, now=None):
        real_record(user_id, now=now)
        raise RuntimeError("commit failed")

    monkeypatch.setattr(subscriptions_service, "record_book_usage", record_then_fail)

    with pytest.raises(RuntimeError):
        _add("want")

    assert no_emails == []
    assert user_books_repo.count_for_user(USER) == 0


def test_status_change_sets_timestamps_once():
    entry = _add("want")["userBook"]
    reading = library_service.update_book_status(USER, entry["id"], "reading")
    started = reading["startedAt"]
    assert started is not None

    library_service.update_book_status(USER, entry["id"], "want")
    again = library_service.update_book_status(USER, entry["id"], "reading")
    assert again["startedAt"] == started

    finished = library_service.update_book_status(USER, entry["id"], "finished")
    assert finished["finishedAt"] is not None


def test_progress_validates_bounds_and_auto_finishes():
    entry = _add("reading")["userBook"]

    with pytest.raises(ValidationError):
        library_service.update_reading_progress(USER, entry["id"], -1)
    with pytest.raises(ValidationError) as exc:
        library_service.update_reading_progress(USER, entry["id"], 413)
    assert str(exc.value) == "Current page cannot exceed total pages"

    mid = library_service.update_reading_progress(USER, entry["id"], 200)
    assert mid["currentPage"] == 200 and mid["status"] == "reading"

    done = library_service.update_reading_progress(USER, entry["id"], 412)
    assert done["status"] == "finished"
    assert done["finishedAt"] is not None


def test_page_count_update_clamps_current_page():
    entry = _add("reading")["userBook"]
    library_service.update_reading_progress(USER, entry["id"], 300)
    updated = library_service.update_book_page_count(USER, entry["id"], 250)
    assert updated["book"]["pages"] == 250
    assert updated["currentPage"] == 250
    with pytest.raises(ValidationError):
        library_service.update_book_page_count(USER, entry["id"], 0)


def test_rating_and_favorite_validation():
    entry = _add("finished")["userBook"]
    assert library_service.rate_book(USER, entry["id"], 4)["rating"] == 4
    for bad in (0, 6, 3.5, "5", True, float("nan"), float("inf")):
        with pytest.raises(ValidationError):
            library_service.rate_book(USER, entry["id"], bad)

    assert library_service.toggle_book_favorite(USER, entry["id"], True)["isFavorite"] is True
    with pytest.raises(ValidationError) as exc:
        library_service.toggle_book_favorite(USER, entry["id"], "yes")
    assert str(exc.value) == "isFavorite must be a boolean"


def test_other_users_cannot_touch_an_entry():
    entry = _add("want")["userBook"]
    users_repo.ensure_user("user_intruder")
    with pytest.raises(NotFoundError) as exc:
        library_service.update_book_status("user_intruder", entry["id"], "reading")
    assert str(exc.value) == "Book not found in your library"
    with pytest.raises(NotFoundError):
        library_service.remove_book_from_library("user_intruder", entry["id"])
    assert library_service.get_library_book(USER, entry["id"])["status"] == "want"


def test_list_library_filters_by_status():
    _add("want")
    _add("reading", {"title": "Emma", "author": "Jane Austen"})
    assert [e["book"]["title"] for e in library_service.list_library(USER, "reading")] == ["Emma"]
    assert len(library_service.list_library(USER)) == 2


def test_remove_book_keeps_catalog_entry():
    entry = _add("want")["userBook"]
    assert library_service.remove_book_from_library(USER, entry["id"]) == {"success": True}
    assert user_books_repo.count_for_user(USER) == 0
    assert books_repo.count_books() == 1
