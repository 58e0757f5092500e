"""Tests for the /api/v1/books library endpoints."""
from __future__ import annotations

import pytest  # type: ignore[import-not-found]
from flask import Flask

from echo_reads.db.engine import init_engine_once, reset_for_tests
from echo_reads.routes.api_books import register_books_api
from echo_reads.services import search_service


@pytest.fixture(autouse=True)
def in_memory_db(monkeypatch):
    reset_for_tests(drop=True)
    monkeypatch.setenv("ECHO_READS_DB_PATH", ":memory:")
    init_engine_once()
    yield
    reset_for_tests(drop=True)


@pytest.fixture
def app():
    app = Flask(__name__)
    app.config["SECRET_KEY"] = "books-secret"
    register_books_api(app)
    return app


@pytest.fixture
def client(app):
    with app.test_client() as client:
        with client.session_transaction() as sess:
            sess["user_id"] = "user_1"
        yield client


def _add(client, title="Dune", status="want", **extra):
    resp = client.post("/api/v1/books", json={"bookData": {"title": title, "author": "Frank Herbert", **extra}, "status": status})
    assert resp.status_code == 201
    return resp.get_json()["userBook"]


def test_requires_authentication(app):
    with app.test_client() as anon:
        resp = anon.get("/api/v1/books")
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "Unauthorized"}


def test_register_is_idempotent(app):
    register_books_api(app)
    assert app._api_books_bp is not None


def test_add_then_list(client):
    resp = client.post("/api/v1/books", json={"bookData": {"title": "Dune", "author": "Frank Herbert"}, "status": "reading"})
    assert resp.status_code == 201
    data = resp.get_json()
    assert data["success"] is True
    assert data["userBook"]["status"] == "reading"
    assert data["userBook"]["book"]["title"] == "Dune"
    assert data["usage"]["booksAdded"] == 1

    listed = client.get("/api/v1/books?status=reading").get_json()
    assert [entry["book"]["title"] for entry in listed] == ["Dune"]
    assert client.get("/api/v1/books?status=want").get_json() == []


def test_add_validation_and_duplicates(client):
    resp = client.post("/api/v1/books", json={"status": "want"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Missing required fields: bookData, status"

    resp = client.post("/api/v1/books", data="[1]", content_type="application/json")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid JSON body"

    _add(client)
    dup = client.post("/api/v1/books", json={"bookData": {"title": "Dune", "author": "Frank Herbert"}, "status": "want"})
    assert dup.status_code == 409


def test_progress_rating_favorite_and_delete(client):
    entry = _add(client, status="reading", pages=400)
    base = f"/api/v1/books/{entry['id']}"

    missing = client.put(f"{base}/progress", json={})
    assert missing.status_code == 400
    assert missing.get_json()["error"] == "Missing required field: currentPage or pageCount"

    done = client.put(f"{base}/progress", json={"pageCount": 300, "currentPage": 300}).get_json()
    assert done["userBook"]["status"] == "finished"
    assert done["userBook"]["currentPage"] == 300

    assert client.put(f"{base}/rating", json={"rating": 6}).status_code == 400
    nan = client.put(f"{base}/rating", data='{"rating": NaN}', content_type="application/json")
    assert nan.status_code == 400
    assert nan.get_json() == {"error": "Rating must be a number between 1 and 5"}
    infinite = client.put(f"{base}/progress", data='{"currentPage": Infinity}', content_type="application/json")
    assert infinite.status_code == 400
    assert client.put(f"{base}/rating", json={"rating": 5}).get_json()["userBook"]["rating"] == 5
    assert client.put(f"{base}/favorite", json={"isFavorite": True}).get_json()["userBook"]["isFavorite"] is True

    assert client.delete(base).status_code == 200
    gone = client.get(base)
    assert gone.status_code == 404
    assert gone.get_json()["error"] == "Book not found in your library"


def test_status_change(client):
    entry = _add(client)
    resp = client.put(f"/api/v1/books/{entry['id']}/status", json={"status": "reading"})
    assert resp.status_code == 200
    assert resp.get_json()["userBook"]["startedAt"] is not None
    bad = client.put(f"/api/v1/books/{entry['id']}/status", json={"status": "dropped"})
    assert bad.status_code == 400


def test_search_route(client, monkeypatch):
    calls = []

    def fake_search(query, offset=0, limit=20):
        calls.append((query, offset, limit))
        return []

    monkeypatch.setattr(search_service, "search_books_hybrid", fake_search)

    assert client.get("/api/v1/books/search").status_code == 400
    resp = client.get("/api/v1/books/search?q=dune&offset=-5&limit=10")
    assert resp.status_code == 200
    assert calls == [("dune", 0, 10)]
    assert client.get("/api/v1/books/search?q=dune&offset=abc").status_code == 400


def test_book_details(client):
    entry = _add(client)
    resp = client.get(f"/api/v1/books/{entry['book']['id']}/details")
    assert resp.status_code == 200
    assert resp.get_json()["book"]["title"] == "Dune"
    assert client.get("/api/v1/books/missing/details").status_code == 404
