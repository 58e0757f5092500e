"""Tests for the /api/v1/admin endpoints and their role gates."""
from __future__ import annotations

import pytest  # type: ignore[import-not-found]
from flask import Flask

from echo_reads.db.engine import init_engine_once, reset_for_tests
from echo_reads.db.repositories import books_repo, plans_repo, reviews_repo, users_repo
from echo_reads.routes.api_admin import register_admin_api


@pytest.fixture(autouse=True)
def in_memory_db(monkeypatch):
    reset_for_tests(drop=True)
    monkeypatch.setenv("ECHO_READS_DB_PATH", ":memory:")
    init_engine_once()
    for uid, role in (("user_admin", "admin"), ("user_mod", "moderator"), ("user_reader", "user")):
        users_repo.upsert_user(uid, email=f"{uid}@example.com", username=uid)
        users_repo.update_user(uid, role=role)
    yield
    reset_for_tests(drop=True)


@pytest.fixture
def app():
    app = Flask(__name__)
    app.config["SECRET_KEY"] = "admin-secret"
    register_admin_api(app)
    return app


def _client_for(app, user_id):
    client = app.test_client()
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
    return client


def test_gate_rejects_anonymous_and_plain_users(app):
    with app.test_client() as anon:
        assert anon.get("/api/v1/admin/stats").status_code == 401
    resp = _client_for(app, "user_reader").get("/api/v1/admin/stats")
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "Insufficient permissions"}


def test_moderator_limits(app):
    mod = _client_for(app, "user_mod")
    book = books_repo.create_book(title="Emma", author="Jane Austen")
    review, _ = reviews_repo.upsert_review("user_reader", book.id, content="Meh", is_private=False)

    assert mod.get("/api/v1/admin/stats").status_code == 403
    assert mod.delete(f"/api/v1/admin/reviews/{review.id}").get_json() == {"success": True}
    assert mod.delete(f"/api/v1/admin/reviews/{review.id}").status_code == 404


def test_admin_user_management(app):
    admin = _client_for(app, "user_admin")

    stats = admin.get("/api/v1/admin/stats").get_json()
    assert stats["totalUsers"] == 3

    assert admin.put("/api/v1/admin/users/user_reader/role", json={}).status_code == 400
    assert admin.put("/api/v1/admin/users/user_admin/role", json={"role": "user"}).status_code == 400
    assert admin.put("/api/v1/admin/users/user_reader/role", json={"role": "moderator"}).status_code == 200
    assert users_repo.get_user("user_reader").role == "moderator"

    updated = admin.put("/api/v1/admin/users/user_reader", json={"bio": "Moderates"}).get_json()
    assert updated["user"]["bio"] == "Moderates"

    assert admin.delete("/api/v1/admin/users/user_reader").status_code == 200
    assert users_repo.get_user("user_reader") is None

    logs = admin.get("/api/v1/admin/audit-logs?limit=1000").get_json()
    assert {entry["action"] for entry in logs} == {"user.role.update", "user.update", "user.delete"}


def test_admin_plans_and_grants(app):
    admin = _client_for(app, "user_admin")
    plans_repo.create_plan(name="Free", interval="free", price=0)

    created = admin.post("/api/v1/admin/plans", json={"name": "Lifetime", "interval": "lifetime", "isInternal": True})
    assert created.status_code == 201
    plan_id = created.get_json()["plan"]["id"]

    assert admin.put(f"/api/v1/admin/plans/{plan_id}", json={"sortOrder": 3}).get_json()["plan"]["sortOrder"] == 3
    assert len(admin.get("/api/v1/admin/plans").get_json()) == 2

    assert admin.post("/api/v1/admin/users/user_reader/subscription", json={}).status_code == 400
    assert admin.post("/api/v1/admin/users/user_reader/subscription", json={"planId": plan_id}).status_code == 200
    rows = {row["id"]: row for row in admin.get("/api/v1/admin/users").get_json()}
    assert rows["user_reader"]["isPremium"] is True
    assert rows["user_reader"]["subscription"]["plan"]["name"] == "Lifetime"

    assert admin.delete("/api/v1/admin/users/user_reader/subscription").status_code == 200
    assert users_repo.get_user("user_reader").is_premium is False


def test_admin_book_update(app):
    admin = _client_for(app, "user_admin")
    book = books_repo.create_book(title="Emma", author="Jane Austen")
    resp = admin.put(f"/api/v1/admin/books/{book.id}", json={"title": "Emma (Annotated)"})
    assert resp.get_json()["book"]["title"] == "Emma (Annotated)"
    assert admin.put(f"/api/v1/admin/books/{book.id}", json={"author": ""}).status_code == 400
