"""Application factory, seeding and health check."""
from __future__ import annotations

import pytest  # type: ignore[import-not-found]

from echo_reads import create_app
from echo_reads.db.engine import init_engine_once, reset_for_tests
from echo_reads.db.repositories import plans_repo
from echo_reads.startup.seed import ensure_free_plan


@pytest.fixture(autouse=True)
def in_memory_db(monkeypatch):
    reset_for_tests(drop=True)
    monkeypatch.setenv("ECHO_READS_DB_PATH", ":memory:")
    init_engine_once()
    yield
    reset_for_tests(drop=True)


def test_seed_is_idempotent():
    first = ensure_free_plan()
    second = ensure_free_plan()
    assert first["created"] is True
    assert second == {"id": first["id"], "created": False}
    assert plans_repo.get_free_plan().features_dict() == {"maxBooksPerYear": 50}


def test_create_app_wires_everything():
    app = create_app({"TESTING": True})
    rules = {rule.rule for rule in app.url_map.iter_rules()}
    for expected in (
        "/healthz",
        "/api/v1/books",
        "/api/v1/reviews",
        "/api/v1/feed",
        "/api/v1/profile",
        "/api/v1/collections",
        "/api/v1/subscription/plans",
        "/api/v1/admin/stats",
        "/api/webhooks/stripe",
        "/api/webhooks/clerk",
    ):
        assert expected in rules
    assert plans_repo.get_free_plan() is not None

    with app.test_client() as client:
        resp = client.get("/healthz")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "ok"
    assert body["db"] is True
    assert body["version"]
