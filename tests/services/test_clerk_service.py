"""Clerk webhook verification and user mirroring."""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time

import pytest  # type: ignore[import-not-found]

from echo_reads.db.engine import init_engine_once, reset_for_tests
from echo_reads.db.repositories import users_repo
from echo_reads.services import clerk_service

KEY = b"clerk-test-signing-key"
SECRET = "whsec_" + base64.b64encode(KEY).decode()


@pytest.fixture(autouse=True)
def in_memory_db(monkeypatch):
    reset_for_tests(drop=True)
    monkeypatch.setenv("ECHO_READS_DB_PATH", ":memory:")
    init_engine_once()
    yield
    reset_for_tests(drop=True)


def _svix_headers(body: bytes, *, msg_id="msg_1", timestamp=None, key=KEY):
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(key, f"{msg_id}.{ts}.".encode() + body, hashlib.sha256).digest()
    return {
        "svix-id": msg_id,
        "svix-timestamp": str(ts),
        "svix-signature": "v1,bogus v1," + base64.b64encode(digest).decode(),
    }


def test_webhook_signature_accepts_any_matching_v1():
    body = b'{"type":"user.created"}'
    assert clerk_service.verify_webhook_signature(body, _svix_headers(body), SECRET) is True


def test_webhook_signature_rejects_bad_inputs():
    body = b"{}"
    assert clerk_service.verify_webhook_signature(body, {}, SECRET) is False
    assert clerk_service.verify_webhook_signature(body, _svix_headers(body, key=b"other"), SECRET) is False
    stale = _svix_headers(body, timestamp=int(time.time()) - 3600)
    assert clerk_service.verify_webhook_signature(body, stale, SECRET) is False


def test_handle_webhook_requires_secret(monkeypatch):
    monkeypatch.delenv("CLERK_WEBHOOK_SECRET", raising=False)
    assert clerk_service.handle_webhook(b"{}", {}) == (False, "webhook_secret_not_configured", None)

    monkeypatch.setenv("CLERK_WEBHOOK_SECRET", SECRET)
    body = json.dumps({"type": "user.updated", "data": {"id": "user_1"}}).encode()
    ok, event_type, payload = clerk_service.handle_webhook(body, _svix_headers(body))
    assert ok is True
    assert event_type == "user.updated"
    assert payload["data"]["id"] == "user_1"


def test_sync_created_then_updated_keeps_username():
    created = {
        "id": "user_1",
        "username": "reader",
        "primary_email_address_id": "idn_2",
        "email_addresses": [
            {"id": "idn_1", "email_address": "old@example.com"},
            {"id": "idn_2", "email_address": "Primary@Example.com"},
        ],
    }
    assert clerk_service.sync_user_event("user.created", created) == {"status": "ok", "user": "user_1"}
    user = users_repo.get_user("user_1")
    assert user.email == "primary@example.com"
    assert user.username == "reader"

    updated = {"id": "user_1", "username": "renamed", "email_addresses": [{"id": "idn_3", "email_address": "new@example.com"}]}
    clerk_service.sync_user_event("user.updated", updated)
    user = users_repo.get_user("user_1")
    assert user.email == "new@example.com"
    assert user.username == "reader"


def test_sync_deleted_and_ignored_events():
    users_repo.upsert_user("user_1", email="a@example.com")
    assert clerk_service.sync_user_event("user.deleted", {"id": "user_1"}) == {"status": "ok", "removed": True}
    assert users_repo.get_user("user_1") is None
    assert clerk_service.sync_user_event("user.deleted", {})["reason"] == "user_id_missing"
    assert clerk_service.sync_user_event("session.created", {"id": "sess_1"})["reason"] == "event_ignored"


def test_session_token_without_jwks_is_rejected(monkeypatch):
    monkeypatch.delenv("CLERK_JWKS_URL", raising=False)
    monkeypatch.delenv("CLERK_ISSUER", raising=False)
    assert clerk_service.verify_session_token("eyJ.fake.token") is None
