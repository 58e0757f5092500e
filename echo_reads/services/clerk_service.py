"""Clerk identity integration.

* Verifies Clerk session JWTs (RS256) against the instance JWKS.
* Verifies and applies Clerk user webhooks (Svix signing scheme) so the
  local ``users`` table mirrors the identity provider.
"""
from __future__ import annotations

import base64
import hashlib
import hmac
import json
import threading
import time
from typing import Any, Dict, Optional, Tuple

import jwt

from echo_reads import config as app_config
from echo_reads.db.repositories import users_repo
from echo_reads.utils.logging import get_logger

LOG = get_logger("clerk_service")

WEBHOOK_TOLERANCE = 300  # seconds

_JWK_CLIENTS: Dict[str, jwt.PyJWKClient] = {}
_JWK_LOCK = threading.Lock()


def _jwk_client(url: str) -> jwt.PyJWKClient:
    with _JWK_LOCK:
        client = _JWK_CLIENTS.get(url)
        if client is None:
            client = jwt.PyJWKClient(url, cache_keys=True)
            _JWK_CLIENTS[url] = client
        return client


def verify_session_token(token: str) -> Optional[Dict[str, Any]]:
    """Return the token claims when the signature and expiry check out."""
    jwks_url = app_config.clerk_jwks_url()
    if not token or not jwks_url:
        return None
    issuer = app_config.clerk_issuer()
    try:
        signing_key = _jwk_client(jwks_url).get_signing_key_from_jwt(token)
        claims = jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            issuer=issuer,
            options={"verify_aud": False, "verify_iss": bool(issuer)},
            leeway=5,
        )
    except jwt.PyJWTError as exc:
        LOG.debug("Rejected session token: %s", exc)
        return None
    if not claims.get("sub"):
        return None
    return claims


def _decode_secret(secret: str) -> bytes:
    raw = secret[len("whsec_"):] if secret.startswith("whsec_") else secret
    return base64.b64decode(raw)


def verify_webhook_signature(
    raw_body: bytes,
    headers: Dict[str, str],
    secret: str,
    *,
    tolerance: int = WEBHOOK_TOLERANCE,
    now: Optional[float] = None,
) -> bool:
    msg_id = headers.get("svix-id") or headers.get("Svix-Id") or ""
    timestamp = headers.get("svix-timestamp") or headers.get("Svix-Timestamp") or ""
    signature_header = headers.get("svix-signature") or headers.get("Svix-Signature") or ""
    if not msg_id or not timestamp or not signature_header:
        return False
    try:
        ts = int(timestamp)
        key = _decode_secret(secret)
    except (ValueError, TypeError):
        return False
    current = time.time() if now is None else now
    if tolerance and abs(current - ts) > tolerance:
        return False
    signed = f"{msg_id}.{ts}.".encode("utf-8") + raw_body
    expected = base64.b64encode(hmac.new(key, signed, hashlib.sha256).digest()).decode()
    for part in signature_header.split():
        version, _, candidate = part.partition(",")
        if version == "v1" and hmac.compare_digest(expected, candidate):
            return True
    return False


def handle_webhook(raw_body: bytes, headers: Dict[str, str]) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
    """Verify and parse a Clerk webhook. Returns (accepted, event_type|reason, payload)."""
    secret = app_config.clerk_webhook_secret()
    if not secret:
        return False, "webhook_secret_not_configured", None
    if not verify_webhook_signature(raw_body, headers, secret):
        return False, "signature_invalid", None
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return False, "invalid_json", None
    if not isinstance(payload, dict):
        return False, "invalid_json", None
    return True, str(payload.get("type") or ""), payload


def _primary_email(data: Dict[str, Any]) -> Optional[str]:
    addresses = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    fallback = None
    for entry in addresses:
        if not isinstance(entry, dict):
            continue
        address = (entry.get("email_address") or "").strip().lower() or None
        if fallback is None:
            fallback = address
        if primary_id and entry.get("id") == primary_id:
            return address
    return fallback


def sync_user_event(event_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
    user_id = data.get("id")
    if not user_id:
        return {"status": "ignored", "reason": "user_id_missing"}
    if event_type in ("user.created", "user.updated"):
        user = users_repo.upsert_user(user_id, email=_primary_email(data), username=data.get("username") or None)
        LOG.info("Clerk %s synced user=%s", event_type, user.id)
        return {"status": "ok", "user": user.id}
    if event_type == "user.deleted":
        removed = users_repo.delete_user(user_id)
        LOG.info("Clerk user.deleted user=%s removed=%s", user_id, removed)
        return {"status": "ok", "removed": removed}
    return {"status": "ignored", "reason": "event_ignored", "event": event_type}


__all__ = [
    "verify_session_token",
    "verify_webhook_signature",
    "handle_webhook",
    "sync_user_event",
]
