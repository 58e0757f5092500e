"""Stripe REST client and webhook signature verification.

Calls go straight to the Stripe HTTP API with form-encoded bodies. Each
call returns ``(ok, payload)``; on failure ``payload`` carries an
``error`` code and, when Stripe answered, its message.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any, Dict, List, Optional, Tuple

import requests

from echo_reads import config as app_config
from echo_reads.utils.logging import get_logger

LOG = get_logger("stripe_service")

SIGNATURE_TOLERANCE = 300  # seconds


def _api_headers() -> Optional[Dict[str, str]]:
    key = app_config.stripe_secret_key()
    if not key:
        return None
    return {"Authorization": f"Bearer {key}"}


def _api_url(path: str) -> str:
    return f"{app_config.stripe_api_base()}/{path.lstrip('/')}"


def _flatten(data: Dict[str, Any], prefix: str = "") -> List[Tuple[str, str]]:
    """Encode nested dicts/lists using Stripe's bracket notation."""
    items: List[Tuple[str, str]] = []
    for key, value in data.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            items.extend(_flatten(value, name))
        elif isinstance(value, (list, tuple)):
            for idx, item in enumerate(value):
                if isinstance(item, dict):
                    items.extend(_flatten(item, f"{name}[{idx}]"))
                else:
                    items.append((f"{name}[{idx}]", str(item)))
        elif isinstance(value, bool):
            items.append((name, "true" if value else "false"))
        else:
            items.append((name, str(value)))
    return items


def _request(method: str, path: str, data: Optional[Dict[str, Any]] = None, timeout: int = 15) -> Tuple[bool, Dict[str, Any]]:
    headers = _api_headers()
    if not headers:
        return False, {"error": "stripe_not_configured"}
    try:
        if method == "GET":
            r = requests.get(_api_url(path), headers=headers, params=_flatten(data or {}), timeout=timeout)
        else:
            r = requests.post(_api_url(path), headers=headers, data=_flatten(data or {}), timeout=timeout)
    except requests.RequestException as exc:
        LOG.warning("Stripe request failed %s %s: %s", method, path, exc)
        return False, {"error": "stripe_unreachable"}
    try:
        body = r.json()
    except ValueError:
        body = {}
    if r.status_code >= 400:
        err = body.get("error") if isinstance(body.get("error"), dict) else {}
        LOG.warning("Stripe %s %s -> %s %s", method, path, r.status_code, err.get("message"))
        return False, {
            "error": err.get("code") or f"http_{r.status_code}",
            "message": err.get("message"),
            "status": r.status_code,
        }
    return True, body


def create_customer(email: Optional[str], metadata: Dict[str, str]) -> Tuple[bool, Dict[str, Any]]:
    return _request("POST", "/customers", {"email": email, "metadata": metadata})


def create_checkout_session(
    *,
    customer_id: str,
    price_id: str,
    success_url: str,
    cancel_url: str,
    metadata: Dict[str, str],
) -> Tuple[bool, Dict[str, Any]]:
    return _request(
        "POST",
        "/checkout/sessions",
        {
            "customer": customer_id,
            "mode": "subscription",
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
        },
    )


def create_portal_session(customer_id: str, return_url: str) -> Tuple[bool, Dict[str, Any]]:
    return _request("POST", "/billing_portal/sessions", {"customer": customer_id, "return_url": return_url})


def retrieve_subscription(subscription_id: str) -> Tuple[bool, Dict[str, Any]]:
    return _request("GET", f"/subscriptions/{subscription_id}")


def retrieve_price(price_id: str) -> Tuple[bool, Dict[str, Any]]:
    return _request("GET", f"/prices/{price_id}")


def _parse_signature_header(header: str) -> Tuple[Optional[int], List[str]]:
    timestamp: Optional[int] = None
    signatures: List[str] = []
    for part in (header or "").split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == "v1" and value:
            signatures.append(value)
    return timestamp, signatures


def verify_signature(
    raw_body: bytes,
    header: str,
    secret: str,
    *,
    tolerance: int = SIGNATURE_TOLERANCE,
    now: Optional[float] = None,
) -> bool:
    """Check a ``Stripe-Signature`` header (``t=…,v1=…``) against ``raw_body``."""
    timestamp, signatures = _parse_signature_header(header)
    if timestamp is None or not signatures:
        return False
    current = time.time() if now is None else now
    if tolerance and abs(current - timestamp) > tolerance:
        return False
    signed_payload = f"{timestamp}.".encode("utf-8") + raw_body
    expected = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return any(hmac.compare_digest(expected, candidate) for candidate in signatures)


def sign_payload(raw_body: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """Build a ``Stripe-Signature`` header value for ``raw_body``."""
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode("utf-8"), f"{ts}.".encode("utf-8") + raw_body, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def construct_event(raw_body: bytes, headers: Dict[str, str]) -> Tuple[bool, str, Optional[Dict[str, Any]]]:
    """Verify and parse an inbound webhook. Returns (accepted, event_type|reason, event)."""
    secret = app_config.stripe_webhook_secret()
    if not secret:
        return False, "webhook_secret_not_configured", None
    provided = headers.get("Stripe-Signature") or headers.get("stripe-signature") or ""
    if not verify_signature(raw_body, provided, secret):
        return False, "signature_invalid", None
    try:
        event = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return False, "invalid_json", None
    if not isinstance(event, dict):
        return False, "invalid_json", None
    event_type = str(event.get("type") or "")
    LOG.info("Stripe webhook accepted type=%s id=%s", event_type or "unknown", event.get("id"))
    return True, event_type, event


__all__ = [
    "create_customer",
    "create_checkout_session",
    "create_portal_session",
    "retrieve_subscription",
    "retrieve_price",
    "verify_signature",
    "sign_payload",
    "construct_event",
]
