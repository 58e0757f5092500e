"""Inbound webhooks.

/api/webhooks/stripe: Stripe subscription and invoice events
/api/webhooks/clerk: Clerk user lifecycle events (Svix signed)
"""
from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request

from echo_reads.services import billing_webhook_service, clerk_service, stripe_service
from echo_reads.utils.logging import get_logger

LOG = get_logger("routes.webhooks")

bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@bp.route("/stripe", methods=["POST"])
def stripe_webhook():
    raw = request.get_data()
    headers = {k: v for k, v in request.headers.items()}
    ok, event_type, event = stripe_service.construct_event(raw, headers)
    if not ok or event is None:
        LOG.warning("Stripe webhook rejected reason=%s remote=%s", event_type, request.remote_addr)
        return jsonify({"error": "Invalid signature"}), 400
    try:
        result = billing_webhook_service.dispatch_event(event)
    except Exception:
        LOG.exception("Stripe webhook processing failed type=%s id=%s", event_type, event.get("id"))
        return jsonify({"error": "Webhook processing failed"}), 500
    return jsonify({"received": True, "result": result})


@bp.route("/clerk", methods=["POST"])
def clerk_webhook():
    raw = request.get_data()
    headers = {k: v for k, v in request.headers.items()}
    ok, event_type, payload = clerk_service.handle_webhook(raw, headers)
    if not ok or payload is None:
        LOG.warning("Clerk webhook rejected reason=%s remote=%s", event_type, request.remote_addr)
        return jsonify({"error": "Invalid signature"}), 400
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    try:
        result = clerk_service.sync_user_event(event_type, data)
    except Exception:
        LOG.exception("Clerk webhook processing failed type=%s", event_type)
        return jsonify({"error": "Webhook processing failed"}), 500
    return jsonify({"received": True, "result": result})


def register_webhooks(app: Any) -> None:
    if getattr(app, "_webhooks_bp", None):
        return
    app.register_blueprint(bp)
    setattr(app, "_webhooks_bp", bp)
    LOG.debug("webhooks blueprint registered")


__all__ = ["register_webhooks"]
