"""Subscription REST API: plans, usage, Stripe checkout and billing portal."""
from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify

from echo_reads.routes.common import install_error_handlers, json_body
from echo_reads.services import subscriptions_service
from echo_reads.utils.errors import ValidationError
from echo_reads.utils.identity import require_user_id
from echo_reads.utils.logging import get_logger

LOG = get_logger("routes.subscription")

bp = Blueprint("api_subscription", __name__, url_prefix="/api/v1/subscription")
install_error_handlers(bp)


@bp.route("", methods=["GET"])
def current():
    user_id = require_user_id()
    return jsonify(subscriptions_service.get_user_subscription(user_id))


@bp.route("/plans", methods=["GET"])
def plans():
    return jsonify(subscriptions_service.get_active_plans())


@bp.route("/usage", methods=["GET"])
def usage():
    user_id = require_user_id()
    return jsonify(subscriptions_service.get_usage_stats(user_id))


@bp.route("/checkout", methods=["POST"])
def checkout():
    user_id = require_user_id()
    plan_id = json_body().get("planId")
    if not plan_id:
        raise ValidationError("Missing required field: planId")
    return jsonify(subscriptions_service.create_checkout_session(user_id, str(plan_id)))


@bp.route("/portal", methods=["POST"])
def portal():
    user_id = require_user_id()
    return jsonify(subscriptions_service.create_portal_session(user_id))


def register_subscription_api(app: Any) -> None:
    if getattr(app, "_api_subscription_bp", None):
        return
    app.register_blueprint(bp)
    setattr(app, "_api_subscription_bp", bp)
    LOG.debug("subscription API registered")


__all__ = ["register_subscription_api"]
