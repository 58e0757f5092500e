"""Admin REST API under /api/v1/admin.

Moderators reach the blueprint; each operation enforces its own role
(review deletion is moderator-level, the rest admin-only).
"""
from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify

from echo_reads.routes.common import install_error_handlers, int_arg, json_body
from echo_reads.services import admin_service
from echo_reads.utils.errors import ValidationError
from echo_reads.utils.identity import require_role, require_user_id
from echo_reads.utils.logging import get_logger

LOG = get_logger("routes.admin")

bp = Blueprint("api_admin", __name__, url_prefix="/api/v1/admin")
install_error_handlers(bp)


@bp.before_request
def _require_staff():
    require_role("moderator")


@bp.route("/stats", methods=["GET"])
def stats():
    return jsonify(admin_service.get_dashboard_stats(require_user_id()))


@bp.route("/users", methods=["GET"])
def users():
    return jsonify(admin_service.list_users_with_subscriptions(require_user_id()))


@bp.route("/users/<user_id>", methods=["PUT"])
def update_user(user_id: str):
    return jsonify(admin_service.update_user_as_admin(require_user_id(), user_id, json_body()))


@bp.route("/users/<user_id>", methods=["DELETE"])
def delete_user(user_id: str):
    return jsonify(admin_service.delete_user_as_admin(require_user_id(), user_id))


@bp.route("/users/<user_id>/role", methods=["PUT"])
def update_role(user_id: str):
    role = json_body().get("role")
    if not role:
        raise ValidationError("Missing required field: role")
    return jsonify(admin_service.update_user_role(require_user_id(), user_id, role))


@bp.route("/users/<user_id>/subscription", methods=["POST"])
def grant_subscription(user_id: str):
    plan_id = json_body().get("planId")
    if not plan_id:
        raise ValidationError("Missing required field: planId")
    return jsonify(admin_service.grant_premium_subscription(require_user_id(), user_id, str(plan_id)))


@bp.route("/users/<user_id>/subscription", methods=["DELETE"])
def revoke_subscription(user_id: str):
    return jsonify(admin_service.revoke_user_subscription(require_user_id(), user_id))


@bp.route("/reviews/<review_id>", methods=["DELETE"])
def delete_review(review_id: str):
    return jsonify(admin_service.delete_review_as_admin(require_user_id(), review_id))


@bp.route("/books/<book_id>", methods=["PUT"])
def update_book(book_id: str):
    return jsonify(admin_service.update_book_as_admin(require_user_id(), book_id, json_body()))


@bp.route("/audit-logs", methods=["GET"])
def audit_logs():
    limit = min(max(int_arg("limit", 100), 1), 500)
    return jsonify(admin_service.get_audit_logs(require_user_id(), limit=limit))


@bp.route("/plans", methods=["GET"])
def list_plans():
    return jsonify(admin_service.list_subscription_plans(require_user_id()))


@bp.route("/plans", methods=["POST"])
def create_plan():
    return jsonify(admin_service.create_subscription_plan(require_user_id(), json_body())), 201


@bp.route("/plans/<plan_id>", methods=["PUT"])
def update_plan(plan_id: str):
    return jsonify(admin_service.update_subscription_plan(require_user_id(), plan_id, json_body()))


def register_admin_api(app: Any) -> None:
    if getattr(app, "_api_admin_bp", None):
        return
    app.register_blueprint(bp)
    setattr(app, "_api_admin_bp", bp)
    LOG.debug("admin API registered")


__all__ = ["register_admin_api"]
