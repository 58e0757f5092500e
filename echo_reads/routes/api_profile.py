"""Profile REST API under /api/v1/profile."""
from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify

from echo_reads.routes.common import install_error_handlers, json_body
from echo_reads.services import profile_service
from echo_reads.utils.errors import ValidationError
from echo_reads.utils.identity import require_user_id
from echo_reads.utils.logging import get_logger

LOG = get_logger("routes.profile")

bp = Blueprint("api_profile", __name__, url_prefix="/api/v1/profile")
install_error_handlers(bp)


@bp.route("", methods=["GET"])
def get_profile():
    user_id = require_user_id()
    return jsonify(profile_service.get_profile(user_id))


@bp.route("", methods=["PUT"])
def update_profile():
    user_id = require_user_id()
    body = json_body()
    if body.get("username") is None:
        raise ValidationError("Missing required field: username")
    return jsonify(profile_service.update_profile(user_id, body.get("username"), body.get("bio")))


@bp.route("/stats", methods=["GET"])
def profile_stats():
    user_id = require_user_id()
    return jsonify(profile_service.get_profile_stats(user_id))


def register_profile_api(app: Any) -> None:
    if getattr(app, "_api_profile_bp", None):
        return
    app.register_blueprint(bp)
    setattr(app, "_api_profile_bp", bp)
    LOG.debug("profile API registered")


__all__ = ["register_profile_api"]
