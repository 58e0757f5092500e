"""Social REST API: follows, activity feed and user discovery."""
from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request

from echo_reads.routes.common import install_error_handlers, json_body
from echo_reads.services import social_service
from echo_reads.utils.errors import ValidationError
from echo_reads.utils.identity import require_user_id
from echo_reads.utils.logging import get_logger

LOG = get_logger("routes.social")

bp = Blueprint("api_social", __name__, url_prefix="/api/v1")
install_error_handlers(bp)


@bp.route("/social/follow", methods=["POST"])
def follow():
    user_id = require_user_id()
    target = json_body().get("userId")
    if not target:
        raise ValidationError("Missing required field: userId")
    return jsonify(social_service.follow_user(user_id, str(target))), 201


@bp.route("/social/follow/<target_id>", methods=["DELETE"])
def unfollow(target_id: str):
    user_id = require_user_id()
    return jsonify(social_service.unfollow_user(user_id, target_id))


@bp.route("/social/followers", methods=["GET"])
def followers():
    user_id = require_user_id()
    return jsonify(social_service.list_followers(user_id))


@bp.route("/social/following", methods=["GET"])
def following():
    user_id = require_user_id()
    return jsonify(social_service.list_following(user_id))


@bp.route("/feed", methods=["GET"])
def feed():
    user_id = require_user_id()
    return jsonify(social_service.get_feed(user_id))


@bp.route("/users/search", methods=["GET"])
def search_users():
    user_id = require_user_id()
    return jsonify(social_service.search_users(user_id, request.args.get("q") or ""))


def register_social_api(app: Any) -> None:
    if getattr(app, "_api_social_bp", None):
        return
    app.register_blueprint(bp)
    setattr(app, "_api_social_bp", bp)
    LOG.debug("social API registered")


__all__ = ["register_social_api"]
