"""Reviews REST API under /api/v1/reviews."""
from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request

from echo_reads.routes.common import install_error_handlers, json_body
from echo_reads.services import reviews_service
from echo_reads.utils.errors import ValidationError
from echo_reads.utils.identity import require_user_id
from echo_reads.utils.logging import get_logger

LOG = get_logger("routes.reviews")

bp = Blueprint("api_reviews", __name__, url_prefix="/api/v1/reviews")
install_error_handlers(bp)


@bp.route("", methods=["GET"])
def list_reviews():
    user_id = require_user_id()
    book_id = (request.args.get("bookId") or "").strip() or None
    return jsonify(reviews_service.list_reviews(user_id, book_id))


@bp.route("", methods=["POST"])
def create_review():
    user_id = require_user_id()
    body = json_body()
    book_id, content = body.get("bookId"), body.get("content")
    if not book_id or not content:
        raise ValidationError("Missing required fields: bookId, content")
    result = reviews_service.create_or_update_review(user_id, book_id, content, body.get("isPrivate", False))
    return jsonify(result), 201


@bp.route("/<review_id>", methods=["GET"])
def get_review(review_id: str):
    user_id = require_user_id()
    return jsonify(reviews_service.get_review(user_id, review_id))


@bp.route("/<review_id>", methods=["PUT"])
def update_review(review_id: str):
    user_id = require_user_id()
    body = json_body()
    return jsonify(reviews_service.update_review(user_id, review_id, body.get("content"), body.get("isPrivate")))


@bp.route("/<review_id>", methods=["DELETE"])
def delete_review(review_id: str):
    user_id = require_user_id()
    return jsonify(reviews_service.delete_review(user_id, review_id))


def register_reviews_api(app: Any) -> None:
    if getattr(app, "_api_reviews_bp", None):
        return
    app.register_blueprint(bp)
    setattr(app, "_api_reviews_bp", bp)
    LOG.debug("reviews API registered")


__all__ = ["register_reviews_api"]
