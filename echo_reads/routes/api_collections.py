"""Collections REST API under /api/v1/collections.

Public collections can be read anonymously; everything else needs a user.
"""
from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify

from echo_reads.routes.common import install_error_handlers, int_arg, json_body
from echo_reads.services import collections_service
from echo_reads.utils.errors import ValidationError
from echo_reads.utils.identity import get_current_user_id, require_user_id
from echo_reads.utils.logging import get_logger

LOG = get_logger("routes.collections")

bp = Blueprint("api_collections", __name__, url_prefix="/api/v1/collections")
install_error_handlers(bp)


@bp.route("", methods=["GET"])
def list_mine():
    user_id = require_user_id()
    return jsonify(collections_service.list_user_collections(user_id))


@bp.route("", methods=["POST"])
def create():
    user_id = require_user_id()
    return jsonify(collections_service.create_collection(user_id, json_body())), 201


@bp.route("/public", methods=["GET"])
def list_public():
    return jsonify(collections_service.list_public_collections(int_arg("limit", 20)))


@bp.route("/followed", methods=["GET"])
def list_followed():
    user_id = require_user_id()
    return jsonify(collections_service.list_followed_collections(user_id))


@bp.route("/<identifier>", methods=["GET"])
def get_one(identifier: str):
    return jsonify(collections_service.get_collection(get_current_user_id(), identifier))


@bp.route("/<collection_id>", methods=["PUT"])
def update(collection_id: str):
    user_id = require_user_id()
    return jsonify(collections_service.update_collection(user_id, collection_id, json_body()))


@bp.route("/<collection_id>", methods=["DELETE"])
def delete(collection_id: str):
    user_id = require_user_id()
    return jsonify(collections_service.delete_collection(user_id, collection_id))


@bp.route("/<collection_id>/order", methods=["PUT"])
def reorder(collection_id: str):
    user_id = require_user_id()
    return jsonify(collections_service.update_collection_order(user_id, collection_id, json_body().get("sortOrder")))


@bp.route("/<collection_id>/books", methods=["GET"])
def list_books(collection_id: str):
    return jsonify(collections_service.list_collection_books(get_current_user_id(), collection_id))


@bp.route("/<collection_id>/books", methods=["POST"])
def add_book(collection_id: str):
    user_id = require_user_id()
    body = json_body()
    user_book_id = body.get("userBookId")
    if not user_book_id:
        raise ValidationError("Missing required field: userBookId")
    result = collections_service.add_book_to_collection(user_id, collection_id, str(user_book_id), body.get("notes"))
    return jsonify(result), 201


@bp.route("/<collection_id>/books/<user_book_id>", methods=["DELETE"])
def remove_book(collection_id: str, user_book_id: str):
    user_id = require_user_id()
    return jsonify(collections_service.remove_book_from_collection(user_id, collection_id, user_book_id))


@bp.route("/<collection_id>/follow", methods=["POST"])
def follow(collection_id: str):
    user_id = require_user_id()
    return jsonify(collections_service.follow_collection(user_id, collection_id)), 201


@bp.route("/<collection_id>/follow", methods=["DELETE"])
def unfollow(collection_id: str):
    user_id = require_user_id()
    return jsonify(collections_service.unfollow_collection(user_id, collection_id))


@bp.route("/<collection_id>/cover", methods=["POST"])
def cover_upload(collection_id: str):
    user_id = require_user_id()
    body = json_body()
    return jsonify(
        collections_service.generate_collection_cover_upload(
            user_id,
            collection_id,
            body.get("extension") or "jpg",
            content_type=body.get("contentType"),
            size_bytes=body.get("size"),
        )
    )


def register_collections_api(app: Any) -> None:
    if getattr(app, "_api_collections_bp", None):
        return
    app.register_blueprint(bp)
    setattr(app, "_api_collections_bp", bp)
    LOG.debug("collections API registered")


__all__ = ["register_collections_api"]
