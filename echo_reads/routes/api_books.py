"""Library REST API.

GET/POST   /api/v1/books                  list (``?status=``) / add (201)
GET        /api/v1/books/search?q=        hybrid catalog search
GET/DELETE /api/v1/books/<id>             one library entry
PUT        /api/v1/books/<id>/status|progress|rating|favorite
GET        /api/v1/books/<bookId>/details book page data (catalog id)
"""
from __future__ import annotations

from typing import Any

from flask import Blueprint, jsonify, request

from echo_reads.routes.common import install_error_handlers, int_arg, json_body
from echo_reads.services import library_service, search_service
from echo_reads.utils.errors import ValidationError
from echo_reads.utils.identity import get_current_user_id, require_user_id
from echo_reads.utils.logging import get_logger

LOG = get_logger("routes.books")

bp = Blueprint("api_books", __name__, url_prefix="/api/v1/books")
install_error_handlers(bp)


@bp.route("", methods=["GET"])
def list_books():
    user_id = require_user_id()
    status = (request.args.get("status") or "").strip() or None
    return jsonify(library_service.list_library(user_id, status))


@bp.route("", methods=["POST"])
def add_book():
    user_id = require_user_id()
    body = json_body()
    book_data, status = body.get("bookData"), body.get("status")
    if not book_data or not status:
        raise ValidationError("Missing required fields: bookData, status")
    result = library_service.add_book_to_library(user_id, book_data, status)
    return jsonify({"success": True, **result}), 201


@bp.route("/search", methods=["GET"])
def search():
    require_user_id()
    query = (request.args.get("q") or "").strip()
    if not query:
        raise ValidationError("Missing required query parameter: q")
    results = search_service.search_books_hybrid(
        query, offset=max(int_arg("offset", 0), 0), limit=int_arg("limit", 20)
    )
    return jsonify(results)


@bp.route("/<user_book_id>", methods=["GET"])
def get_book(user_book_id: str):
    user_id = require_user_id()
    return jsonify(library_service.get_library_book(user_id, user_book_id))


@bp.route("/<user_book_id>", methods=["DELETE"])
def remove_book(user_book_id: str):
    user_id = require_user_id()
    return jsonify(library_service.remove_book_from_library(user_id, user_book_id))


@bp.route("/<book_id>/details", methods=["GET"])
def book_details(book_id: str):
    require_user_id()
    return jsonify(library_service.get_book_detail(get_current_user_id(), book_id))


@bp.route("/<user_book_id>/status", methods=["PUT"])
def update_status(user_book_id: str):
    user_id = require_user_id()
    status = json_body().get("status")
    if not status:
        raise ValidationError("Missing required field: status")
    entry = library_service.update_book_status(user_id, user_book_id, status)
    return jsonify({"success": True, "userBook": entry})


@bp.route("/<user_book_id>/progress", methods=["PUT"])
def update_progress(user_book_id: str):
    user_id = require_user_id()
    body = json_body()
    current_page: Any = body.get("currentPage")
    page_count: Any = body.get("pageCount")
    if current_page is None and page_count is None:
        raise ValidationError("Missing required field: currentPage or pageCount")
    entry = None
    if page_count is not None:
        entry = library_service.update_book_page_count(user_id, user_book_id, page_count)
    if current_page is not None:
        entry = library_service.update_reading_progress(user_id, user_book_id, current_page)
    return jsonify({"success": True, "userBook": entry})


@bp.route("/<user_book_id>/rating", methods=["PUT"])
def update_rating(user_book_id: str):
    user_id = require_user_id()
    rating = json_body().get("rating")
    if rating is None:
        raise ValidationError("Missing required field: rating")
    entry = library_service.rate_book(user_id, user_book_id, rating)
    return jsonify({"success": True, "userBook": entry})


@bp.route("/<user_book_id>/favorite", methods=["PUT"])
def update_favorite(user_book_id: str):
    user_id = require_user_id()
    body = json_body()
    if "isFavorite" not in body:
        raise ValidationError("Missing required field: isFavorite")
    entry = library_service.toggle_book_favorite(user_id, user_book_id, body.get("isFavorite"))
    return jsonify({"success": True, "userBook": entry})


def register_books_api(app: Any) -> None:
    if getattr(app, "_api_books_bp", None):
        return
    app.register_blueprint(bp)
    setattr(app, "_api_books_bp", bp)
    LOG.debug("books API registered")


__all__ = ["register_books_api"]
