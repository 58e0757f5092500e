"""Shared helpers for the JSON API blueprints."""
from __future__ import annotations

from typing import Any, Dict, Optional

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from echo_reads.utils.errors import EchoReadsError, ValidationError
from echo_reads.utils.logging import get_logger

LOG = get_logger("routes")


def _json_error(message: str, status: int = 400, *, details: Optional[Dict[str, Any]] = None):
    payload: Dict[str, Any] = {"error": message}
    if details is not None:
        payload["details"] = details
    return jsonify(payload), status


def json_body() -> Dict[str, Any]:
    """Request body as a dict; an absent body reads as empty."""
    if not request.get_data():
        return {}
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON body")
    return data


def int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"Query parameter {name} must be an integer") from exc


def _handle_app_error(exc: EchoReadsError):
    if exc.status_code >= 500:
        LOG.error("%s on %s %s: %s", type(exc).__name__, request.method, request.path, exc.message)
    return _json_error(exc.message, exc.status_code)


def _handle_unexpected(exc: Exception):
    if isinstance(exc, HTTPException):
        return _json_error(exc.description or exc.name, exc.code or 500)
    LOG.exception("Unhandled error on %s %s", request.method, request.path)
    return _json_error("Internal server error", 500)


def install_error_handlers(bp: Any) -> None:
    bp.register_error_handler(EchoReadsError, _handle_app_error)
    bp.register_error_handler(Exception, _handle_unexpected)


__all__ = ["_json_error", "json_body", "int_arg", "install_error_handlers"]
