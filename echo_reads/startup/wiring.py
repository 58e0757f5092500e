"""Application initialization / wiring.

Orchestrates: DB init, default data seeding and blueprint registration.
"""
from __future__ import annotations

from typing import Any, Optional

from flask import Flask
from sqlalchemy.exc import SQLAlchemyError

from echo_reads import config as app_config
from echo_reads.db import init_engine_once
from echo_reads.routes.inject import register_all as register_routes
from echo_reads.startup.seed import ensure_free_plan
from echo_reads.utils.logging import get_logger

LOG = get_logger("echo_reads.startup")


def init_app(app: Any) -> None:
    LOG.debug("init_app starting")
    init_engine_once()
    LOG.debug("DB engine initialized")
    try:
        ensure_free_plan()
    except SQLAlchemyError:
        LOG.exception("Failed seeding the free plan")
    register_routes(app)
    summary = app_config.summarize_runtime_config()
    summary.pop("database_url", None)
    LOG.info("App startup wiring complete config=%s", summary)


def create_app(config: Optional[dict] = None) -> Flask:
    app = Flask("echo_reads")
    app.config["SECRET_KEY"] = app_config.secret_key()
    app.config["JSON_SORT_KEYS"] = False
    if config:
        app.config.update(config)
    init_app(app)
    return app


__all__ = ["init_app", "create_app"]
