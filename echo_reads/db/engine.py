"""Database engine & session management.

One engine per process, a thread-scoped session registry and a
context-managed unit of work. Nested ``app_session()`` scopes on the same
thread join the outermost scope, so a service can wrap several repository
calls in a single transaction.
"""
from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session as SASession, scoped_session, sessionmaker

from echo_reads import config as app_config
from echo_reads.db.models import Base
from echo_reads.utils.logging import get_logger

_engine: Optional[Engine] = None
_SessionFactory: Optional[Callable[[], SASession]] = None
_scoped: Optional[scoped_session] = None
_LOCK = threading.Lock()
_SCOPE = threading.local()

LOG = get_logger("echo_reads.db")


def _sqlite_pragmas(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_engine_once() -> None:
    global _engine, _SessionFactory, _scoped
    if _engine is not None:
        return
    with _LOCK:
        if _engine is not None:
            return
        url = make_url(app_config.database_url())
        LOG.info("Initializing database engine at %s", url.render_as_string(hide_password=True))
        if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
            parent_dir = os.path.dirname(os.path.abspath(url.database)) or "."
            os.makedirs(parent_dir, exist_ok=True)
            if not os.access(parent_dir, os.W_OK):
                raise RuntimeError(f"echo_reads DB directory not writable: {parent_dir}")
        engine = create_engine(url, future=True)
        if url.get_backend_name() == "sqlite":
            event.listen(engine, "connect", _sqlite_pragmas)
        _engine = engine
        _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False, class_=SASession)
        _scoped = scoped_session(_SessionFactory)
        _safe_create_schema()
        LOG.debug("echo_reads schema ready")


def _safe_create_schema() -> None:
    """Create missing tables; tolerate the 'already exists' race between workers."""
    if _engine is None:
        return
    try:
        Base.metadata.create_all(_engine)
    except OperationalError as e:  # pragma: no cover - concurrency edge
        if "already exists" in str(e).lower():
            LOG.warning("Schema create encountered existing tables (benign race)")
        else:
            raise


def get_engine() -> Engine:
    if _engine is None:
        init_engine_once()
    return _engine  # type: ignore[return-value]


def get_session_factory() -> Callable[[], SASession]:
    if _SessionFactory is None:
        init_engine_once()
    return _SessionFactory  # type: ignore[return-value]


def get_scoped_session() -> scoped_session:
    if _scoped is None:
        init_engine_once()
    if _scoped is None:
        raise RuntimeError("Scoped session could not be initialized.")
    return _scoped


@contextmanager
def app_session() -> Iterator[SASession]:
    """Unit of work: commit on success, roll back on error, always close.

    Inner scopes only flush; the outermost scope owns commit/rollback.
    """
    scoped = get_scoped_session()
    sess = scoped()
    depth = getattr(_SCOPE, "depth", 0)
    _SCOPE.depth = depth + 1
    try:
        yield sess
        if depth == 0:
            sess.commit()
        else:
            sess.flush()
    except Exception:
        if depth == 0:
            sess.rollback()
        raise
    finally:
        _SCOPE.depth = depth
        if depth == 0:
            sess.close()


def reset_for_tests(drop: bool = False) -> None:
    global _engine, _SessionFactory, _scoped
    with _LOCK:
        if _scoped is not None:
            _scoped.remove()
        if _engine is not None and drop:
            try:
                Base.metadata.drop_all(_engine)
            except Exception:
                LOG.warning("Failed dropping tables during reset", exc_info=True)
        if _engine is not None:
            _engine.dispose()
        _engine = None
        _SessionFactory = None
        _scoped = None
        _SCOPE.depth = 0


__all__ = [
    "init_engine_once",
    "get_engine",
    "get_session_factory",
    "get_scoped_session",
    "app_session",
    "reset_for_tests",
]
