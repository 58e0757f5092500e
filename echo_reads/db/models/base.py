"""Declarative base and column helpers shared by every model module."""
from __future__ import annotations

import datetime
import uuid

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime.datetime:
    """Naive UTC timestamp (SQLite stores no tz info)."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def iso(value):
    if value is None:
        return None
    return value.isoformat()


__all__ = ["Base", "utcnow", "new_id", "iso"]
