"""Append-only audit log storage."""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

from echo_reads.db.engine import app_session
from echo_reads.db.models import AuditLog, User


def append(
    user_id: Optional[str],
    action: str,
    *,
    target_id: Optional[str] = None,
    target_type: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    entry = AuditLog(
        user_id=user_id,
        action=action,
        target_id=target_id,
        target_type=target_type,
        metadata_json=json.dumps(metadata, default=str) if metadata else None,
    )
    with app_session() as session:
        session.add(entry)
        session.flush()
    return entry


def list_recent(limit: int = 100) -> List[Tuple[AuditLog, Optional[User]]]:
    with app_session() as session:
        rows = (
            session.query(AuditLog, User)
            .outerjoin(User, User.id == AuditLog.user_id)
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
            .all()
        )
        return [(entry, actor) for entry, actor in rows]


__all__ = ["append", "list_recent"]
