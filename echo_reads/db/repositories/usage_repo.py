"""Repository helpers for yearly usage counters."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from echo_reads.db.engine import app_session
from echo_reads.db.models import SubscriptionUsage, utcnow


def get_or_create_usage(user_id: str, period_start: datetime, period_end: datetime) -> SubscriptionUsage:
    with app_session() as session:
        usage = (
            session.query(SubscriptionUsage)
            .filter(SubscriptionUsage.user_id == user_id, SubscriptionUsage.period_start == period_start)
            .one_or_none()
        )
        if usage is None:
            usage = SubscriptionUsage(
                user_id=user_id,
                period_start=period_start,
                period_end=period_end,
                books_added=0,
            )
            session.add(usage)
            session.flush()
        return usage


def increment_books_added(usage_id: str, amount: int = 1) -> Optional[SubscriptionUsage]:
    """Atomic ``books_added = books_added + amount`` update."""
    with app_session() as session:
        updated = (
            session.query(SubscriptionUsage)
            .filter(SubscriptionUsage.id == usage_id)
            .update(
                {
                    SubscriptionUsage.books_added: SubscriptionUsage.books_added + amount,
                    SubscriptionUsage.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        if not updated:
            return None
        usage = session.get(SubscriptionUsage, usage_id)
        if usage is not None:
            session.refresh(usage)
        return usage


__all__ = ["get_or_create_usage", "increment_books_added"]
