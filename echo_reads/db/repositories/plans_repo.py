"""Repository helpers for subscription plans."""
from __future__ import annotations

from typing import List, Optional

from echo_reads.db.engine import app_session
from echo_reads.db.models import SubscriptionPlan

_UPDATABLE = {
    "name",
    "stripe_price_id",
    "stripe_product_id",
    "price",
    "interval",
    "features",
    "is_active",
    "is_internal",
    "sort_order",
}


def get_plan(plan_id: str) -> Optional[SubscriptionPlan]:
    with app_session() as session:
        return session.get(SubscriptionPlan, plan_id)


def get_plan_by_price(stripe_price_id: str) -> Optional[SubscriptionPlan]:
    with app_session() as session:
        return (
            session.query(SubscriptionPlan)
            .filter(SubscriptionPlan.stripe_price_id == stripe_price_id)
            .one_or_none()
        )


def get_free_plan() -> Optional[SubscriptionPlan]:
    with app_session() as session:
        return (
            session.query(SubscriptionPlan)
            .filter(SubscriptionPlan.interval == "free")
            .order_by(SubscriptionPlan.sort_order.asc())
            .first()
        )


def list_plans(*, active_only: bool = False, include_internal: bool = True) -> List[SubscriptionPlan]:
    with app_session() as session:
        q = session.query(SubscriptionPlan)
        if active_only:
            q = q.filter(SubscriptionPlan.is_active.is_(True))
        if not include_internal:
            q = q.filter(SubscriptionPlan.is_internal.is_(False))
        return q.order_by(SubscriptionPlan.sort_order.asc(), SubscriptionPlan.name.asc()).all()


def create_plan(**fields) -> SubscriptionPlan:
    unknown = set(fields) - _UPDATABLE
    if unknown:
        raise ValueError(f"Unknown plan fields: {sorted(unknown)}")
    plan = SubscriptionPlan(**fields)
    with app_session() as session:
        session.add(plan)
        session.flush()
    return plan


def update_plan(plan_id: str, **fields) -> Optional[SubscriptionPlan]:
    unknown = set(fields) - _UPDATABLE
    if unknown:
        raise ValueError(f"Unknown plan fields: {sorted(unknown)}")
    with app_session() as session:
        plan = session.get(SubscriptionPlan, plan_id)
        if plan is None:
            return None
        for key, value in fields.items():
            setattr(plan, key, value)
        session.flush()
        return plan


__all__ = [
    "get_plan",
    "get_plan_by_price",
    "get_free_plan",
    "list_plans",
    "create_plan",
    "update_plan",
]
