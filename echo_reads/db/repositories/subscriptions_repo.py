"""Repository helpers for per-user subscription rows."""
from __future__ import annotations

from typing import List, Optional, Tuple

from echo_reads.db.engine import app_session
from echo_reads.db.models import SubscriptionPlan, User, UserSubscription

_UPDATABLE = {
    "plan_id",
    "stripe_subscription_id",
    "stripe_customer_id",
    "status",
    "current_period_start",
    "current_period_end",
    "cancel_at_period_end",
    "canceled_at",
}


def get_for_user(user_id: str) -> Optional[UserSubscription]:
    with app_session() as session:
        return session.query(UserSubscription).filter(UserSubscription.user_id == user_id).one_or_none()


def get_with_plan(user_id: str) -> Optional[Tuple[UserSubscription, SubscriptionPlan]]:
    with app_session() as session:
        row = (
            session.query(UserSubscription, SubscriptionPlan)
            .join(SubscriptionPlan, SubscriptionPlan.id == UserSubscription.plan_id)
            .filter(UserSubscription.user_id == user_id)
            .one_or_none()
        )
        return (row[0], row[1]) if row else None


def get_by_stripe_id(stripe_subscription_id: str) -> Optional[UserSubscription]:
    with app_session() as session:
        return (
            session.query(UserSubscription)
            .filter(UserSubscription.stripe_subscription_id == stripe_subscription_id)
            .one_or_none()
        )


def upsert_for_user(user_id: str, **fields) -> Tuple[UserSubscription, bool]:
    """Create or update the user's single subscription row. Returns (row, created)."""
    unknown = set(fields) - _UPDATABLE
    if unknown:
        raise ValueError(f"Unknown subscription fields: {sorted(unknown)}")
    with app_session() as session:
        sub = session.query(UserSubscription).filter(UserSubscription.user_id == user_id).one_or_none()
        created = sub is None
        if created:
            sub = UserSubscription(user_id=user_id, **fields)
            session.add(sub)
        else:
            for key, value in fields.items():
                setattr(sub, key, value)
        session.flush()
        return sub, created


def list_users_with_subscriptions() -> List[Tuple[User, Optional[UserSubscription], Optional[SubscriptionPlan]]]:
    with app_session() as session:
        rows = (
            session.query(User, UserSubscription, SubscriptionPlan)
            .outerjoin(UserSubscription, UserSubscription.user_id == User.id)
            .outerjoin(SubscriptionPlan, SubscriptionPlan.id == UserSubscription.plan_id)
            .order_by(User.created_at.desc())
            .all()
        )
        return [(user, sub, plan) for user, sub, plan in rows]


__all__ = [
    "get_for_user",
    "get_with_plan",
    "get_by_stripe_id",
    "upsert_for_user",
    "list_users_with_subscriptions",
]
