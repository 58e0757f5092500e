"""ORM models for subscription plans, subscriptions, usage and the audit log."""
from __future__ import annotations

import json

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .base import Base, iso, new_id, utcnow

PLAN_INTERVALS = ("month", "year", "lifetime", "free")
SUBSCRIPTION_STATUSES = ("active", "canceled", "past_due", "unpaid", "trialing", "incomplete")


def _load_json(raw):
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return None


class SubscriptionPlan(Base):
    """Plan catalog. ``features`` is JSON text, e.g. {"maxBooksPerYear": 50}."""

    __tablename__ = "subscription_plans"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    stripe_price_id = Column(String(255), nullable=True, unique=True)
    stripe_product_id = Column(String(255), nullable=True)
    price = Column(Integer, nullable=False, default=0)
    interval = Column(String(16), nullable=False)
    features = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_internal = Column(Boolean, nullable=False, default=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def features_dict(self) -> dict:
        loaded = _load_json(self.features)
        return loaded if isinstance(loaded, dict) else {}

    def set_features(self, features) -> None:
        self.features = json.dumps(features) if features is not None else None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "stripePriceId": self.stripe_price_id,
            "stripeProductId": self.stripe_product_id,
            "price": self.price,
            "interval": self.interval,
            "features": self.features_dict(),
            "isActive": bool(self.is_active),
            "isInternal": bool(self.is_internal),
            "sortOrder": self.sort_order,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class UserSubscription(Base):
    """At most one subscription row per user, mirrored from Stripe."""

    __tablename__ = "user_subscriptions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    plan_id = Column(String(36), ForeignKey("subscription_plans.id"), nullable=False, index=True)
    stripe_subscription_id = Column(String(255), nullable=True, unique=True)
    stripe_customer_id = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    canceled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "planId": self.plan_id,
            "stripeSubscriptionId": self.stripe_subscription_id,
            "stripeCustomerId": self.stripe_customer_id,
            "status": self.status,
            "currentPeriodStart": iso(self.current_period_start),
            "currentPeriodEnd": iso(self.current_period_end),
            "cancelAtPeriodEnd": bool(self.cancel_at_period_end),
            "canceledAt": iso(self.canceled_at),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class SubscriptionUsage(Base):
    """Books added within one anniversary-anchored usage period."""

    __tablename__ = "subscription_usage"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    books_added = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "period_start", name="uq_subscription_usage_period"),
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "periodStart": iso(self.period_start),
            "periodEnd": iso(self.period_end),
            "booksAdded": self.books_added,
        }


class AuditLog(Base):
    """Append-only record of admin mutations."""

    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    target_id = Column(String(64), nullable=True)
    target_type = Column(String(50), nullable=True)
    metadata_json = Column("metadata", Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    def metadata_dict(self) -> dict:
        loaded = _load_json(self.metadata_json)
        return loaded if isinstance(loaded, dict) else {}

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "action": self.action,
            "targetId": self.target_id,
            "targetType": self.target_type,
            "metadata": self.metadata_dict(),
            "createdAt": iso(self.created_at),
        }


__all__ = [
    "PLAN_INTERVALS",
    "SUBSCRIPTION_STATUSES",
    "SubscriptionPlan",
    "UserSubscription",
    "SubscriptionUsage",
    "AuditLog",
]
