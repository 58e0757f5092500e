"""ORM models aggregate exports."""
from .base import Base, utcnow, new_id  # noqa: F401
from .library import (  # noqa: F401
    READING_STATUSES,
    USER_ROLES,
    User,
    Book,
    UserBook,
    Review,
    Follow,
)
from .collections import Collection, CollectionBook, CollectionFollow  # noqa: F401
from .billing import (  # noqa: F401
    PLAN_INTERVALS,
    SUBSCRIPTION_STATUSES,
    SubscriptionPlan,
    UserSubscription,
    SubscriptionUsage,
    AuditLog,
)

__all__ = [
    "Base",
    "utcnow",
    "new_id",
    "READING_STATUSES",
    "USER_ROLES",
    "User",
    "Book",
    "UserBook",
    "Review",
    "Follow",
    "Collection",
    "CollectionBook",
    "CollectionFollow",
    "PLAN_INTERVALS",
    "SUBSCRIPTION_STATUSES",
    "SubscriptionPlan",
    "UserSubscription",
    "SubscriptionUsage",
    "AuditLog",
]
