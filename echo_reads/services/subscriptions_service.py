"""Premium subscriptions: checkout, portal, plans and yearly usage limits."""
from __future__ import annotations

import calendar
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from echo_reads import config as app_config
from echo_reads.db.engine import app_session
from echo_reads.db.models import utcnow
from echo_reads.db.repositories import plans_repo, subscriptions_repo, usage_repo, users_repo
from echo_reads.services import email_delivery, stripe_service
from echo_reads.utils.errors import IntegrationError, NotFoundError, ValidationError
from echo_reads.utils.logging import get_logger

LOG = get_logger("subscriptions_service")

FREE_BOOK_LIMIT = 50
DEFAULT_FEATURES = {"maxBooksPerYear": FREE_BOOK_LIMIT}
WARNING_THRESHOLDS = (40, 48)


def _replace_year(value: datetime, year: int) -> datetime:
    # Feb 29 anniversaries fall back to Feb 28 in common years.
    day = min(value.day, calendar.monthrange(year, value.month)[1])
    return value.replace(year=year, day=day)


def usage_period(anniversary: datetime, now: datetime) -> Tuple[datetime, datetime]:
    """Anniversary-anchored yearly window containing ``now``.

    Start is the anniversary date (midnight) in the current year, or the
    previous year when that date is still ahead; end is one year later
    minus one day.
    """
    anchor = datetime(anniversary.year, anniversary.month, anniversary.day)
    start = _replace_year(anchor, now.year)
    if start > now:
        start = _replace_year(anchor, now.year - 1)
    end = _replace_year(start, start.year + 1) - timedelta(days=1)
    return start, end


def _features_for(user_id: str) -> Dict[str, Any]:
    found = subscriptions_repo.get_with_plan(user_id)
    if found is None:
        return dict(DEFAULT_FEATURES)
    _sub, plan = found
    if not plan.features:
        return dict(DEFAULT_FEATURES)
    return plan.features_dict()


def get_usage_stats(user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    current = now or utcnow()
    with app_session():
        user = users_repo.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found")
        anniversary = user.subscription_anniversary or user.created_at
        period_start, period_end = usage_period(anniversary, current)
        usage = usage_repo.get_or_create_usage(user_id, period_start, period_end)
        limit = _features_for(user_id).get("maxBooksPerYear")
        return {
            "usageId": usage.id,
            "booksAdded": usage.books_added,
            "limit": limit,
            "periodStart": period_start.isoformat(),
            "periodEnd": period_end.isoformat(),
            "hasUnlimited": limit is None,
        }


def can_add_book(user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    usage = get_usage_stats(user_id, now=now)
    if usage["hasUnlimited"]:
        return {"allowed": True, "usage": usage}
    limit = usage["limit"]
    if usage["booksAdded"] >= limit:
        return {
            "allowed": False,
            "reason": f"You've reached your limit of {limit} books this year. Upgrade to Premium for unlimited books!",
            "usage": usage,
        }
    return {"allowed": True, "usage": usage}


def _notify_threshold(user_id: str, books_added: int, limit: Optional[int]) -> Optional[str]:
    if limit != FREE_BOOK_LIMIT:
        return None
    if books_added in WARNING_THRESHOLDS:
        template = "limit_warning"
    elif books_added == FREE_BOOK_LIMIT:
        template = "limit_reached"
    else:
        return None
    user = users_repo.get_user(user_id)
    if user is None or not user.email:
        return None
    name = user.username or "there"
    try:
        if template == "limit_warning":
            email_delivery.send_limit_warning_email(user.email, name, books_added, limit=limit)
        else:
            email_delivery.send_limit_reached_email(user.email, name, limit=limit)
    except email_delivery.EmailDeliveryError:
        LOG.warning("Failed to send %s email user=%s", template, user_id, exc_info=True)
        return None
    return template


def record_book_usage(user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Count one library addition without notifying; joins the caller's transaction."""
    with app_session():
        usage = get_usage_stats(user_id, now=now)
        updated = usage_repo.increment_books_added(usage["usageId"])
        books_added = updated.books_added if updated else usage["booksAdded"] + 1
    return {"booksAdded": books_added, "limit": usage["limit"]}


def notify_usage_threshold(user_id: str, usage: Dict[str, Any]) -> Dict[str, Any]:
    """Send the warning/limit email for a recorded count. Call after the count is committed."""
    notified = _notify_threshold(user_id, usage["booksAdded"], usage["limit"])
    return {**usage, "emailSent": notified}


def increment_book_usage(user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Count one library addition; free-tier users get warning/limit emails."""
    return notify_usage_threshold(user_id, record_book_usage(user_id, now=now))


def get_user_subscription(user_id: str) -> Dict[str, Any]:
    found = subscriptions_repo.get_with_plan(user_id)
    if found is None:
        return {"subscription": None}
    sub, plan = found
    payload = sub.as_dict()
    payload["plan"] = plan.as_dict()
    return {"subscription": payload}


def get_active_plans() -> List[Dict[str, Any]]:
    return [plan.as_dict() for plan in plans_repo.list_plans(active_only=True, include_internal=False)]


def create_checkout_session(user_id: str, plan_id: str) -> Dict[str, Any]:
    user = users_repo.ensure_user(user_id)
    plan = plans_repo.get_plan(plan_id) if plan_id else None
    if plan is None or not plan.stripe_price_id:
        raise ValidationError("Invalid plan")

    customer_id = user.stripe_customer_id
    if not customer_id:
        ok, customer = stripe_service.create_customer(user.email, {"userId": user_id})
        if not ok or not customer.get("id"):
            LOG.error("Stripe customer creation failed user=%s: %s", user_id, customer)
            raise IntegrationError("Failed to create checkout session")
        customer_id = customer["id"]
        users_repo.update_user(user_id, stripe_customer_id=customer_id)

    base = app_config.base_url()
    ok, session = stripe_service.create_checkout_session(
        customer_id=customer_id,
        price_id=plan.stripe_price_id,
        success_url=f"{base}/subscription/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{base}/subscription/canceled",
        metadata={"userId": user_id, "planId": plan.id},
    )
    if not ok:
        LOG.error("Stripe checkout session failed user=%s plan=%s: %s", user_id, plan.id, session)
        raise IntegrationError("Failed to create checkout session")
    return {"sessionId": session.get("id"), "url": session.get("url")}


def create_portal_session(user_id: str) -> Dict[str, Any]:
    user = users_repo.get_user(user_id)
    if user is None or not user.stripe_customer_id:
        raise ValidationError("No Stripe customer found")
    ok, session = stripe_service.create_portal_session(
        user.stripe_customer_id, f"{app_config.base_url()}/subscription"
    )
    if not ok:
        LOG.error("Stripe portal session failed user=%s: %s", user_id, session)
        raise IntegrationError("Failed to create portal session")
    return {"url": session.get("url")}


__all__ = [
    "FREE_BOOK_LIMIT",
    "DEFAULT_FEATURES",
    "usage_period",
    "get_usage_stats",
    "can_add_book",
    "record_book_usage",
    "notify_usage_threshold",
    "increment_book_usage",
    "get_user_subscription",
    "get_active_plans",
    "create_checkout_session",
    "create_portal_session",
]
