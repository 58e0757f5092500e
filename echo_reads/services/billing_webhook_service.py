"""Stripe webhook event handlers.

Keeps ``user_subscriptions`` and the user's premium flag in step with
Stripe. Each handler returns a small status dict; notification emails are
sent after the database work commits and never fail the event.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from echo_reads.db.engine import app_session
from echo_reads.db.models import SUBSCRIPTION_STATUSES, utcnow
from echo_reads.db.repositories import plans_repo, subscriptions_repo, users_repo
from echo_reads.services import email_delivery, stripe_service
from echo_reads.utils.errors import IntegrationError
from echo_reads.utils.logging import get_logger

LOG = get_logger("billing_webhook")

PREMIUM_STATUSES = ("active", "trialing")


def _from_unix(value: Any) -> Optional[datetime]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).replace(tzinfo=None)


def _object_id(value: Any) -> str:
    if isinstance(value, dict):
        return str(value.get("id") or "")
    return str(value or "")


def _first_item(subscription: Dict[str, Any]) -> Dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    return items[0] if items and isinstance(items[0], dict) else {}


def _period(subscription: Dict[str, Any], key: str) -> Optional[datetime]:
    # Newer API versions report the billing period per subscription item.
    value = subscription.get(key)
    if value is None:
        value = _first_item(subscription).get(key)
    return _from_unix(value)


def _resolve_user_id(subscription: Dict[str, Any]) -> Optional[str]:
    metadata = subscription.get("metadata") or {}
    user_id = metadata.get("userId")
    if user_id:
        return user_id
    customer_id = _object_id(subscription.get("customer"))
    if customer_id:
        user = users_repo.get_user_by_stripe_customer(customer_id)
        if user is not None:
            return user.id
    stripe_id = subscription.get("id")
    if stripe_id:
        sub = subscriptions_repo.get_by_stripe_id(stripe_id)
        if sub is not None:
            return sub.user_id
    return None


def _safe_send(label: str, send: Callable[[], Any]) -> bool:
    try:
        send()
        return True
    except email_delivery.EmailDeliveryError:
        LOG.warning("Failed to send %s email", label, exc_info=True)
        return False


def handle_subscription_update(subscription: Dict[str, Any]) -> Dict[str, Any]:
    customer_id = _object_id(subscription.get("customer"))
    price_id = _object_id((_first_item(subscription).get("price")))
    status = str(subscription.get("status") or "incomplete")
    if status not in SUBSCRIPTION_STATUSES:
        status = "incomplete"
    is_premium = status in PREMIUM_STATUSES

    with app_session():
        user_id = _resolve_user_id(subscription)
        if not user_id:
            LOG.error("No user found for Stripe customer=%s", customer_id)
            return {"status": "ignored", "reason": "user_not_found"}
        plan = plans_repo.get_plan_by_price(price_id) if price_id else None
        if plan is None:
            LOG.error("No plan found for Stripe price=%s", price_id)
            return {"status": "ignored", "reason": "plan_not_found"}
        user = users_repo.ensure_user(user_id)
        was_premium = bool(user.is_premium)
        subscriptions_repo.upsert_for_user(
            user_id,
            plan_id=plan.id,
            stripe_subscription_id=subscription.get("id"),
            stripe_customer_id=customer_id or None,
            status=status,
            current_period_start=_period(subscription, "current_period_start"),
            current_period_end=_period(subscription, "current_period_end"),
            cancel_at_period_end=bool(subscription.get("cancel_at_period_end")),
        )
        now = utcnow()
        changes: Dict[str, Any] = {"is_premium": is_premium}
        if is_premium and not was_premium:
            changes["premium_since"] = now
        elif not is_premium:
            changes["premium_since"] = None
        if is_premium and user.subscription_anniversary is None:
            changes["subscription_anniversary"] = now
        if customer_id:
            changes["stripe_customer_id"] = customer_id
        user = users_repo.update_user(user_id, **changes)
        email, name = user.email, user.username or "there"
    LOG.info("Subscription synced user=%s plan=%s status=%s", user_id, plan.name, status)

    welcomed = False
    if is_premium and not was_premium and email:
        welcomed = _safe_send("welcome", lambda: email_delivery.send_welcome_premium_email(email, name))
    return {"status": "ok", "user": user_id, "premium": is_premium, "welcomeSent": welcomed}


def handle_subscription_deleted(subscription: Dict[str, Any]) -> Dict[str, Any]:
    with app_session():
        user_id = _resolve_user_id(subscription)
        if not user_id:
            return {"status": "ignored", "reason": "user_not_found"}
        existing = subscriptions_repo.get_for_user(user_id)
        period_end = existing.current_period_end if existing else None
        if existing is not None:
            changes: Dict[str, Any] = {"status": "canceled", "canceled_at": utcnow()}
            free_plan = plans_repo.get_free_plan()
            if free_plan is not None:
                changes["plan_id"] = free_plan.id
            subscriptions_repo.upsert_for_user(user_id, **changes)
        user = users_repo.update_user(user_id, is_premium=False)
        email = user.email if user else None
        name = (user.username if user else None) or "there"
    LOG.info("Subscription canceled user=%s", user_id)

    notified = False
    if email and period_end:
        notified = _safe_send(
            "cancellation",
            lambda: email_delivery.send_subscription_canceled_email(email, name, period_end),
        )
    return {"status": "ok", "user": user_id, "cancellationSent": notified}


def _invoice_subscription_id(invoice: Dict[str, Any]) -> Optional[str]:
    direct = _object_id(invoice.get("subscription"))
    if direct:
        return direct
    details = ((invoice.get("parent") or {}).get("subscription_details") or {})
    nested = _object_id(details.get("subscription"))
    return nested or None


def handle_payment_succeeded(invoice: Dict[str, Any]) -> Dict[str, Any]:
    subscription_id = _invoice_subscription_id(invoice)
    if not subscription_id:
        return {"status": "ignored", "reason": "no_subscription"}
    ok, subscription = stripe_service.retrieve_subscription(subscription_id)
    if not ok:
        raise IntegrationError(f"Failed to retrieve subscription {subscription_id}")
    return handle_subscription_update(subscription)


def handle_payment_failed(invoice: Dict[str, Any]) -> Dict[str, Any]:
    customer_id = _object_id(invoice.get("customer"))
    with app_session():
        user = users_repo.get_user_by_stripe_customer(customer_id) if customer_id else None
        if user is None:
            return {"status": "ignored", "reason": "user_not_found"}
        if subscriptions_repo.get_for_user(user.id) is not None:
            subscriptions_repo.upsert_for_user(user.id, status="past_due")
        email, name, user_id = user.email, user.username or "there", user.id
    notified = False
    if email:
        notified = _safe_send("payment failed", lambda: email_delivery.send_payment_failed_email(email, name))
    return {"status": "ok", "user": user_id, "paymentFailedSent": notified}


def handle_upcoming_invoice(invoice: Dict[str, Any]) -> Dict[str, Any]:
    customer_id = _object_id(invoice.get("customer"))
    user = users_repo.get_user_by_stripe_customer(customer_id) if customer_id else None
    if user is None or not user.email:
        return {"status": "ignored", "reason": "user_not_found"}
    renewal = _from_unix(invoice.get("next_payment_attempt")) or _from_unix(invoice.get("period_end"))
    amount = invoice.get("amount_due") or 0
    if renewal is None:
        return {"status": "ignored", "reason": "no_renewal_date"}
    notified = _safe_send(
        "renewal",
        lambda: email_delivery.send_upcoming_renewal_email(user.email, user.username or "there", renewal, int(amount)),
    )
    return {"status": "ok", "user": user.id, "renewalSent": notified}


_HANDLERS = {
    "customer.subscription.created": handle_subscription_update,
    "customer.subscription.updated": handle_subscription_update,
    "customer.subscription.deleted": handle_subscription_deleted,
    "invoice.payment_succeeded": handle_payment_succeeded,
    "invoice.payment_failed": handle_payment_failed,
    "invoice.upcoming": handle_upcoming_invoice,
}


def dispatch_event(event: Dict[str, Any]) -> Dict[str, Any]:
    event_type = str(event.get("type") or "")
    handler = _HANDLERS.get(event_type)
    if handler is None:
        LOG.info("Unhandled Stripe event type=%s", event_type)
        return {"status": "ignored", "reason": "event_ignored", "event": event_type}
    obj = (event.get("data") or {}).get("object") or {}
    return handler(obj)


__all__ = [
    "handle_subscription_update",
    "handle_subscription_deleted",
    "handle_payment_succeeded",
    "handle_payment_failed",
    "handle_upcoming_invoice",
    "dispatch_event",
]
