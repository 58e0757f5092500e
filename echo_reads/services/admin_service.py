"""Administrative operations.

Every function takes the acting user's id, checks the role hierarchy
(user < moderator < admin) and records an audit log entry for each
mutation inside the same transaction.
"""
from __future__ import annotations

import json
import re
from datetime import timedelta
from typing import Any, Dict, List, Optional

from echo_reads.db.engine import app_session
from echo_reads.db.models import PLAN_INTERVALS, USER_ROLES, utcnow
from echo_reads.db.repositories import (
    audit_repo,
    books_repo,
    plans_repo,
    reviews_repo,
    subscriptions_repo,
    user_books_repo,
    users_repo,
)
from echo_reads.services import stripe_service
from echo_reads.services.profile_service import USERNAME_PATTERN, USERNAME_RULE
from echo_reads.utils.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from echo_reads.utils.identity import has_role, normalize_email
from echo_reads.utils.logging import get_logger

LOG = get_logger("admin_service")

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NEW_USER_WINDOW_DAYS = 30

_BOOK_FIELDS = {
    "title": "title",
    "author": "author",
    "isbn": "isbn",
    "coverUrl": "cover_url",
    "pages": "pages",
    "publishedYear": "published_year",
}
_PLAN_FIELDS = {
    "name": "name",
    "stripePriceId": "stripe_price_id",
    "stripeProductId": "stripe_product_id",
    "price": "price",
    "interval": "interval",
    "isActive": "is_active",
    "isInternal": "is_internal",
    "sortOrder": "sort_order",
}


def _require(actor_id: str, role: str) -> None:
    if not actor_id or not has_role(actor_id, role):
        raise PermissionDenied()


def _validate_role(role: Any) -> str:
    if role not in USER_ROLES:
        raise ValidationError("Invalid role")
    return role


def update_user_role(actor_id: str, target_user_id: str, new_role: str) -> Dict[str, Any]:
    _require(actor_id, "admin")
    if actor_id == target_user_id:
        raise ValidationError("Cannot change your own role")
    _validate_role(new_role)
    with app_session():
        if users_repo.update_user(target_user_id, role=new_role) is None:
            raise NotFoundError("User not found")
        audit_repo.append(
            actor_id, "user.role.update", target_id=target_user_id, target_type="user", metadata={"newRole": new_role}
        )
    LOG.info("Role changed user=%s role=%s by=%s", target_user_id, new_role, actor_id)
    return {"success": True}


def update_user_as_admin(actor_id: str, target_user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    _require(actor_id, "admin")
    if actor_id == target_user_id and data.get("role"):
        raise ValidationError("Cannot change your own role")
    changes: Dict[str, Any] = {}
    with app_session():
        if users_repo.get_user(target_user_id) is None:
            raise NotFoundError("User not found")
        if "username" in data:
            username = data.get("username")
            if username in (None, ""):
                changes["username"] = None
            else:
                if not isinstance(username, str) or not USERNAME_PATTERN.match(username):
                    raise ValidationError(USERNAME_RULE)
                existing = users_repo.get_user_by_username(username)
                if existing is not None and existing.id != target_user_id:
                    raise ConflictError("Username is already taken")
                changes["username"] = username
        if "email" in data:
            email = normalize_email(data.get("email"))
            if not email or not EMAIL_PATTERN.match(email):
                raise ValidationError("Invalid email format")
            existing = users_repo.get_user_by_email(email)
            if existing is not None and existing.id != target_user_id:
                raise ConflictError("Email is already taken")
            changes["email"] = email
        if "bio" in data:
            changes["bio"] = data.get("bio") or None
        if data.get("role"):
            changes["role"] = _validate_role(data["role"])
        if "isPremium" in data:
            if not isinstance(data["isPremium"], bool):
                raise ValidationError("isPremium must be a boolean")
            changes["is_premium"] = data["isPremium"]
        user = users_repo.update_user(target_user_id, **changes)
        audit_repo.append(actor_id, "user.update", target_id=target_user_id, target_type="user", metadata=data)
        payload = user.as_dict()
    return {"success": True, "user": payload}


def delete_user_as_admin(actor_id: str, target_user_id: str) -> Dict[str, Any]:
    _require(actor_id, "admin")
    if actor_id == target_user_id:
        raise ValidationError("Cannot delete your own account")
    with app_session():
        if not users_repo.delete_user(target_user_id):
            raise NotFoundError("User not found")
        audit_repo.append(
            actor_id,
            "user.delete",
            target_id=target_user_id,
            target_type="user",
            metadata={"deletedAt": utcnow().isoformat()},
        )
    LOG.info("User deleted user=%s by=%s", target_user_id, actor_id)
    return {"success": True}


def delete_review_as_admin(actor_id: str, review_id: str) -> Dict[str, Any]:
    _require(actor_id, "moderator")
    with app_session():
        review = reviews_repo.get_review(review_id)
        if review is None:
            raise NotFoundError("Review not found")
        book_id = review.book_id
        reviews_repo.delete_review(review_id)
        audit_repo.append(
            actor_id, "review.delete", target_id=review_id, target_type="review", metadata={"bookId": book_id}
        )
    return {"success": True}


def update_book_as_admin(actor_id: str, book_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    _require(actor_id, "admin")
    changes = {column: data[key] for key, column in _BOOK_FIELDS.items() if key in data}
    for key in ("title", "author"):
        if key in changes and not (isinstance(changes[key], str) and changes[key].strip()):
            raise ValidationError(f"{key.capitalize()} cannot be empty")
    for key in ("pages", "published_year"):
        value = changes.get(key)
        if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
            raise ValidationError("Page count and year must be non-negative integers")
    with app_session():
        book = books_repo.update_book(book_id, **changes)
        if book is None:
            raise NotFoundError("Book not found")
        audit_repo.append(actor_id, "book.update", target_id=book_id, target_type="book", metadata=data)
        payload = book.as_dict()
    return {"success": True, "book": payload}


def get_audit_logs(actor_id: str, limit: int = 100) -> List[Dict[str, Any]]:
    _require(actor_id, "admin")
    logs = []
    for entry, actor in audit_repo.list_recent(limit=limit):
        row = entry.as_dict()
        row["user"] = actor.public_dict() if actor else None
        logs.append(row)
    return logs


def _plan_changes(data: Dict[str, Any]) -> Dict[str, Any]:
    changes = {column: data[key] for key, column in _PLAN_FIELDS.items() if key in data}
    if "interval" in changes and changes["interval"] not in PLAN_INTERVALS:
        raise ValidationError("Invalid plan interval")
    if "name" in changes and not (isinstance(changes["name"], str) and changes["name"].strip()):
        raise ValidationError("Plan name is required")
    price = changes.get("price")
    if price is not None and (isinstance(price, bool) or not isinstance(price, int) or price < 0):
        raise ValidationError("Price must be a non-negative integer (cents)")
    price_id = changes.get("stripe_price_id")
    if price_id:
        ok, _price = stripe_service.retrieve_price(price_id)
        if not ok:
            raise ValidationError("Invalid Stripe Price ID")
    elif "stripe_price_id" in changes:
        changes["stripe_price_id"] = None
    return changes


def _features_value(data: Dict[str, Any]) -> Optional[str]:
    features = data.get("features")
    if features is None or isinstance(features, dict):
        return json.dumps(features) if features is not None else None
    if isinstance(features, str):
        try:
            parsed = json.loads(features)
        except ValueError as exc:
            raise ValidationError("Features must be valid JSON") from exc
        if not isinstance(parsed, dict):
            raise ValidationError("Features must be a JSON object")
        return json.dumps(parsed)
    raise ValidationError("Features must be a JSON object")


def create_subscription_plan(actor_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    _require(actor_id, "admin")
    for key in ("name", "interval"):
        if key not in data:
            raise ValidationError(f"{key} is required")
    changes = _plan_changes(data)
    changes["features"] = _features_value(data)
    with app_session():
        plan = plans_repo.create_plan(**changes)
        audit_repo.append(
            actor_id, "subscription_plan.create", target_id=plan.id, target_type="subscription_plan", metadata=data
        )
        payload = plan.as_dict()
    return {"success": True, "plan": payload}


def update_subscription_plan(actor_id: str, plan_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    _require(actor_id, "admin")
    changes = _plan_changes(data)
    if "features" in data:
        changes["features"] = _features_value(data)
    with app_session():
        plan = plans_repo.update_plan(plan_id, **changes)
        if plan is None:
            raise NotFoundError("Plan not found")
        audit_repo.append(
            actor_id, "subscription_plan.update", target_id=plan_id, target_type="subscription_plan", metadata=data
        )
        payload = plan.as_dict()
    return {"success": True, "plan": payload}


def list_subscription_plans(actor_id: str) -> List[Dict[str, Any]]:
    _require(actor_id, "admin")
    return [plan.as_dict() for plan in plans_repo.list_plans()]


def grant_premium_subscription(actor_id: str, target_user_id: str, plan_id: str) -> Dict[str, Any]:
    """Manual grant; the period has no end until revoked."""
    _require(actor_id, "admin")
    now = utcnow()
    with app_session():
        plan = plans_repo.get_plan(plan_id) if plan_id else None
        if plan is None:
            raise NotFoundError("Plan not found")
        user = users_repo.get_user(target_user_id)
        if user is None:
            raise NotFoundError("User not found")
        subscriptions_repo.upsert_for_user(
            target_user_id,
            plan_id=plan.id,
            status="active",
            current_period_start=now,
            current_period_end=None,
        )
        is_premium = plan.interval != "free"
        changes: Dict[str, Any] = {"is_premium": is_premium, "premium_since": now if is_premium else None}
        if is_premium and user.subscription_anniversary is None:
            changes["subscription_anniversary"] = now
        users_repo.update_user(target_user_id, **changes)
        audit_repo.append(
            actor_id, "subscription.grant", target_id=target_user_id, target_type="user", metadata={"planId": plan.id}
        )
    LOG.info("Granted plan=%s to user=%s by=%s", plan.id, target_user_id, actor_id)
    return {"success": True}


def revoke_user_subscription(actor_id: str, target_user_id: str) -> Dict[str, Any]:
    _require(actor_id, "admin")
    now = utcnow()
    with app_session():
        free_plan = plans_repo.get_free_plan()
        if free_plan is None:
            raise NotFoundError("Free plan not found")
        if users_repo.get_user(target_user_id) is None:
            raise NotFoundError("User not found")
        if subscriptions_repo.get_for_user(target_user_id) is not None:
            subscriptions_repo.upsert_for_user(
                target_user_id,
                plan_id=free_plan.id,
                status="canceled",
                stripe_subscription_id=None,
                canceled_at=now,
            )
        else:
            subscriptions_repo.upsert_for_user(
                target_user_id, plan_id=free_plan.id, status="active", current_period_start=now
            )
        users_repo.update_user(target_user_id, is_premium=False, premium_since=None)
        audit_repo.append(
            actor_id,
            "subscription.revoke",
            target_id=target_user_id,
            target_type="user",
            metadata={"downgradedAt": now.isoformat()},
        )
    LOG.info("Revoked subscription user=%s by=%s", target_user_id, actor_id)
    return {"success": True}


def list_users_with_subscriptions(actor_id: str) -> List[Dict[str, Any]]:
    _require(actor_id, "admin")
    rows = []
    for user, sub, plan in subscriptions_repo.list_users_with_subscriptions():
        row = user.as_dict()
        if sub is not None:
            subscription = sub.as_dict()
            subscription["plan"] = plan.as_dict() if plan else None
            row["subscription"] = subscription
        else:
            row["subscription"] = None
        rows.append(row)
    return rows


def get_dashboard_stats(actor_id: str) -> Dict[str, Any]:
    _require(actor_id, "admin")
    since = utcnow() - timedelta(days=NEW_USER_WINDOW_DAYS)
    with app_session():
        popular = []
        for book, readers in books_repo.popular_books(limit=10):
            item = book.as_dict()
            item["readers"] = readers
            popular.append(item)
        return {
            "totalUsers": users_repo.count_users(),
            "totalBooks": books_repo.count_books(),
            "totalReviews": reviews_repo.count_all(),
            "totalUserBooks": user_books_repo.count_all(),
            "newUsers": users_repo.count_users(since=since),
            "popularBooks": popular,
            "recentUsers": [user.as_dict() for user in users_repo.list_users(limit=5)],
        }


__all__ = [
    "update_user_role",
    "update_user_as_admin",
    "delete_user_as_admin",
    "delete_review_as_admin",
    "update_book_as_admin",
    "get_audit_logs",
    "create_subscription_plan",
    "update_subscription_plan",
    "list_subscription_plans",
    "grant_premium_subscription",
    "revoke_user_subscription",
    "list_users_with_subscriptions",
    "get_dashboard_stats",
]
