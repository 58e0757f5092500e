"""Template-driven transactional email via the Resend HTTP API.

Templates live under ``echo_reads/templates/emails`` and are rendered with
Jinja2; a plain-text alternative is derived from the rendered HTML.
"""
from __future__ import annotations

import html
import os
import re
from datetime import datetime
from typing import Any, Dict, Optional

import requests
from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

from echo_reads import config as app_config
from echo_reads.utils.logging import get_logger

LOG = get_logger("email_delivery")

RESEND_API_URL = "https://api.resend.com/emails"
_TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "templates", "emails")
_JINJA_ENV = Environment(
    loader=FileSystemLoader(_TEMPLATE_DIR),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)
_HTML_BREAK_PATTERN = re.compile(r"</p>|</h2>|<br\s*/?>", re.IGNORECASE)
_TAG_PATTERN = re.compile(r"<[^>]+>")

SUBJECTS = {
    "limit_reached": "You've reached your book limit",
    "limit_warning": "Approaching your book limit",
    "payment_failed": "Payment failed for your Premium subscription",
    "subscription_canceled": "Your Premium subscription has been canceled",
    "upcoming_renewal": "Your Premium subscription will renew soon",
    "welcome_premium": "Welcome to Echo Premium!",
}


class EmailDeliveryError(RuntimeError):
    """Base error for email delivery failures."""


class TemplateMissingError(EmailDeliveryError):
    """Raised when the requested template key is unknown."""


class MailNotConfiguredError(EmailDeliveryError):
    """Raised when RESEND_API_KEY is absent."""


class EmailSendError(EmailDeliveryError):
    """Raised when Resend rejects the message or is unreachable."""


def site_url(path: str) -> str:
    if not path.startswith("/"):
        path = f"/{path}"
    return f"{app_config.base_url()}{path}"


def _render_template(template_key: str, context: Dict[str, Any]) -> str:
    if template_key not in SUBJECTS:
        raise TemplateMissingError(f"{template_key}_template_missing")
    try:
        template = _JINJA_ENV.get_template(f"{template_key}.html")
        return template.render(**context)
    except TemplateError as exc:
        raise EmailDeliveryError("template_render_failed") from exc


def _html_to_text(value: str) -> str:
    if not value:
        return ""
    working = _HTML_BREAK_PATTERN.sub("\n", value)
    working = _TAG_PATTERN.sub("", working)
    working = html.unescape(working)
    working = re.sub(r"[ \t]+\n", "\n", working)
    working = re.sub(r"\n{3,}", "\n\n", working)
    return working.strip()


def _format_date(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%B %d, %Y").replace(" 0", " ")
    return str(value or "")


def send_email(*, to: str, subject: str, html_body: str, text_body: Optional[str] = None, timeout: int = 10) -> Dict[str, Any]:
    api_key = app_config.resend_api_key()
    if not api_key:
        raise MailNotConfiguredError("resend_not_configured")
    payload = {
        "from": app_config.resend_from_email(),
        "to": [to],
        "subject": subject,
        "html": html_body,
        "text": text_body if text_body is not None else _html_to_text(html_body),
    }
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    try:
        resp = requests.post(RESEND_API_URL, json=payload, headers=headers, timeout=timeout)
    except requests.RequestException as exc:
        raise EmailSendError("resend_unreachable") from exc
    if resp.status_code >= 300:
        LOG.warning("Resend rejected email to=%s status=%s body=%s", to, resp.status_code, resp.text[:300])
        raise EmailSendError(f"resend_http_{resp.status_code}")
    try:
        data = resp.json()
    except ValueError:
        data = {}
    LOG.info("Email queued subject=%r to=%s id=%s", subject, to, data.get("id"))
    return {"id": data.get("id"), "queued": True}


def send_template_email(template_key: str, to: str, **context: Any) -> Dict[str, Any]:
    context.setdefault("user_name", "there")
    context.setdefault("subscription_url", site_url("/subscription"))
    context.setdefault("library_url", site_url("/library"))
    html_body = _render_template(template_key, context)
    result = send_email(to=to, subject=SUBJECTS[template_key], html_body=html_body)
    result["template"] = template_key
    return result


def send_limit_reached_email(to: str, user_name: str, *, limit: int = 50) -> Dict[str, Any]:
    return send_template_email("limit_reached", to, user_name=user_name, limit=limit)


def send_limit_warning_email(to: str, user_name: str, books_added: int, *, limit: int = 50) -> Dict[str, Any]:
    return send_template_email("limit_warning", to, user_name=user_name, books_added=books_added, limit=limit)


def send_payment_failed_email(to: str, user_name: str) -> Dict[str, Any]:
    return send_template_email("payment_failed", to, user_name=user_name)


def send_subscription_canceled_email(to: str, user_name: str, period_end: datetime) -> Dict[str, Any]:
    return send_template_email("subscription_canceled", to, user_name=user_name, period_end=_format_date(period_end))


def send_upcoming_renewal_email(to: str, user_name: str, renewal_date: datetime, amount_cents: int) -> Dict[str, Any]:
    return send_template_email(
        "upcoming_renewal",
        to,
        user_name=user_name,
        renewal_date=_format_date(renewal_date),
        amount=f"{amount_cents / 100:.2f}",
    )


def send_welcome_premium_email(to: str, user_name: str) -> Dict[str, Any]:
    return send_template_email("welcome_premium", to, user_name=user_name)


__all__ = [
    "EmailDeliveryError",
    "TemplateMissingError",
    "MailNotConfiguredError",
    "EmailSendError",
    "SUBJECTS",
    "site_url",
    "send_email",
    "send_template_email",
    "send_limit_reached_email",
    "send_limit_warning_email",
    "send_payment_failed_email",
    "send_subscription_canceled_email",
    "send_upcoming_renewal_email",
    "send_welcome_premium_email",
]
