"""Application configuration accessors.

Centralizes environment variable parsing & defaults so the rest of the
package never reads ``os.environ`` directly. Accessors are plain functions
(no caching) so tests can monkeypatch the environment between calls.
"""
from __future__ import annotations

import os
from functools import lru_cache

APP_NAME = "echo_reads"
APP_VERSION = "0.1.0"
APP_DESCRIPTION = "Social book tracking with premium subscriptions"

DEFAULT_DB_PATH = "echo_reads.db"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_BASE_URL = "http://localhost:3000"


def _raw_env(name: str, default: str | None = None) -> str | None:
    val = os.getenv(name)
    return val if val is not None else default


def _clean_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def get_db_path() -> str:
    return _raw_env("ECHO_READS_DB_PATH", DEFAULT_DB_PATH)  # type: ignore[return-value]


def database_url() -> str:
    """SQLAlchemy URL; ECHO_READS_DATABASE_URL wins over the SQLite path."""
    explicit = _clean_env("ECHO_READS_DATABASE_URL")
    if explicit:
        return explicit
    return f"sqlite:///{get_db_path()}"


def log_level_name() -> str:
    return _raw_env("ECHO_READS_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()  # type: ignore[union-attr]


def secret_key() -> str:
    return _raw_env("SECRET_KEY", "echo-reads-dev-secret")  # type: ignore[return-value]


def base_url() -> str:
    """Public site URL used for redirects and email links (NEXT_PUBLIC_BASE_URL)."""
    value = _clean_env("ECHO_READS_BASE_URL") or _clean_env("NEXT_PUBLIC_BASE_URL") or DEFAULT_BASE_URL
    return value.rstrip("/")


@lru_cache(maxsize=1)
def metadata() -> dict:
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "description": APP_DESCRIPTION,
    }


def summarize_runtime_config() -> dict:
    return {
        "database_url": database_url(),
        "log_level": log_level_name(),
        "base_url": base_url(),
        "stripe_configured": bool(stripe_secret_key()),
        "resend_configured": bool(resend_api_key()),
        "storage_configured": bool(s3_bucket_name()),
    }


__all__ = [
    "APP_NAME",
    "APP_VERSION",
    "APP_DESCRIPTION",
    "get_db_path",
    "database_url",
    "log_level_name",
    "secret_key",
    "base_url",
    "metadata",
    "summarize_runtime_config",
]


# ---------------- Clerk (identity provider) ---------------

def clerk_jwks_url() -> str | None:
    """JWKS endpoint used to verify Clerk session tokens."""
    explicit = _clean_env("CLERK_JWKS_URL")
    if explicit:
        return explicit
    issuer = clerk_issuer()
    if issuer:
        return f"{issuer.rstrip('/')}/.well-known/jwks.json"
    return None


def clerk_issuer() -> str | None:
    return _clean_env("CLERK_ISSUER")


def clerk_webhook_secret() -> str | None:
    return _clean_env("CLERK_WEBHOOK_SECRET")


__all__.extend(["clerk_jwks_url", "clerk_issuer", "clerk_webhook_secret"])


# ---------------- Stripe ---------------

def stripe_secret_key() -> str | None:
    return _clean_env("STRIPE_SECRET_KEY")


def stripe_webhook_secret() -> str | None:
    return _clean_env("STRIPE_WEBHOOK_SECRET")


def stripe_api_base() -> str:
    return (_clean_env("STRIPE_API_BASE") or "https://api.stripe.com/v1").rstrip("/")


__all__.extend(["stripe_secret_key", "stripe_webhook_secret", "stripe_api_base"])


# ---------------- Resend (email) ---------------

def resend_api_key() -> str | None:
    return _clean_env("RESEND_API_KEY")


def resend_from_email() -> str:
    return _clean_env("RESEND_FROM_EMAIL") or "Echo Reads <noreply@echoreads.app>"


__all__.extend(["resend_api_key", "resend_from_email"])


# ---------------- S3 object storage ---------------

def aws_region() -> str:
    return _clean_env("AWS_REGION") or "us-east-1"


def s3_bucket_name() -> str | None:
    return _clean_env("AWS_S3_BUCKET_NAME")


def s3_public_url() -> str | None:
    """Public URL prefix for uploaded objects (AWS_S3_PUBLIC_URL)."""
    value = _clean_env("AWS_S3_PUBLIC_URL")
    if value:
        return value.rstrip("/")
    bucket = s3_bucket_name()
    if bucket:
        return f"https://{bucket}.s3.{aws_region()}.amazonaws.com"
    return None


__all__.extend(["aws_region", "s3_bucket_name", "s3_public_url"])


# ---------------- Open Library ---------------

def open_library_base_url() -> str:
    return (_clean_env("OPEN_LIBRARY_BASE_URL") or "https://openlibrary.org").rstrip("/")


def open_library_timeout() -> float:
    raw = _clean_env("OPEN_LIBRARY_TIMEOUT")
    try:
        return float(raw) if raw else 10.0
    except ValueError:
        return 10.0


__all__.extend(["open_library_base_url", "open_library_timeout"])
