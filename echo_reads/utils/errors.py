"""Error taxonomy shared by services and routes.

Services raise these; the API blueprints serialise them as
``{"error": message}`` with the carried HTTP status.
"""
from __future__ import annotations


class EchoReadsError(Exception):
    """Base error carrying an HTTP status."""

    status_code = 500

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(EchoReadsError, ValueError):
    status_code = 400


class Unauthorized(EchoReadsError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class PermissionDenied(EchoReadsError):
    status_code = 403

    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message)


class NotFoundError(EchoReadsError, LookupError):
    status_code = 404


class ConflictError(EchoReadsError):
    status_code = 409


class LimitReachedError(EchoReadsError):
    """Free-tier yearly book limit reached."""

    status_code = 403


class IntegrationError(EchoReadsError, RuntimeError):
    """Upstream provider (Stripe, Resend, S3, Open Library) failed."""

    status_code = 502


__all__ = [
    "EchoReadsError",
    "ValidationError",
    "Unauthorized",
    "PermissionDenied",
    "NotFoundError",
    "ConflictError",
    "LimitReachedError",
    "IntegrationError",
]
