"""Utility helpers: identity, errors and logging."""
from .errors import (
    EchoReadsError,
    ValidationError,
    Unauthorized,
    PermissionDenied,
    NotFoundError,
    ConflictError,
    LimitReachedError,
    IntegrationError,
)

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
