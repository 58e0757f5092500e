"""Blueprint registration.

Called from startup wiring; every ``register_*`` helper is idempotent so
tests can build throwaway apps with the same function.
"""
from __future__ import annotations

from typing import Any

from .api_admin import register_admin_api
from .api_books import register_books_api
from .api_collections import register_collections_api
from .api_profile import register_profile_api
from .api_reviews import register_reviews_api
from .api_social import register_social_api
from .api_subscription import register_subscription_api
from .health import register_health
from .webhooks import register_webhooks


def register_all(app: Any) -> None:
    register_books_api(app)
    register_reviews_api(app)
    register_social_api(app)
    register_profile_api(app)
    register_collections_api(app)
    register_subscription_api(app)
    register_admin_api(app)
    register_webhooks(app)
    register_health(app)


__all__ = ["register_all"]
