"""HTTP layer: JSON API blueprints, webhooks and the health check."""
from .inject import register_all

__all__ = ["register_all"]
