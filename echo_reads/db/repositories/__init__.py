"""Repository helpers; each function runs inside its own ``app_session`` scope."""
from __future__ import annotations


def like_pattern(query: str) -> str:
    """Substring LIKE pattern with wildcards in ``query`` escaped (escape char ``\\``)."""
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


__all__ = ["like_pattern"]
