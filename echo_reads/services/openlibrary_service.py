"""Open Library client with in-process TTL caches.

Search responses are cached for an hour and ISBN lookups for a day;
network and HTTP failures degrade to empty results.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import requests

from echo_reads import config as app_config
from echo_reads.utils.logging import get_logger

LOG = get_logger("openlibrary_service")

SEARCH_FIELDS = (
    "key",
    "title",
    "author_name",
    "cover_i",
    "isbn",
    "number_of_pages_median",
    "first_publish_year",
)
SEARCH_LIMIT = 20
COVERS_BASE = "https://covers.openlibrary.org/b/id"
UNKNOWN_AUTHOR = "Unknown Author"


@dataclass
class _CacheEntry:
    docs: List[Dict[str, Any]]
    fetched_at: float


_SEARCH_CACHE: Dict[Tuple[str, int], _CacheEntry] = {}
_SEARCH_CACHE_TTL = 3600.0  # seconds
_ISBN_CACHE: Dict[str, _CacheEntry] = {}
_ISBN_CACHE_TTL = 86400.0  # seconds
_CACHE_MAX_ENTRIES = 1024
_CACHE_LOCK = threading.Lock()


def _store(cache: Dict[Any, _CacheEntry], key: Any, docs: List[Dict[str, Any]], ttl: float) -> None:
    """Insert under _CACHE_LOCK, dropping expired entries and then the oldest past the cap."""
    now = time.time()
    for stale in [k for k, e in cache.items() if now - e.fetched_at >= ttl]:
        del cache[stale]
    cache.pop(key, None)
    cache[key] = _CacheEntry(docs=docs, fetched_at=now)
    while len(cache) > _CACHE_MAX_ENTRIES:
        del cache[next(iter(cache))]


def _fetch_docs(params: Dict[str, Any]) -> Optional[List[Dict[str, Any]]]:
    url = f"{app_config.open_library_base_url()}/search.json"
    try:
        r = requests.get(url, params=params, timeout=app_config.open_library_timeout())
    except requests.RequestException as exc:
        LOG.warning("Open Library request failed: %s", exc)
        return None
    if r.status_code != 200:
        LOG.warning("Open Library returned HTTP %s", r.status_code)
        return None
    try:
        data = r.json()
    except ValueError:
        LOG.warning("Open Library returned invalid JSON")
        return None
    docs = data.get("docs") if isinstance(data, dict) else None
    return [d for d in docs if isinstance(d, dict)] if isinstance(docs, list) else []


def search_books(query: str, page: int = 1) -> List[Dict[str, Any]]:
    term = (query or "").strip()
    if not term:
        return []
    key = (term.lower(), page)
    now = time.time()
    with _CACHE_LOCK:
        entry = _SEARCH_CACHE.get(key)
        if entry and now - entry.fetched_at < _SEARCH_CACHE_TTL:
            return list(entry.docs)
    params: Dict[str, Any] = {"q": term, "limit": SEARCH_LIMIT, "fields": ",".join(SEARCH_FIELDS)}
    if page > 1:
        params["page"] = page
    docs = _fetch_docs(params)
    if docs is None:
        return []
    with _CACHE_LOCK:
        _store(_SEARCH_CACHE, key, docs, _SEARCH_CACHE_TTL)
    return list(docs)


def get_book_by_isbn(isbn: str) -> Optional[Dict[str, Any]]:
    cleaned = (isbn or "").strip()
    if not cleaned:
        return None
    now = time.time()
    with _CACHE_LOCK:
        entry = _ISBN_CACHE.get(cleaned)
        if entry and now - entry.fetched_at < _ISBN_CACHE_TTL:
            return entry.docs[0] if entry.docs else None
    docs = _fetch_docs({"isbn": cleaned, "limit": 1, "fields": ",".join(SEARCH_FIELDS)})
    if docs is None:
        return None
    with _CACHE_LOCK:
        _store(_ISBN_CACHE, cleaned, docs[:1], _ISBN_CACHE_TTL)
    return docs[0] if docs else None


def cover_url(cover_id: Any, size: str = "M") -> Optional[str]:
    if not cover_id:
        return None
    return f"{COVERS_BASE}/{cover_id}-{size}.jpg"


def _first(values: Any) -> Optional[str]:
    if isinstance(values, list) and values:
        first = values[0]
        return str(first) if first else None
    return None


def normalize_book(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Map an Open Library doc onto catalog fields (camelCase)."""
    return {
        "isbn": _first(doc.get("isbn")),
        "title": str(doc.get("title") or "").strip(),
        "author": _first(doc.get("author_name")) or UNKNOWN_AUTHOR,
        "coverUrl": cover_url(doc.get("cover_i"), "L"),
        "pages": doc.get("number_of_pages_median") or None,
        "publishedYear": doc.get("first_publish_year") or None,
    }


def invalidate_cache() -> None:
    with _CACHE_LOCK:
        _SEARCH_CACHE.clear()
        _ISBN_CACHE.clear()


__all__ = [
    "SEARCH_FIELDS",
    "UNKNOWN_AUTHOR",
    "search_books",
    "get_book_by_isbn",
    "cover_url",
    "normalize_book",
    "invalidate_cache",
]
