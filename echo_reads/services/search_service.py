"""Hybrid book search: local catalog first, topped up from Open Library.

External hits not already in the catalog are persisted so the catalog
grows with every search.
"""
from __future__ import annotations

from typing import Any, Dict, List

from echo_reads.db.engine import app_session
from echo_reads.db.repositories import books_repo
from echo_reads.services import openlibrary_service
from echo_reads.utils.logging import get_logger

LOG = get_logger("search_service")

MAX_LIMIT = 50


def _title_author_key(title: str, author: str) -> str:
    return f"{title}|{author}"


def save_external_books(books: List[Dict[str, Any]]) -> int:
    """Insert normalized books missing from the catalog. Returns rows inserted."""
    inserted = 0
    for book in books:
        if not book.get("title"):
            continue
        try:
            with app_session():
                if book["isbn"]:
                    existing = books_repo.get_book_by_isbn(book["isbn"])
                else:
                    existing = books_repo.get_book_by_title_author(book["title"], book["author"])
                if existing is None:
                    books_repo.create_book(
                        isbn=book["isbn"],
                        title=book["title"],
                        author=book["author"],
                        cover_url=book["coverUrl"],
                        pages=book["pages"],
                        published_year=book["publishedYear"],
                    )
                    inserted += 1
        except Exception:
            LOG.warning("Error saving book to catalog title=%r", book.get("title"), exc_info=True)
    return inserted


def search_books_hybrid(query: str, offset: int = 0, limit: int = 20) -> List[Dict[str, Any]]:
    term = (query or "").strip()
    if not term:
        return []
    offset = max(int(offset or 0), 0)
    limit = min(max(int(limit or 20), 1), MAX_LIMIT)

    results: List[Dict[str, Any]] = []
    for book in books_repo.search_books(term, offset=offset, limit=limit):
        item = book.as_dict()
        item.pop("createdAt", None)
        item["source"] = "internal"
        results.append(item)

    if len(results) >= limit:
        return results

    remaining = limit - len(results)
    page = offset // openlibrary_service.SEARCH_LIMIT + 1
    docs = openlibrary_service.search_books(term, page=page)

    internal_isbns = {r["isbn"] for r in results if r.get("isbn")}
    internal_keys = {_title_author_key(r["title"], r["author"]) for r in results}
    unique: List[Dict[str, Any]] = []
    for doc in docs:
        normalized = openlibrary_service.normalize_book(doc)
        if not normalized["title"]:
            continue
        if normalized["isbn"] and normalized["isbn"] in internal_isbns:
            continue
        if _title_author_key(normalized["title"], normalized["author"]) in internal_keys:
            continue
        normalized["key"] = doc.get("key")
        unique.append(normalized)

    if unique:
        saved = save_external_books(unique)
        LOG.debug("Hybrid search q=%r seeded %s new books", term, saved)

    for item in unique[:remaining]:
        entry = dict(item)
        entry["source"] = "external"
        results.append(entry)
    return results


__all__ = ["search_books_hybrid", "save_external_books"]
