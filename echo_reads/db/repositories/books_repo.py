"""Repository helpers for the shared book catalog."""
from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy import func, or_

from echo_reads.db.engine import app_session
from echo_reads.db.models import Book, UserBook
from echo_reads.db.repositories import like_pattern

_UPDATABLE = {"isbn", "title", "author", "cover_url", "pages", "published_year"}


def get_book(book_id: str) -> Optional[Book]:
    with app_session() as session:
        return session.get(Book, book_id)


def get_book_by_isbn(isbn: str) -> Optional[Book]:
    with app_session() as session:
        return session.query(Book).filter(Book.isbn == isbn).one_or_none()


def get_book_by_title_author(title: str, author: str) -> Optional[Book]:
    with app_session() as session:
        return (
            session.query(Book)
            .filter(Book.title == title, Book.author == author)
            .order_by(Book.created_at.asc())
            .first()
        )


def create_book(
    *,
    title: str,
    author: str,
    isbn: Optional[str] = None,
    cover_url: Optional[str] = None,
    pages: Optional[int] = None,
    published_year: Optional[int] = None,
) -> Book:
    book = Book(
        title=title,
        author=author,
        isbn=isbn,
        cover_url=cover_url,
        pages=pages,
        published_year=published_year,
    )
    with app_session() as session:
        session.add(book)
        session.flush()
    return book


def update_book(book_id: str, **fields) -> Optional[Book]:
    unknown = set(fields) - _UPDATABLE
    if unknown:
        raise ValueError(f"Unknown book fields: {sorted(unknown)}")
    with app_session() as session:
        book = session.get(Book, book_id)
        if book is None:
            return None
        for key, value in fields.items():
            setattr(book, key, value)
        session.flush()
        return book


def search_books(query: str, *, offset: int = 0, limit: int = 20) -> List[Book]:
    """Case-insensitive substring match on title, author or ISBN."""
    pattern = like_pattern(query)
    with app_session() as session:
        return (
            session.query(Book)
            .filter(
                or_(
                    Book.title.ilike(pattern, escape="\\"),
                    Book.author.ilike(pattern, escape="\\"),
                    Book.isbn.ilike(pattern, escape="\\"),
                )
            )
            .order_by(Book.title.asc(), Book.id.asc())
            .offset(max(offset, 0))
            .limit(limit)
            .all()
        )


def count_books() -> int:
    with app_session() as session:
        return int(session.query(func.count(Book.id)).scalar() or 0)


def popular_books(limit: int = 10) -> List[Tuple[Book, int]]:
    """Books ordered by how many libraries hold them."""
    with app_session() as session:
        readers = func.count(UserBook.id).label("readers")
        rows = (
            session.query(Book, readers)
            .join(UserBook, UserBook.book_id == Book.id)
            .group_by(Book.id)
            .order_by(readers.desc(), Book.title.asc())
            .limit(limit)
            .all()
        )
        return [(book, int(count)) for book, count in rows]


__all__ = [
    "get_book",
    "get_book_by_isbn",
    "get_book_by_title_author",
    "create_book",
    "update_book",
    "search_books",
    "count_books",
    "popular_books",
]
