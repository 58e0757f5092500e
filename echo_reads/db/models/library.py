"""ORM models for users, the shared book catalog, libraries and reviews."""
from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .base import Base, iso, new_id, utcnow

READING_STATUSES = ("want", "reading", "finished")
USER_ROLES = ("user", "moderator", "admin")


class User(Base):
    """Account row keyed by the identity provider's user id."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=True, unique=True)
    username = Column(String(50), nullable=True, unique=True)
    bio = Column(Text, nullable=True)
    role = Column(String(16), nullable=False, default="user")
    is_premium = Column(Boolean, nullable=False, default=False)
    premium_since = Column(DateTime, nullable=True)
    stripe_customer_id = Column(String(255), nullable=True, unique=True)
    subscription_anniversary = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "bio": self.bio,
            "role": self.role,
            "isPremium": bool(self.is_premium),
            "premiumSince": iso(self.premium_since),
            "stripeCustomerId": self.stripe_customer_id,
            "subscriptionAnniversary": iso(self.subscription_anniversary),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }

    def public_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "bio": self.bio,
            "isPremium": bool(self.is_premium),
        }

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} username={self.username}>"


class Book(Base):
    """Shared catalog entry; seeded manually or from Open Library."""

    __tablename__ = "books"

    id = Column(String(36), primary_key=True, default=new_id)
    isbn = Column(String(20), nullable=True, unique=True)
    title = Column(Text, nullable=False)
    author = Column(Text, nullable=False)
    cover_url = Column(Text, nullable=True)
    pages = Column(Integer, nullable=True)
    published_year = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("ix_books_title_author", "title", "author"),)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "isbn": self.isbn,
            "title": self.title,
            "author": self.author,
            "coverUrl": self.cover_url,
            "pages": self.pages,
            "publishedYear": self.published_year,
            "createdAt": iso(self.created_at),
        }

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Book id={self.id} title={self.title!r}>"


class UserBook(Base):
    """A book on a user's shelf; unique per (user, book)."""

    __tablename__ = "user_books"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(16), nullable=False, default="want")
    current_page = Column(Integer, nullable=False, default=0)
    rating = Column(Integer, nullable=True)
    is_favorite = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_user_books_user_book"),
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_user_books_rating"),
        CheckConstraint("status IN ('want', 'reading', 'finished')", name="ck_user_books_status"),
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "bookId": self.book_id,
            "status": self.status,
            "currentPage": self.current_page,
            "rating": self.rating,
            "isFavorite": bool(self.is_favorite),
            "startedAt": iso(self.started_at),
            "finishedAt": iso(self.finished_at),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class Review(Base):
    """Free-text review; one per (user, book), saved with upsert semantics."""

    __tablename__ = "reviews"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    is_private = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "book_id", name="uq_reviews_user_book"),)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "bookId": self.book_id,
            "content": self.content,
            "isPrivate": bool(self.is_private),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class Follow(Base):
    __tablename__ = "follows"

    follower_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    following_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("follower_id <> following_id", name="ck_follows_not_self"),
        Index("ix_follows_following", "following_id"),
    )

    def as_dict(self) -> dict:
        return {
            "followerId": self.follower_id,
            "followingId": self.following_id,
            "createdAt": iso(self.created_at),
        }


__all__ = [
    "READING_STATUSES",
    "USER_ROLES",
    "User",
    "Book",
    "UserBook",
    "Review",
    "Follow",
]
