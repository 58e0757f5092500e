"""ORM models for premium collections and their followers."""
from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .base import Base, iso, new_id, utcnow


class Collection(Base):
    """Named, optionally public subset of one user's library."""

    __tablename__ = "collections"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    slug = Column(String(150), nullable=False, unique=True)
    is_public = Column(Boolean, nullable=False, default=False)
    color_tag = Column(String(20), nullable=True)
    icon_name = Column(String(50), nullable=True)
    cover_image_url = Column(Text, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "description": self.description,
            "slug": self.slug,
            "isPublic": bool(self.is_public),
            "colorTag": self.color_tag,
            "iconName": self.icon_name,
            "coverImageUrl": self.cover_image_url,
            "sortOrder": self.sort_order,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


class CollectionBook(Base):
    __tablename__ = "collection_books"

    id = Column(String(36), primary_key=True, default=new_id)
    collection_id = Column(String(36), ForeignKey("collections.id", ondelete="CASCADE"), nullable=False, index=True)
    user_book_id = Column(String(36), ForeignKey("user_books.id", ondelete="CASCADE"), nullable=False, index=True)
    notes = Column(Text, nullable=True)
    added_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("collection_id", "user_book_id", name="uq_collection_books_entry"),
    )

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "collectionId": self.collection_id,
            "userBookId": self.user_book_id,
            "notes": self.notes,
            "addedAt": iso(self.added_at),
        }


class CollectionFollow(Base):
    __tablename__ = "collection_follows"

    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    collection_id = Column(String(36), ForeignKey("collections.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def as_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "collectionId": self.collection_id,
            "createdAt": iso(self.created_at),
        }


__all__ = ["Collection", "CollectionBook", "CollectionFollow"]
