"""Repository helpers for collections, their books and followers."""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_

from echo_reads.db.engine import app_session
from echo_reads.db.models import (
    Book,
    Collection,
    CollectionBook,
    CollectionFollow,
    User,
    UserBook,
)

_UPDATABLE = {
    "name",
    "description",
    "slug",
    "is_public",
    "color_tag",
    "icon_name",
    "cover_image_url",
    "sort_order",
}


def get_collection(collection_id: str) -> Optional[Collection]:
    with app_session() as session:
        return session.get(Collection, collection_id)


def get_by_id_or_slug(identifier: str) -> Optional[Collection]:
    with app_session() as session:
        found = session.get(Collection, identifier)
        if found is not None:
            return found
        return session.query(Collection).filter(Collection.slug == identifier).one_or_none()


def get_owned(user_id: str, collection_id: str) -> Optional[Collection]:
    with app_session() as session:
        return (
            session.query(Collection)
            .filter(Collection.id == collection_id, Collection.user_id == user_id)
            .one_or_none()
        )


def slug_exists(slug: str) -> bool:
    with app_session() as session:
        return session.query(Collection.id).filter(Collection.slug == slug).first() is not None


def max_sort_order(user_id: str) -> Optional[int]:
    with app_session() as session:
        return session.query(func.max(Collection.sort_order)).filter(Collection.user_id == user_id).scalar()


def create_collection(user_id: str, **fields) -> Collection:
    unknown = set(fields) - _UPDATABLE
    if unknown:
        raise ValueError(f"Unknown collection fields: {sorted(unknown)}")
    collection = Collection(user_id=user_id, **fields)
    with app_session() as session:
        session.add(collection)
        session.flush()
    return collection


def update_collection(collection_id: str, **fields) -> Optional[Collection]:
    unknown = set(fields) - _UPDATABLE
    if unknown:
        raise ValueError(f"Unknown collection fields: {sorted(unknown)}")
    with app_session() as session:
        collection = session.get(Collection, collection_id)
        if collection is None:
            return None
        for key, value in fields.items():
            setattr(collection, key, value)
        session.flush()
        return collection


def delete_collection(collection_id: str) -> bool:
    with app_session() as session:
        collection = session.get(Collection, collection_id)
        if collection is None:
            return False
        session.delete(collection)
        return True


def list_for_user(user_id: str) -> List[Collection]:
    with app_session() as session:
        return (
            session.query(Collection)
            .filter(Collection.user_id == user_id)
            .order_by(Collection.sort_order.asc(), Collection.created_at.asc())
            .all()
        )


def list_public(limit: int = 20) -> List[Tuple[Collection, User]]:
    with app_session() as session:
        rows = (
            session.query(Collection, User)
            .join(User, User.id == Collection.user_id)
            .filter(Collection.is_public.is_(True))
            .order_by(Collection.created_at.desc())
            .limit(limit)
            .all()
        )
        return [(collection, owner) for collection, owner in rows]


def book_counts(collection_ids: Iterable[str]) -> Dict[str, int]:
    ids = list(collection_ids)
    if not ids:
        return {}
    with app_session() as session:
        rows = (
            session.query(CollectionBook.collection_id, func.count(CollectionBook.id))
            .filter(CollectionBook.collection_id.in_(ids))
            .group_by(CollectionBook.collection_id)
            .all()
        )
        return {cid: int(count) for cid, count in rows}


def follower_count(collection_id: str) -> int:
    with app_session() as session:
        return int(
            session.query(func.count())
            .select_from(CollectionFollow)
            .filter(CollectionFollow.collection_id == collection_id)
            .scalar()
            or 0
        )


def get_entry(collection_id: str, user_book_id: str) -> Optional[CollectionBook]:
    with app_session() as session:
        return (
            session.query(CollectionBook)
            .filter(CollectionBook.collection_id == collection_id, CollectionBook.user_book_id == user_book_id)
            .one_or_none()
        )


def add_entry(collection_id: str, user_book_id: str, notes: Optional[str] = None) -> CollectionBook:
    entry = CollectionBook(collection_id=collection_id, user_book_id=user_book_id, notes=notes)
    with app_session() as session:
        session.add(entry)
        session.flush()
    return entry


def remove_entry(collection_id: str, user_book_id: str) -> bool:
    with app_session() as session:
        deleted = (
            session.query(CollectionBook)
            .filter(CollectionBook.collection_id == collection_id, CollectionBook.user_book_id == user_book_id)
            .delete(synchronize_session=False)
        )
        return bool(deleted)


def list_books(collection_id: str, limit: Optional[int] = None) -> List[Tuple[CollectionBook, UserBook, Book]]:
    with app_session() as session:
        q = (
            session.query(CollectionBook, UserBook, Book)
            .join(UserBook, UserBook.id == CollectionBook.user_book_id)
            .join(Book, Book.id == UserBook.book_id)
            .filter(CollectionBook.collection_id == collection_id)
            .order_by(CollectionBook.added_at.desc(), CollectionBook.id.asc())
        )
        if limit:
            q = q.limit(limit)
        return [(entry, ub, book) for entry, ub, book in q.all()]


def is_following(user_id: str, collection_id: str) -> bool:
    with app_session() as session:
        return session.get(CollectionFollow, (user_id, collection_id)) is not None


def create_follow(user_id: str, collection_id: str) -> CollectionFollow:
    follow = CollectionFollow(user_id=user_id, collection_id=collection_id)
    with app_session() as session:
        session.add(follow)
        session.flush()
    return follow


def delete_follow(user_id: str, collection_id: str) -> bool:
    with app_session() as session:
        follow = session.get(CollectionFollow, (user_id, collection_id))
        if follow is None:
            return False
        session.delete(follow)
        return True


def list_followed(user_id: str) -> List[Collection]:
    with app_session() as session:
        return (
            session.query(Collection)
            .join(CollectionFollow, CollectionFollow.collection_id == Collection.id)
            .filter(CollectionFollow.user_id == user_id, or_(Collection.is_public.is_(True), Collection.user_id == user_id))
            .order_by(CollectionFollow.created_at.desc())
            .all()
        )


__all__ = [
    "get_collection",
    "get_by_id_or_slug",
    "get_owned",
    "slug_exists",
    "max_sort_order",
    "create_collection",
    "update_collection",
    "delete_collection",
    "list_for_user",
    "list_public",
    "book_counts",
    "follower_count",
    "get_entry",
    "add_entry",
    "remove_entry",
    "list_books",
    "is_following",
    "create_follow",
    "delete_follow",
    "list_followed",
]
