"""Premium collections: curated, optionally public subsets of a library."""
from __future__ import annotations

import re
import secrets
import string
from typing import Any, Dict, List, Optional

from echo_reads.db.engine import app_session
from echo_reads.db.models import Collection
from echo_reads.db.repositories import collections_repo, user_books_repo, users_repo
from echo_reads.services import storage_service
from echo_reads.utils.errors import (
    ConflictError,
    IntegrationError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from echo_reads.utils.logging import get_logger

LOG = get_logger("collections_service")

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_NOT_OWNED = "Collection not found or unauthorized"
MAX_NAME_LENGTH = 100
PREVIEW_BOOKS = 4

_FIELD_MAP = {
    "name": "name",
    "description": "description",
    "isPublic": "is_public",
    "colorTag": "color_tag",
    "iconName": "icon_name",
    "coverImageUrl": "cover_image_url",
}


def generate_slug(name: str) -> str:
    base = _SLUG_STRIP.sub("-", (name or "").lower()).strip("-") or "collection"
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(4))
    return f"{base}-{suffix}"


def _unique_slug(name: str) -> str:
    for _ in range(5):
        slug = generate_slug(name)
        if not collections_repo.slug_exists(slug):
            return slug
    raise ConflictError("Could not allocate a unique collection slug")


def _clean_fields(owner_id: str, data: Dict[str, Any], *, require_name: bool) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for key, column in _FIELD_MAP.items():
        if key not in data:
            continue
        value = data[key]
        if column == "is_public":
            fields[column] = bool(value)
        elif isinstance(value, str):
            fields[column] = value.strip() or None
        else:
            fields[column] = value
    if require_name or "name" in fields:
        name = fields.get("name")
        if not name:
            raise ValidationError("Collection name is required")
        if len(name) > MAX_NAME_LENGTH:
            raise ValidationError(f"Collection name cannot exceed {MAX_NAME_LENGTH} characters")
    cover = fields.get("cover_image_url")
    if cover is not None and storage_service.owned_cover_key(owner_id, cover) is None:
        raise ValidationError("Cover image must be uploaded through the collection cover endpoint")
    return fields


def _owned(user_id: str, collection_id: str) -> Collection:
    collection = collections_repo.get_owned(user_id, collection_id)
    if collection is None:
        raise NotFoundError(_NOT_OWNED)
    return collection


def create_collection(user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    fields = _clean_fields(user_id, data or {}, require_name=True)
    with app_session():
        user = users_repo.get_user(user_id)
        if user is None or not user.is_premium:
            raise PermissionDenied("Premium subscription required to create collections")
        current_max = collections_repo.max_sort_order(user_id)
        fields.setdefault("is_public", False)
        collection = collections_repo.create_collection(
            user_id,
            slug=_unique_slug(fields["name"]),
            sort_order=(current_max + 1) if current_max is not None else 0,
            **fields,
        )
        payload = collection.as_dict()
    LOG.info("Collection created user=%s collection=%s", user_id, payload["id"])
    return {"success": True, "collection": payload}


def update_collection(user_id: str, collection_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    fields = _clean_fields(user_id, data or {}, require_name=False)
    with app_session():
        collection = _owned(user_id, collection_id)
        if "name" in fields and fields["name"] != collection.name:
            fields["slug"] = _unique_slug(fields["name"])
        collection = collections_repo.update_collection(collection.id, **fields)
        return {"success": True, "collection": collection.as_dict()}


def delete_collection(user_id: str, collection_id: str) -> Dict[str, Any]:
    with app_session():
        collection = _owned(user_id, collection_id)
        cover_key = storage_service.owned_cover_key(user_id, collection.cover_image_url)
        collections_repo.delete_collection(collection.id)
    if cover_key:
        try:
            storage_service.delete_object(cover_key)
        except IntegrationError:
            LOG.warning("Failed to delete cover for collection=%s", collection_id, exc_info=True)
    return {"success": True}


def list_user_collections(user_id: str) -> List[Dict[str, Any]]:
    with app_session():
        collections = collections_repo.list_for_user(user_id)
        counts = collections_repo.book_counts(c.id for c in collections)
        items = []
        for collection in collections:
            payload = collection.as_dict()
            payload["bookCount"] = counts.get(collection.id, 0)
            items.append(payload)
        return items


def get_collection(viewer_id: Optional[str], identifier: str) -> Dict[str, Any]:
    with app_session():
        collection = collections_repo.get_by_id_or_slug(identifier)
        if collection is None:
            raise NotFoundError("Collection not found")
        if not collection.is_public and collection.user_id != viewer_id:
            raise PermissionDenied("Unauthorized to view this collection")
        payload = collection.as_dict()
        owner = users_repo.get_user(collection.user_id)
        payload["user"] = owner.public_dict() if owner else None
        payload["bookCount"] = collections_repo.book_counts([collection.id]).get(collection.id, 0)
        payload["followerCount"] = collections_repo.follower_count(collection.id)
        payload["isFollowing"] = bool(viewer_id) and collections_repo.is_following(viewer_id, collection.id)  # type: ignore[arg-type]
        payload["isOwner"] = collection.user_id == viewer_id
        return payload


def add_book_to_collection(user_id: str, collection_id: str, user_book_id: str, notes: Optional[str] = None) -> Dict[str, Any]:
    with app_session():
        collection = _owned(user_id, collection_id)
        if user_books_repo.get_owned(user_id, user_book_id) is None:
            raise NotFoundError("Book not found in your library")
        if collections_repo.get_entry(collection.id, user_book_id) is not None:
            raise ConflictError("Book already in collection")
        entry = collections_repo.add_entry(collection.id, user_book_id, (notes or "").strip() or None)
        return {"success": True, "entry": entry.as_dict()}


def remove_book_from_collection(user_id: str, collection_id: str, user_book_id: str) -> Dict[str, Any]:
    with app_session():
        collection = _owned(user_id, collection_id)
        removed = collections_repo.remove_entry(collection.id, user_book_id)
        return {"success": True, "removed": removed}


def list_collection_books(viewer_id: Optional[str], collection_id: str) -> List[Dict[str, Any]]:
    with app_session():
        collection = collections_repo.get_collection(collection_id)
        if collection is None:
            raise NotFoundError("Collection not found")
        if not collection.is_public and collection.user_id != viewer_id:
            raise PermissionDenied("Unauthorized to view this collection")
        items = []
        for entry, user_book, book in collections_repo.list_books(collection.id):
            payload = entry.as_dict()
            payload["userBook"] = user_book.as_dict()
            payload["userBook"]["book"] = book.as_dict()
            items.append(payload)
        return items


def follow_collection(user_id: str, collection_id: str) -> Dict[str, Any]:
    with app_session():
        collection = collections_repo.get_collection(collection_id)
        if collection is None:
            raise NotFoundError("Collection not found")
        if not collection.is_public:
            raise PermissionDenied("Cannot follow private collections")
        if collection.user_id == user_id:
            raise ValidationError("Cannot follow your own collection")
        if collections_repo.is_following(user_id, collection.id):
            raise ConflictError("Already following this collection")
        users_repo.ensure_user(user_id)
        collections_repo.create_follow(user_id, collection.id)
    return {"success": True}


def unfollow_collection(user_id: str, collection_id: str) -> Dict[str, Any]:
    removed = collections_repo.delete_follow(user_id, collection_id)
    return {"success": True, "removed": removed}


def list_followed_collections(user_id: str) -> List[Dict[str, Any]]:
    return [c.as_dict() for c in collections_repo.list_followed(user_id)]


def list_public_collections(limit: int = 20) -> List[Dict[str, Any]]:
    limit = min(max(int(limit or 20), 1), 100)
    with app_session():
        rows = collections_repo.list_public(limit)
        counts = collections_repo.book_counts(c.id for c, _owner in rows)
        items = []
        for collection, owner in rows:
            payload = collection.as_dict()
            payload["user"] = owner.public_dict()
            payload["bookCount"] = counts.get(collection.id, 0)
            payload["previewBooks"] = [
                book.as_dict() for _entry, _ub, book in collections_repo.list_books(collection.id, limit=PREVIEW_BOOKS)
            ]
            items.append(payload)
        return items


def generate_collection_cover_upload(
    user_id: str,
    collection_id: str,
    extension: Optional[str] = "jpg",
    content_type: Optional[str] = None,
    size_bytes: Optional[int] = None,
) -> Dict[str, Any]:
    """Presign a cover upload; ``content_type``/``size_bytes`` are checked when the client sends them."""
    if content_type is not None and (
        not isinstance(content_type, str) or not storage_service.is_valid_image_type(content_type)
    ):
        raise ValidationError("Invalid image type. Allowed: jpg, jpeg, png, webp")
    if size_bytes is not None:
        if isinstance(size_bytes, bool) or not isinstance(size_bytes, int):
            raise ValidationError("size must be an integer")
        if not storage_service.is_valid_image_size(size_bytes):
            raise ValidationError(f"Image too large. Maximum size is {storage_service.MAX_IMAGE_MB}MB")
    collection = _owned(user_id, collection_id)
    upload = storage_service.collection_cover_upload(user_id, collection.id, extension)
    return {"success": True, **upload}


def update_collection_order(user_id: str, collection_id: str, sort_order: Any) -> Dict[str, Any]:
    if isinstance(sort_order, bool) or not isinstance(sort_order, int):
        raise ValidationError("sortOrder must be an integer")
    with app_session():
        collection = _owned(user_id, collection_id)
        collections_repo.update_collection(collection.id, sort_order=sort_order)
    return {"success": True}


__all__ = [
    "generate_slug",
    "create_collection",
    "update_collection",
    "delete_collection",
    "list_user_collections",
    "get_collection",
    "add_book_to_collection",
    "remove_book_from_collection",
    "list_collection_books",
    "follow_collection",
    "unfollow_collection",
    "list_followed_collections",
    "list_public_collections",
    "generate_collection_cover_upload",
    "update_collection_order",
]
