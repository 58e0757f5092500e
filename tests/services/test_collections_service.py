"""Collections: premium gating, ownership, visibility and follows."""
from __future__ import annotations

from typing import List

import pytest  # type: ignore[import-not-found]

from echo_reads.db.engine import init_engine_once, reset_for_tests
from echo_reads.db.repositories import books_repo, collections_repo, user_books_repo, users_repo
from echo_reads.services import collections_service
from echo_reads.utils.errors import ConflictError, IntegrationError, NotFoundError, PermissionDenied, ValidationError

OWNER = "user_owner"
OTHER = "user_other"


@pytest.fixture(autouse=True)
def in_memory_db(monkeypatch):
    reset_for_tests(drop=True)
    monkeypatch.setenv("ECHO_READS_DB_PATH", ":memory:")
    init_engine_once()
    users_repo.upsert_user(OWNER, email="owner@example.com", username="owner")
    users_repo.update_user(OWNER, is_premium=True)
    users_repo.upsert_user(OTHER, email="other@example.com", username="other")
    yield
    reset_for_tests(drop=True)


def _create(name: str = "Summer Reads", **extra):
    data = {"name": name, **extra}
    return collections_service.create_collection(OWNER, data)["collection"]


def test_slug_is_derived_from_name():
    slug = collections_service.generate_slug("Summer Reads 2024!")
    assert slug.startswith("summer-reads-2024-")
    assert len(slug.rsplit("-", 1)[1]) == 4
    assert collections_service.generate_slug("!!!").startswith("collection-")


def test_non_premium_users_cannot_create():
    with pytest.raises(PermissionDenied) as exc:
        collections_service.create_collection(OTHER, {"name": "Mine"})
    assert str(exc.value) == "Premium subscription required to create collections"


def test_create_requires_name_and_orders_after_existing():
    with pytest.raises(ValidationError):
        collections_service.create_collection(OWNER, {"name": "  "})
    first = _create("First")
    second = _create("Second", isPublic=True)
    assert first["sortOrder"] == 0
    assert second["sortOrder"] == 1
    assert first["isPublic"] is False


def test_rename_regenerates_slug():
    collection = _create("Old Name")
    renamed = collections_service.update_collection(OWNER, collection["id"], {"name": "New Name"})["collection"]
    assert renamed["slug"].startswith("new-name-")
    with pytest.raises(NotFoundError) as exc:
        collections_service.update_collection(OTHER, collection["id"], {"name": "Hijack"})
    assert str(exc.value) == "Collection not found or unauthorized"


def test_private_collection_visible_to_owner_only():
    collection = _create("Secret")
    assert collections_service.get_collection(OWNER, collection["slug"])["isOwner"] is True
    with pytest.raises(PermissionDenied):
        collections_service.get_collection(OTHER, collection["id"])
    with pytest.raises(PermissionDenied):
        collections_service.list_collection_books(None, collection["id"])


def test_add_books_only_from_own_library():
    collection = _create("Shelf")
    book = books_repo.create_book(isbn=None, title="Emma", author="Jane Austen")
    mine = user_books_repo.create_user_book(OWNER, book.id, status="finished")
    theirs = user_books_repo.create_user_book(OTHER, book.id, status="want")

    added = collections_service.add_book_to_collection(OWNER, collection["id"], mine.id, " favourite ")
    assert added["entry"]["notes"] == "favourite"
    with pytest.raises(ConflictError):
        collections_service.add_book_to_collection(OWNER, collection["id"], mine.id)
    with pytest.raises(NotFoundError) as exc:
        collections_service.add_book_to_collection(OWNER, collection["id"], theirs.id)
    assert str(exc.value) == "Book not found in your library"

    books = collections_service.list_collection_books(OWNER, collection["id"])
    assert books[0]["userBook"]["book"]["title"] == "Emma"
    assert collections_service.remove_book_from_collection(OWNER, collection["id"], mine.id)["removed"] is True


def test_follow_rules_and_public_listing():
    private = _create("Private")
    public = _create("Public", isPublic=True)

    with pytest.raises(PermissionDenied) as exc:
        collections_service.follow_collection(OTHER, private["id"])
    assert str(exc.value) == "Cannot follow private collections"
    with pytest.raises(ValidationError):
        collections_service.follow_collection(OWNER, public["id"])

    collections_service.follow_collection(OTHER, public["id"])
    with pytest.raises(ConflictError):
        collections_service.follow_collection(OTHER, public["id"])

    viewed = collections_service.get_collection(OTHER, public["id"])
    assert viewed["isFollowing"] is True
    assert viewed["followerCount"] == 1
    assert [c["name"] for c in collections_service.list_followed_collections(OTHER)] == ["Public"]
    assert [c["name"] for c in collections_service.list_public_collections()] == ["Public"]

    assert collections_service.unfollow_collection(OTHER, public["id"])["removed"] is True


def test_delete_removes_cover_best_effort(monkeypatch):
    monkeypatch.setenv("AWS_S3_PUBLIC_URL", "https://cdn.test")
    deleted: List[str] = []

    def fake_delete(key):
        deleted.append(key)
        raise IntegrationError("Failed to delete image")

    monkeypatch.setattr(collections_service.storage_service, "delete_object", fake_delete)
    collection = _create("With Cover", coverImageUrl="https://cdn.test/collections/user_owner/a.jpg")
    assert collections_service.delete_collection(OWNER, collection["id"]) == {"success": True}
    assert deleted == ["collections/user_owner/a.jpg"]
    assert collections_service.list_user_collections(OWNER) == []


@pytest.mark.parametrize(
    "cover",
    [
        "collections/user_other/victim.jpg",
        "https://cdn.test/collections/user_other/victim.jpg",
        "https://elsewhere.test/collections/user_owner/a.jpg",
        42,
    ],
)
def test_cover_url_must_be_owners_upload(monkeypatch, cover):
    monkeypatch.setenv("AWS_S3_PUBLIC_URL", "https://cdn.test")
    collection = _create()
    with pytest.raises(ValidationError):
        collections_service.update_collection(OWNER, collection["id"], {"coverImageUrl": cover})
    with pytest.raises(ValidationError):
        _create("Sneaky", coverImageUrl=cover)


def test_delete_never_touches_foreign_objects(monkeypatch):
    monkeypatch.setenv("AWS_S3_PUBLIC_URL", "https://cdn.test")
    deleted: List[str] = []
    monkeypatch.setattr(collections_service.storage_service, "delete_object", deleted.append)
    collection = _create()
    collections_repo.update_collection(collection["id"], cover_image_url="collections/user_other/victim.jpg")

    collections_service.delete_collection(OWNER, collection["id"])

    assert deleted == []


def test_cover_upload_checks_declared_type_and_size(monkeypatch):
    calls: List[tuple] = []

    def fake_upload(user_id, collection_id, extension):
        calls.append((user_id, collection_id, extension))
        return {"uploadUrl": "https://signed.test/x", "publicUrl": "https://cdn.test/x", "key": "x"}

    monkeypatch.setattr(collections_service.storage_service, "collection_cover_upload", fake_upload)
    collection = _create()
    with pytest.raises(ValidationError):
        collections_service.generate_collection_cover_upload(OWNER, collection["id"], "png", content_type="image/gif")
    with pytest.raises(ValidationError) as exc:
        collections_service.generate_collection_cover_upload(OWNER, collection["id"], "png", size_bytes=6 * 1024 * 1024)
    assert str(exc.value) == "Image too large. Maximum size is 5MB"
    assert calls == []

    result = collections_service.generate_collection_cover_upload(
        OWNER, collection["id"], "png", content_type="image/png", size_bytes=1024
    )
    assert result["success"] is True
    assert calls == [(OWNER, collection["id"], "png")]


def test_update_order_requires_integer():
    collection = _create()
    with pytest.raises(ValidationError):
        collections_service.update_collection_order(OWNER, collection["id"], "3")
    collections_service.update_collection_order(OWNER, collection["id"], 7)
    assert collections_service.list_user_collections(OWNER)[0]["sortOrder"] == 7
