"""S3 presigned uploads and deletes with a fake boto3 client."""
from __future__ import annotations

from typing import Any, Dict, List

import pytest  # type: ignore[import-not-found]
from botocore.exceptions import ClientError

from echo_reads.services import storage_service
from echo_reads.utils.errors import IntegrationError, ValidationError


class FakeS3:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.presigned: List[Dict[str, Any]] = []
        self.deleted: List[Dict[str, Any]] = []

    def generate_presigned_url(self, operation, Params=None, ExpiresIn=None):
        if self.fail:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, operation)
        self.presigned.append({"operation": operation, "params": Params, "expires": ExpiresIn})
        return f"https://signed.test/{Params['Key']}"

    def delete_object(self, Bucket=None, Key=None):
        if self.fail:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "DeleteObject")
        self.deleted.append({"Bucket": Bucket, "Key": Key})


@pytest.fixture()
def s3(monkeypatch):
    monkeypatch.setenv("AWS_S3_BUCKET_NAME", "echo-bucket")
    monkeypatch.setenv("AWS_S3_PUBLIC_URL", "https://cdn.test/")
    fake = FakeS3()
    monkeypatch.setattr(storage_service, "_CLIENT", fake)
    return fake


def test_image_validation_helpers():
    assert storage_service.is_valid_image_type("image/PNG") is True
    assert storage_service.is_valid_image_type("image/gif") is False
    assert storage_service.is_valid_image_size(5 * 1024 * 1024) is True
    assert storage_service.is_valid_image_size(5 * 1024 * 1024 + 1) is False
    assert storage_service.normalize_extension(".JPEG") == "jpeg"
    assert storage_service.normalize_extension(None) == "jpg"
    with pytest.raises(ValidationError):
        storage_service.normalize_extension("gif")


def test_collection_cover_upload_presigns_public_put(s3):
    result = storage_service.collection_cover_upload("user_1", "col_1", "png")

    assert result["key"].startswith("collections/user_1/col_1-")
    assert result["key"].endswith(".png")
    assert result["publicUrl"] == f"https://cdn.test/{result['key']}"
    assert result["uploadUrl"] == f"https://signed.test/{result['key']}"
    call = s3.presigned[0]
    assert call["operation"] == "put_object"
    assert call["params"]["ContentType"] == "image/png"
    assert call["params"]["ACL"] == "public-read"
    assert call["expires"] == storage_service.UPLOAD_URL_TTL


def test_owned_cover_key_accepts_only_the_owners_prefix(s3):
    own = "https://cdn.test/collections/user_1/a.jpg"
    assert storage_service.owned_cover_key("user_1", own) == "collections/user_1/a.jpg"
    assert storage_service.owned_cover_key("user_2", own) is None
    assert storage_service.owned_cover_key("user_1", "collections/user_1/a.jpg") is None
    assert storage_service.owned_cover_key("user_1", "https://cdn.test/collections/user_1/../user_2/b.jpg") is None
    assert storage_service.owned_cover_key("user_1", "https://evil.test/collections/user_1/a.jpg") is None
    assert storage_service.owned_cover_key("user_1", None) is None


def test_delete_object_removes_key(s3):
    storage_service.delete_object("collections/user_1/a.jpg")
    assert s3.deleted == [{"Bucket": "echo-bucket", "Key": "collections/user_1/a.jpg"}]


def test_client_errors_become_integration_errors(monkeypatch, s3):
    s3.fail = True
    with pytest.raises(IntegrationError):
        storage_service.generate_upload_url("collections/x.jpg", "jpg")
    with pytest.raises(IntegrationError) as exc:
        storage_service.delete_object("collections/x.jpg")
    assert str(exc.value) == "Failed to delete image"


def test_missing_bucket_is_reported(monkeypatch):
    monkeypatch.delenv("AWS_S3_BUCKET_NAME", raising=False)
    monkeypatch.setattr(storage_service, "_CLIENT", FakeS3())
    with pytest.raises(IntegrationError) as exc:
        storage_service.generate_upload_url("k.jpg", "jpg")
    assert str(exc.value) == "Object storage is not configured"
