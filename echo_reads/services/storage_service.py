"""S3 object storage for collection cover images.

Clients upload directly to S3 with a short-lived presigned PUT URL; the
service only signs URLs and deletes replaced objects.
"""
from __future__ import annotations

import threading
import time
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from echo_reads import config as app_config
from echo_reads.utils.errors import IntegrationError, ValidationError
from echo_reads.utils.logging import get_logger

LOG = get_logger("storage_service")

UPLOAD_URL_TTL = 300  # seconds
MAX_IMAGE_MB = 5
VALID_IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")
VALID_EXTENSIONS = ("jpg", "jpeg", "png", "webp")

_CLIENT: Optional[Any] = None
_CLIENT_LOCK = threading.Lock()


def _client():
    global _CLIENT
    if _CLIENT is not None:
        return _CLIENT
    with _CLIENT_LOCK:
        if _CLIENT is None:
            _CLIENT = boto3.client("s3", region_name=app_config.aws_region())
        return _CLIENT


def _bucket() -> str:
    bucket = app_config.s3_bucket_name()
    if not bucket:
        raise IntegrationError("Object storage is not configured")
    return bucket


def is_valid_image_type(content_type: str) -> bool:
    return (content_type or "").strip().lower() in VALID_IMAGE_TYPES


def is_valid_image_size(size_bytes: int, max_size_mb: int = MAX_IMAGE_MB) -> bool:
    return 0 <= int(size_bytes) <= max_size_mb * 1024 * 1024


def normalize_extension(extension: Optional[str]) -> str:
    ext = (extension or "jpg").strip().lower().lstrip(".")
    if ext not in VALID_EXTENSIONS:
        raise ValidationError("Invalid image type. Allowed: jpg, jpeg, png, webp")
    return ext


def generate_upload_url(key: str, extension: str) -> Dict[str, str]:
    """Presign a public-read PUT for ``key``; returns uploadUrl, publicUrl, key."""
    bucket = _bucket()
    try:
        upload_url = _client().generate_presigned_url(
            "put_object",
            Params={
                "Bucket": bucket,
                "Key": key,
                "ContentType": f"image/{extension}",
                "ACL": "public-read",
            },
            ExpiresIn=UPLOAD_URL_TTL,
        )
    except (BotoCoreError, ClientError) as exc:
        LOG.error("Presigning upload failed key=%s: %s", key, exc)
        raise IntegrationError("Failed to generate upload URL") from exc
    return {"uploadUrl": upload_url, "publicUrl": f"{app_config.s3_public_url()}/{key}", "key": key}


def collection_cover_prefix(user_id: str) -> str:
    return f"collections/{user_id}/"


def collection_cover_upload(user_id: str, collection_id: str, extension: Optional[str] = "jpg") -> Dict[str, str]:
    ext = normalize_extension(extension)
    key = f"{collection_cover_prefix(user_id)}{collection_id}-{int(time.time() * 1000)}.{ext}"
    return generate_upload_url(key, ext)


def owned_cover_key(user_id: str, public_url: Optional[str]) -> Optional[str]:
    """Object key for ``public_url`` when it is one of ``user_id``'s covers, else None."""
    base = app_config.s3_public_url()
    if not base or not isinstance(public_url, str) or not public_url.startswith(f"{base}/"):
        return None
    key = public_url[len(base) + 1:]
    if not key.startswith(collection_cover_prefix(user_id)) or ".." in key.split("/"):
        return None
    return key


def delete_object(key: str) -> None:
    try:
        _client().delete_object(Bucket=_bucket(), Key=key)
    except (BotoCoreError, ClientError) as exc:
        raise IntegrationError("Failed to delete image") from exc
    LOG.info("Deleted image key=%s", key)


__all__ = [
    "UPLOAD_URL_TTL",
    "is_valid_image_type",
    "is_valid_image_size",
    "normalize_extension",
    "generate_upload_url",
    "collection_cover_prefix",
    "collection_cover_upload",
    "owned_cover_key",
    "delete_object",
]
