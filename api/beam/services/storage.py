"""
Object storage adapter (S3-compatible).

Image bytes never pass through the API: clients PUT directly to a presigned
URL and the API records the resulting key and public URL.
"""

from __future__ import annotations

import logging
import os
import uuid
from functools import lru_cache

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import UpstreamFailure
from ..settings import UPLOAD_URL_EXPIRES_SECONDS

logger = logging.getLogger(__name__)

S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL") or None
S3_BUCKET = os.getenv("S3_BUCKET", "beam-images")
S3_REGION = os.getenv("S3_REGION", "auto")
S3_PUBLIC_BASE_URL = (os.getenv("S3_PUBLIC_BASE_URL") or "").rstrip("/")

ALLOWED_CONTENT_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/heic": ".heic",
    "image/avif": ".avif",
}


@lru_cache(maxsize=1)
def get_s3_client():
    return boto3.client(
        "s3",
        endpoint_url=S3_ENDPOINT_URL,
        aws_access_key_id=os.getenv("S3_ACCESS_KEY_ID"),
        aws_secret_access_key=os.getenv("S3_SECRET_ACCESS_KEY"),
        region_name=S3_REGION,
    )


def build_key(gallery_slug: str, filename: str, content_type: str) -> str:
    """Storage key for a new upload: ``galleries/{slug}/{uuid}{ext}``."""
    ext = os.path.splitext(filename or "")[1].lower()
    if not ext or len(ext) > 6:
        ext = ALLOWED_CONTENT_TYPES.get(content_type, "")
    return f"galleries/{gallery_slug}/{uuid.uuid4().hex}{ext}"


def public_url(key: str) -> str:
    if S3_PUBLIC_BASE_URL:
        return f"{S3_PUBLIC_BASE_URL}/{key}"
    if S3_ENDPOINT_URL:
        return f"{S3_ENDPOINT_URL.rstrip('/')}/{S3_BUCKET}/{key}"
    return f"https://{S3_BUCKET}.s3.amazonaws.com/{key}"


def presign_upload(key: str, content_type: str, expires_in: int = UPLOAD_URL_EXPIRES_SECONDS) -> str:
    """Presigned PUT URL for ``key``; the client must send the same Content-Type."""
    try:
        return get_s3_client().generate_presigned_url(
            "put_object",
            Params={"Bucket": S3_BUCKET, "Key": key, "ContentType": content_type},
            ExpiresIn=expires_in,
        )
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Failed to presign upload for {key}: {e}")
        raise UpstreamFailure("Could not create upload URL")


def delete_objects(keys: list[str]) -> int:
    """
    Best-effort removal of stored objects. Returns how many were deleted.

    Rows are already gone by the time this runs, so failures are only logged.
    """
    if not keys:
        return 0

    deleted = 0
    client = get_s3_client()
    # DeleteObjects accepts at most 1000 keys per call
    for start in range(0, len(keys), 1000):
        batch = keys[start : start + 1000]
        try:
            response = client.delete_objects(
                Bucket=S3_BUCKET,
                Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
            )
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"Failed to delete {len(batch)} objects from {S3_BUCKET}: {e}")
            continue
        errors = response.get("Errors") or []
        for err in errors:
            logger.warning(f"Failed to delete object {err.get('Key')}: {err.get('Message')}")
        deleted += len(batch) - len(errors)
    return deleted
