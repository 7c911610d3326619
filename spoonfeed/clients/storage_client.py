"""
MinIO (S3-compatible) client for review media, avatars and list covers.

Objects are keyed {prefix}/{owner_id}/{uuid}.{ext} and served from a public
bucket, so the stored URL is stable and needs no signing.
Each upload is a separate object; callers that upload several objects as part
of one write are responsible for deleting them again if the write fails.
"""
import logging
import mimetypes
import uuid
from io import BytesIO
from typing import Optional

import boto3
from botocore.client import Config

from spoonfeed.config import settings

logger = logging.getLogger(__name__)


class ObjectStorage:
    def __init__(self, s3, bucket: str, public_base_url: str) -> None:
        self._s3 = s3
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")

    @staticmethod
    def build_key(prefix: str, owner_id: str, filename: Optional[str], content_type: str) -> str:
        ext = ""
        if filename and "." in filename:
            ext = filename.rsplit(".", 1)[-1].lower()
        if not ext:
            guessed = mimetypes.guess_extension(content_type or "") or ""
            ext = guessed.lstrip(".") or "bin"
        return f"{prefix}/{owner_id}/{uuid.uuid4()}.{ext}"

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        """Store `data` under `key`, return its public URL."""
        self._s3.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=BytesIO(data),
            ContentType=content_type,
        )
        logger.debug("Uploaded object %s (%d bytes)", key, len(data))
        return self.public_url(key)

    def delete(self, key: str) -> None:
        self._s3.delete_object(Bucket=self.bucket, Key=key)
        logger.debug("Deleted object %s", key)

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"


_storage: Optional[ObjectStorage] = None


def init_storage() -> None:
    """Create the S3 client and ensure the media bucket exists."""
    global _storage
    scheme = "https" if settings.minio_use_ssl else "http"
    s3 = boto3.client(
        "s3",
        endpoint_url=f"{scheme}://{settings.minio_endpoint}",
        aws_access_key_id=settings.minio_access_key,
        aws_secret_access_key=settings.minio_secret_key,
        config=Config(signature_version="s3v4"),
        region_name="us-east-1",
    )

    existing = [b["Name"] for b in s3.list_buckets().get("Buckets", [])]
    if settings.minio_bucket not in existing:
        s3.create_bucket(Bucket=settings.minio_bucket)
        logger.info("Created MinIO bucket '%s'", settings.minio_bucket)
    else:
        logger.info("MinIO bucket '%s' already exists", settings.minio_bucket)

    _storage = ObjectStorage(s3, settings.minio_bucket, settings.media_public_base_url)


def get_storage() -> ObjectStorage:
    """FastAPI dependency returning the process-wide storage client."""
    if _storage is None:
        raise RuntimeError("Object storage not initialised — call init_storage() at startup")
    return _storage
