"""S3-compatible (MinIO) object storage for uploaded compound files.

References handed to clients are bucket-relative paths (``/<bucket>/<key>``).
Full URLs whose second path segment is the bucket are accepted as a legacy
shape when a storage key has to be recovered from a reference.
"""
from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import unquote, urlparse

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from compound_backend.config import Settings

logger = logging.getLogger(__name__)

StorageError = (ClientError, BotoCoreError)

_MISSING_BUCKET_CODES = {"404", "NoSuchBucket", "NotFound"}


def extract_storage_key(reference: str, bucket: str) -> Optional[str]:
    """Return the object key held by ``reference`` or ``None`` when it has none."""

    if not reference or not isinstance(reference, str):
        return None

    if reference.startswith(f"/{bucket}/"):
        key = "/".join(reference.split("/")[2:])
        return key or None

    if reference.startswith(("http://", "https://")):
        parts = urlparse(reference).path.split("/")
        if len(parts) > 2 and parts[1] == bucket:
            key = unquote("/".join(parts[2:]))
            return key or None

    return None


def error_code(exc: Exception) -> str:
    if isinstance(exc, ClientError):
        return str(exc.response.get("Error", {}).get("Code", ""))
    return ""


def _endpoint_url(endpoint: str, secure: bool) -> str:
    endpoint = endpoint.rstrip("/")
    if "://" in endpoint:
        return endpoint
    scheme = "https" if secure else "http"
    return f"{scheme}://{endpoint}"


class ObjectStorage:
    """Wraps one shared S3 client bound to the configured bucket."""

    def __init__(self, client, bucket: str, public_endpoint: str = "") -> None:
        self.client = client
        self.bucket = bucket
        self.public_endpoint = public_endpoint.rstrip("/")
        self._bucket_ready = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObjectStorage":
        client = boto3.client(
            "s3",
            endpoint_url=_endpoint_url(settings.minio_endpoint, settings.minio_secure),
            aws_access_key_id=settings.minio_access_key,
            aws_secret_access_key=settings.minio_secret_key,
            region_name=settings.minio_region,
            config=Config(
                signature_version="s3v4",
                s3={"addressing_style": "path"},
                connect_timeout=5,
                retries={"max_attempts": 2},
            ),
        )
        return cls(client, settings.minio_bucket, settings.minio_public_endpoint)

    def ensure_bucket(self) -> bool:
        """Create the bucket on first use. Returns ``False`` when storage is unreachable."""

        if self._bucket_ready:
            return True
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except ClientError as exc:
            if error_code(exc) not in _MISSING_BUCKET_CODES:
                logger.error("storage.bucket_unavailable bucket=%s error=%s", self.bucket, exc)
                return False
            try:
                self.client.create_bucket(Bucket=self.bucket)
            except StorageError as create_exc:
                logger.error("storage.bucket_create_failed bucket=%s error=%s", self.bucket, create_exc)
                return False
            logger.info("storage.bucket_created bucket=%s", self.bucket)
        except BotoCoreError as exc:
            logger.error("storage.bucket_unavailable bucket=%s error=%s", self.bucket, exc)
            return False
        self._bucket_ready = True
        return True

    def bucket_reachable(self) -> None:
        """Raise when the bucket cannot be reached."""

        self.client.head_bucket(Bucket=self.bucket)

    def reference_for(self, key: str) -> str:
        return f"/{self.bucket}/{key}"

    def extract_key(self, reference: str) -> Optional[str]:
        return extract_storage_key(reference, self.bucket)

    def public_url(self, reference: str) -> str:
        """Return a link for ``reference`` usable outside the API."""

        if reference.startswith(f"/{self.bucket}/") and self.public_endpoint:
            return f"{self.public_endpoint}{reference}"
        return reference

    def put_bytes(self, key: str, data: bytes, content_type: str) -> str:
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentLength=len(data),
            ContentType=content_type or "application/octet-stream",
        )
        return self.reference_for(key)

    def get_bytes(self, key: str) -> bytes:
        response = self.client.get_object(Bucket=self.bucket, Key=key)
        body = response["Body"]
        try:
            return body.read()
        finally:
            body.close()

    def remove(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=key)


__all__ = ["ObjectStorage", "StorageError", "error_code", "extract_storage_key"]
