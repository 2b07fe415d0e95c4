"""
Object Storage Service — Google Cloud Storage via the S3-interoperable API

GCS exposes an XML API compatible with S3 (https://storage.googleapis.com),
authenticated with HMAC interoperability keys. That lets us keep aioboto3 as
the async storage client: same client, different endpoint.

Naming:
  Every upload is stored under
      <unix-seconds>_<uuid4>_<sanitized original name>
  The timestamp + random suffix rule out collisions; keeping the original
  name keeps the object human-traceable in the console.

URIs:
  Objects are addressed as ``gs://<bucket>/<object name>`` everywhere
  outside this module (database rows, API bodies, Document AI requests).
  ``parse_uri`` is the only place a URI is split back into bucket + name.

Failure model:
  Single-object PUT — the write is all-or-nothing from the caller's point
  of view. Any botocore error is surfaced as StorageError; a missing object
  on read is NotFoundError; a missing object on delete counts as deleted.
"""

from __future__ import annotations

import logging
import re
import time
import uuid
from dataclasses import dataclass

import aioboto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from legallens.core.config import Settings
from legallens.core.errors import ErrorCode, NotFoundError, StorageError, ValidationError

logger = logging.getLogger(__name__)

_MISSING_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StoredObject:
    """Returned by put_object."""
    bucket:       str
    name:         str
    uri:          str
    size_bytes:   int
    content_type: str
    etag:         str = ""


@dataclass(frozen=True)
class SignedUrl:
    url:        str
    expires_in: int   # seconds
    method:     str   # GET


# ---------------------------------------------------------------------------
# Naming helpers
# ---------------------------------------------------------------------------

def sanitize_filename(filename: str) -> str:
    """
    Strip path components and replace unsafe characters.
    Returns only the basename with object-key-safe characters.
    """
    basename = filename.replace("\\", "/").rsplit("/", 1)[-1]
    safe = re.sub(r"[^a-zA-Z0-9._\-]", "_", basename)
    return safe[:200] or "upload"


def build_object_name(filename: str, now: float | None = None) -> str:
    ts = int(now if now is not None else time.time())
    return f"{ts}_{uuid.uuid4()}_{sanitize_filename(filename)}"


# ---------------------------------------------------------------------------
# Storage service
# ---------------------------------------------------------------------------

class ObjectStorageService:
    """
    Async object storage bound to one bucket.

    Built once by the ServiceContainer; each operation opens a short-lived
    client from the shared aioboto3 session.
    """

    def __init__(
        self,
        bucket: str,
        *,
        scheme: str = "gs",
        endpoint_url: str | None = None,
        region: str = "auto",
        access_key_id: str = "",
        secret_access_key: str = "",
        signed_url_ttl: int = 900,
    ) -> None:
        self.bucket = bucket
        self.scheme = scheme
        self._endpoint_url = endpoint_url or None
        self._region = region
        self._signed_url_ttl = signed_url_ttl
        self._session = aioboto3.Session(
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObjectStorageService":
        return cls(
            settings.gcs_bucket,
            scheme=settings.storage_uri_scheme,
            endpoint_url=settings.storage_endpoint_url,
            region=settings.storage_region,
            access_key_id=settings.storage_access_key_id,
            secret_access_key=settings.storage_secret_access_key,
            signed_url_ttl=settings.signed_url_ttl_seconds,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self):
        """Return a scoped async S3-protocol client context manager."""
        return self._session.client(
            "s3",
            endpoint_url=self._endpoint_url,
            region_name=self._region,
            # GCS interop wants SigV4 with path-style addressing
            config=BotoConfig(signature_version="s3v4", s3={"addressing_style": "path"}),
        )

    # ------------------------------------------------------------------
    # URIs
    # ------------------------------------------------------------------

    def uri_for(self, name: str) -> str:
        return f"{self.scheme}://{self.bucket}/{name}"

    def parse_uri(self, uri: str) -> tuple[str, str]:
        """Split ``scheme://bucket/name`` into (bucket, name)."""
        prefix = f"{self.scheme}://"
        if not uri or not uri.startswith(prefix):
            raise ValidationError(f"Storage URI must start with {prefix}")
        bucket, _, name = uri[len(prefix):].partition("/")
        if not bucket or not name:
            raise ValidationError("Storage URI must include a bucket and an object name")
        return bucket, name

    def owns(self, uri: str) -> bool:
        """True if the URI points into this service's bucket."""
        try:
            bucket, _ = self.parse_uri(uri)
        except ValidationError:
            return False
        return bucket == self.bucket

    build_object_name = staticmethod(build_object_name)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def put_object(
        self,
        object_name: str,
        body: bytes,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        try:
            async with self._client() as s3:
                resp = await s3.put_object(
                    Bucket=self.bucket,
                    Key=object_name,
                    Body=body,
                    ContentType=content_type,
                    Metadata=metadata or {},
                )
        except (ClientError, BotoCoreError) as exc:
            logger.error("Storage upload failed | bucket=%s object=%s error=%s", self.bucket, object_name, exc)
            raise StorageError(f"Failed to upload file to storage: {exc}") from exc

        logger.info(
            "Storage upload ok | bucket=%s object=%s size=%d",
            self.bucket, object_name, len(body),
        )
        return StoredObject(
            bucket=self.bucket,
            name=object_name,
            uri=self.uri_for(object_name),
            size_bytes=len(body),
            content_type=content_type,
            etag=resp.get("ETag", "").strip('"'),
        )

    async def get_object(self, uri: str) -> bytes:
        bucket, name = self.parse_uri(uri)
        try:
            async with self._client() as s3:
                resp = await s3.get_object(Bucket=bucket, Key=name)
                return await resp["Body"].read()
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in _MISSING_CODES:
                raise NotFoundError(
                    f"Object not found: {uri}", code=ErrorCode.DOCUMENT_NOT_FOUND,
                ) from exc
            raise StorageError(f"Failed to read object: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to read object: {exc}") from exc

    async def delete_object(self, uri: str) -> bool:
        """Remove the object. Returns False if it was already gone."""
        bucket, name = self.parse_uri(uri)
        try:
            async with self._client() as s3:
                await s3.delete_object(Bucket=bucket, Key=name)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in _MISSING_CODES:
                logger.warning("Storage delete: object already gone | uri=%s", uri)
                return False
            raise StorageError(f"Failed to delete object: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to delete object: {exc}") from exc

        logger.info("Storage delete ok | uri=%s", uri)
        return True

    async def generate_signed_url(self, uri: str, expires_in: int | None = None) -> SignedUrl:
        """
        Short-lived signed GET URL for direct browser download.
        Scoped to the exact object — no wildcard access.
        """
        bucket, name = self.parse_uri(uri)
        ttl = expires_in or self._signed_url_ttl
        try:
            async with self._client() as s3:
                url = await s3.generate_presigned_url(
                    "get_object",
                    Params={"Bucket": bucket, "Key": name},
                    ExpiresIn=ttl,
                )
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to sign URL: {exc}") from exc
        return SignedUrl(url=url, expires_in=ttl, method="GET")
