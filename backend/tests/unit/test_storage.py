"""
Unit Tests — ObjectStorageService (GCS over the S3-interoperable API)
════════════════════════════════════════════════════════════════════
Coverage:
  ✅ Object names: <unix-ts>_<uuid4>_<sanitized name>
  ✅ URI parsing rejects other schemes and bucket-only URIs
  ✅ put_object returns gs://bucket/name and sends metadata
  ✅ ClientError on write → StorageError (502)
  ✅ delete_object treats a missing object as success
  ✅ get_object maps NoSuchKey → NotFoundError
  ✅ generate_signed_url uses the configured TTL
"""

from __future__ import annotations

import re
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from legallens.core.errors import NotFoundError, StorageError, ValidationError
from legallens.storage.gcs import ObjectStorageService, build_object_name, sanitize_filename
from tests.conftest import TEST_BUCKET


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _client_error(code: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "test"}}, "operation")


def _build_s3_mock() -> MagicMock:
    """Build a mock S3-protocol client context manager."""
    s3 = AsyncMock()
    s3.__aenter__ = AsyncMock(return_value=s3)
    s3.__aexit__ = AsyncMock(return_value=None)
    s3.put_object = AsyncMock(return_value={"ETag": '"etag-123"'})
    s3.delete_object = AsyncMock(return_value={})
    s3.generate_presigned_url = AsyncMock(return_value="https://storage.googleapis.com/test-bucket/obj?sig=1")
    return s3


@pytest.fixture
def s3_mock():
    return _build_s3_mock()


@pytest.fixture
def service(s3_mock):
    with patch("legallens.storage.gcs.aioboto3.Session") as mock_session:
        mock_session.return_value.client.return_value = s3_mock
        yield ObjectStorageService(TEST_BUCKET, endpoint_url="https://storage.googleapis.com", signed_url_ttl=600)


# ─────────────────────────────────────────────────────────────────────────────
# Naming + URIs
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.storage
class TestNaming:

    def test_object_name_shape(self):
        name = build_object_name("contract.pdf", now=1699999999)

        assert re.fullmatch(r"1699999999_[0-9a-f\-]{36}_contract\.pdf", name)

    def test_object_names_never_collide(self):
        assert build_object_name("a.pdf", now=1) != build_object_name("a.pdf", now=1)

    @pytest.mark.parametrize("raw, expected", [
        ("../../etc/passwd",        "passwd"),
        ("C:\\Users\\me\\lease.pdf", "lease.pdf"),
        ("my contract (v2).pdf",    "my_contract__v2_.pdf"),
        ("",                        "upload"),
    ])
    def test_sanitize_filename(self, raw, expected):
        assert sanitize_filename(raw) == expected

    def test_parse_uri(self, service):
        assert service.parse_uri(f"gs://{TEST_BUCKET}/dir/obj.pdf") == (TEST_BUCKET, "dir/obj.pdf")

    @pytest.mark.parametrize("uri", ["s3://test-bucket/obj", "gs://test-bucket", "gs:///obj", ""])
    def test_parse_uri_rejects(self, service, uri):
        with pytest.raises(ValidationError):
            service.parse_uri(uri)

    def test_owns(self, service):
        assert service.owns(f"gs://{TEST_BUCKET}/x.pdf") is True
        assert service.owns("gs://other-bucket/x.pdf") is False
        assert service.owns("not-a-uri") is False


# ─────────────────────────────────────────────────────────────────────────────
# Operations
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.unit
@pytest.mark.storage
class TestOperations:

    async def test_put_object_returns_uri(self, service, s3_mock):
        stored = await service.put_object(
            "1_abc_contract.pdf", b"%PDF-1.4", "application/pdf", {"uploadedby": "uid-1"},
        )

        assert stored.uri == f"gs://{TEST_BUCKET}/1_abc_contract.pdf"
        assert stored.size_bytes == 8
        assert stored.etag == "etag-123"
        kwargs = s3_mock.put_object.await_args.kwargs
        assert kwargs["Bucket"] == TEST_BUCKET
        assert kwargs["ContentType"] == "application/pdf"
        assert kwargs["Metadata"] == {"uploadedby": "uid-1"}

    async def test_put_object_failure_is_storage_error(self, service, s3_mock):
        s3_mock.put_object.side_effect = _client_error("AccessDenied")

        with pytest.raises(StorageError) as exc_info:
            await service.put_object("x.pdf", b"data", "application/pdf")

        assert exc_info.value.status_code == 502

    async def test_delete_missing_object_is_success(self, service, s3_mock):
        s3_mock.delete_object.side_effect = _client_error("NoSuchKey")

        assert await service.delete_object(f"gs://{TEST_BUCKET}/gone.pdf") is False

    async def test_delete_other_failure_raises(self, service, s3_mock):
        s3_mock.delete_object.side_effect = _client_error("InternalError")

        with pytest.raises(StorageError):
            await service.delete_object(f"gs://{TEST_BUCKET}/x.pdf")

    async def test_get_missing_object_is_not_found(self, service, s3_mock):
        s3_mock.get_object = AsyncMock(side_effect=_client_error("NoSuchKey"))

        with pytest.raises(NotFoundError):
            await service.get_object(f"gs://{TEST_BUCKET}/gone.pdf")

    async def test_signed_url_uses_default_ttl(self, service, s3_mock):
        signed = await service.generate_signed_url(f"gs://{TEST_BUCKET}/obj.pdf")

        assert signed.expires_in == 600
        assert signed.method == "GET"
        s3_mock.generate_presigned_url.assert_awaited_once_with(
            "get_object",
            Params={"Bucket": TEST_BUCKET, "Key": "obj.pdf"},
            ExpiresIn=600,
        )
