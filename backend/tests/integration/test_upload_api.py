"""
Integration Tests — POST /api/upload, POST /api/upload/signed-url
═══════════════════════════════════════════════════════════════════
These tests exercise the FULL FastAPI routing stack, including:
  - Multipart form parsing (``file`` and ``document`` field names)
  - Dependency injection chain (auth overridden, repositories faked)
  - Response status codes, camelCase bodies and the error envelope

What is mocked vs real
──────────────────────
  ✅ Real: FastAPI routing, request parsing, Pydantic schema validation,
           AnalysisPipeline + IngestionService logic, MIME detection
  🔲 Mock: ID token verification  (dependency_overrides → user)
  🔲 Fake: PostgreSQL             (in-memory repositories)
  🔲 Mock: Cloud Storage, Document AI, Gemini

How to run
──────────
  pytest -m integration backend/tests/integration/test_upload_api.py -v
"""

from __future__ import annotations

import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from legallens.core.errors import OCRError, OCRFailure
from tests.conftest import OTHER_UID, SAMPLE_TEXT, TEST_BUCKET, TEST_UID


# ─────────────────────────────────────────────────────────────────────────────
# POST /api/upload
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestUploadAndAnalyze:

    async def test_pdf_upload_returns_analysis(
        self, async_client, auth_headers, sample_pdf_bytes, documents_repo, history_repo,
    ):
        resp = await async_client.post(
            "/api/upload",
            files={"file": ("lease.pdf", sample_pdf_bytes, "application/pdf")},
            headers=auth_headers,
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Document uploaded and analyzed successfully"
        assert body["fileName"] == "lease.pdf"
        assert body["gcsUri"].startswith(f"gs://{TEST_BUCKET}/")
        assert body["extractedText"] == SAMPLE_TEXT
        assert body["analysis"].startswith("1. Summary")
        assert body["metadata"]["fileSize"] == len(sample_pdf_bytes)
        assert body["metadata"]["textLength"] == len(SAMPLE_TEXT)
        assert body["metadata"]["entityCount"] == 1

        stored = documents_repo.rows[uuid.UUID(body["documentId"])]
        assert stored.user_id == TEST_UID
        assert history_repo.data[TEST_UID][0]["analyzed"] is True

    async def test_document_field_name_is_accepted(self, async_client, auth_headers, sample_png_bytes):
        resp = await async_client.post(
            "/api/upload",
            files={"document": ("scan.png", sample_png_bytes, "image/png")},
            headers=auth_headers,
        )

        assert resp.status_code == 200
        assert resp.json()["fileName"] == "scan.png"

    async def test_missing_file_is_400(self, async_client, auth_headers, mock_storage):
        resp = await async_client.post(
            "/api/upload",
            files={"attachment": ("note.pdf", b"%PDF-1.4", "application/pdf")},
            headers=auth_headers,
        )

        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "No file uploaded"
        assert body["code"] == "MISSING_FILE"
        assert "requestId" in body
        mock_storage.put_object.assert_not_awaited()

    async def test_executable_is_rejected(self, async_client, auth_headers, exe_bytes, mock_storage):
        resp = await async_client.post(
            "/api/upload",
            files={"file": ("setup.exe", exe_bytes, "application/octet-stream")},
            headers=auth_headers,
        )

        assert resp.status_code == 400
        assert resp.json()["code"] == "UNSUPPORTED_FILE_TYPE"
        mock_storage.put_object.assert_not_awaited()

    async def test_oversized_file_is_rejected(
        self, app, auth_headers, documents_repo, analyses_repo, history_repo,
        mock_storage, mock_extractor, mock_gateway,
    ):
        from legallens.auth.dependencies import get_pipeline
        from legallens.services.analysis import AnalysisPipeline

        small = AnalysisPipeline(
            documents_repo, analyses_repo, history_repo,
            mock_storage, mock_extractor, mock_gateway, max_file_size=1024,
        )
        app.dependency_overrides[get_pipeline] = lambda: small

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.post(
                "/api/upload",
                files={"file": ("big.pdf", b"%PDF-1.4" + b"x" * 4096, "application/pdf")},
                headers=auth_headers,
            )

        assert resp.status_code == 400
        assert resp.json()["error"] == "File size too large"
        assert resp.json()["code"] == "FILE_TOO_LARGE"
        mock_storage.put_object.assert_not_awaited()

    async def test_blank_scan_is_422_and_blob_removed(
        self, async_client, auth_headers, sample_pdf_bytes, mock_extractor, mock_storage, documents_repo,
    ):
        mock_extractor.extract.side_effect = OCRError(OCRFailure.NO_TEXT, "No text could be extracted from the document")

        resp = await async_client.post(
            "/api/upload",
            files={"file": ("blank.pdf", sample_pdf_bytes, "application/pdf")},
            headers=auth_headers,
        )

        assert resp.status_code == 422
        assert resp.json()["code"] == "NO_TEXT_EXTRACTED"
        mock_storage.delete_object.assert_awaited_once()
        assert documents_repo.rows == {}

    async def test_request_id_is_echoed(self, async_client, auth_headers, sample_pdf_bytes):
        resp = await async_client.post(
            "/api/upload",
            files={"file": ("lease.pdf", sample_pdf_bytes, "application/pdf")},
            headers={**auth_headers, "X-Request-ID": "req-123"},
        )

        assert resp.headers["X-Request-ID"] == "req-123"


# ─────────────────────────────────────────────────────────────────────────────
# POST /api/upload/signed-url
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestSignedUrl:

    async def test_owner_gets_signed_url(self, async_client, auth_headers, make_document):
        doc = await make_document()

        resp = await async_client.post(
            "/api/upload/signed-url", json={"gcsUri": doc.storage_uri}, headers=auth_headers,
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["signedUrl"].startswith("https://storage.googleapis.com/")
        assert body["expiresIn"] == 900

    async def test_other_users_object_is_403(self, async_client, auth_headers, make_document):
        doc = await make_document(owner=OTHER_UID)

        resp = await async_client.post(
            "/api/upload/signed-url", json={"gcsUri": doc.storage_uri}, headers=auth_headers,
        )

        assert resp.status_code == 403
        assert resp.json()["code"] == "ACCESS_DENIED"

    async def test_unknown_object_is_404(self, async_client, auth_headers):
        resp = await async_client.post(
            "/api/upload/signed-url", json={"gcsUri": f"gs://{TEST_BUCKET}/missing.pdf"}, headers=auth_headers,
        )

        assert resp.status_code == 404

    async def test_non_gcs_uri_fails_validation(self, async_client, auth_headers):
        resp = await async_client.post(
            "/api/upload/signed-url", json={"gcsUri": "https://example.com/x.pdf"}, headers=auth_headers,
        )

        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"
