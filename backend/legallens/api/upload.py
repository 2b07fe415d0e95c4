"""
Upload API Router

POST /api/upload              → store + OCR + 10-point legal analysis
POST /api/upload/signed-url   → short-lived download link for an owned object

Request lifecycle (POST /api/upload):
  ┌─────────────────────────────────────────────────────────┐
  │ 1. Firebase ID token verification → user context        │
  │ 2. File presence / size / type validation (no I/O yet)  │
  │ 3. Object write to gs://<bucket>/<ts>_<uuid>_<name>     │
  │ 4. Document AI text extraction                          │
  │ 5. Gemini analysis                                      │
  │ 6. Document row + history entry, committed together     │
  └─────────────────────────────────────────────────────────┘

The multipart field may be named ``file`` or ``document``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, File, UploadFile

from legallens.auth.dependencies import CurrentUser, Pipeline
from legallens.schemas.documents import (
    ErrorResponse,
    SignedUrlRequest,
    SignedUrlResponse,
    UploadResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/upload", tags=["Upload"])


@router.post(
    "",
    response_model=UploadResponse,
    summary="Upload a document and analyze it",
    description=(
        "Accepts PDF and common image formats up to 50 MB. The document is "
        "stored, its text extracted, and a structured legal analysis returned."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Missing file, bad type or too large"},
        401: {"model": ErrorResponse, "description": "Missing or invalid ID token"},
        422: {"model": ErrorResponse, "description": "No text could be extracted"},
        429: {"model": ErrorResponse, "description": "AI quota exceeded"},
        502: {"model": ErrorResponse, "description": "Storage, OCR or AI service failure"},
    },
)
async def upload_document(
    user: CurrentUser,
    pipeline: Pipeline,
    file: UploadFile | None = File(None, description="Document file (PDF or image, max 50 MB)"),
    document: UploadFile | None = File(None, description="Alternative field name for the file"),
) -> UploadResponse:
    return await pipeline.upload_and_analyze(user, file or document)


@router.post(
    "/signed-url",
    response_model=SignedUrlResponse,
    summary="Get a signed download URL",
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def signed_url(
    body: SignedUrlRequest,
    user: CurrentUser,
    pipeline: Pipeline,
) -> SignedUrlResponse:
    return await pipeline.signed_url(user, body.gcs_uri)
