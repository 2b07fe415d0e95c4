"""
Document API Router

POST   /api/documents/upload          → store only (no OCR / analysis)
GET    /api/documents                 → paginated list of the caller's documents
GET    /api/documents/{id}            → full record incl. extracted text
PATCH  /api/documents/{id}            → rename / merge metadata
DELETE /api/documents/{id}            → remove blob, then record
GET    /api/documents/{id}/download   → signed URL

Ownership is checked on every per-document route: 404 for an unknown id,
403 for another user's document.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, File, Query, UploadFile

from legallens.auth.dependencies import CurrentUser, Documents
from legallens.db.repositories import ListQuery
from legallens.schemas.documents import (
    DocumentEnvelope,
    DocumentListResponse,
    DocumentUpdateRequest,
    DocumentUploadResponse,
    ErrorResponse,
    MessageResponse,
    SignedUrlResponse,
    SortField,
    SortOrder,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["Documents"])

_OWNED = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse, "description": "Document belongs to another user"},
    404: {"model": ErrorResponse},
}


@router.post(
    "/upload",
    response_model=DocumentUploadResponse,
    summary="Store a document without analysis",
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def upload_document(
    user: CurrentUser,
    service: Documents,
    file: UploadFile | None = File(None),
    document: UploadFile | None = File(None),
) -> DocumentUploadResponse:
    return DocumentUploadResponse(document=await service.upload(user, file or document))


@router.get("", response_model=DocumentListResponse, summary="List documents")
async def list_documents(
    user: CurrentUser,
    service: Documents,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: SortField = Query(SortField.CREATED_AT, alias="sortBy"),
    order: SortOrder = Query(SortOrder.DESC),
    cursor: str | None = Query(None),
) -> DocumentListResponse:
    query = ListQuery(sort_by=sort_by, order=order, page=page, limit=limit, cursor=cursor)
    return await service.list_documents(user, query)


@router.get("/{document_id}", response_model=DocumentEnvelope, summary="Get a document", responses=_OWNED)
async def get_document(document_id: UUID, user: CurrentUser, service: Documents) -> DocumentEnvelope:
    return DocumentEnvelope(document=await service.get(user, document_id))


@router.patch("/{document_id}", response_model=DocumentEnvelope, summary="Update a document", responses=_OWNED)
async def update_document(
    document_id: UUID,
    body: DocumentUpdateRequest,
    user: CurrentUser,
    service: Documents,
) -> DocumentEnvelope:
    return DocumentEnvelope(document=await service.update(user, document_id, body))


@router.delete("/{document_id}", response_model=MessageResponse, summary="Delete a document", responses=_OWNED)
async def delete_document(document_id: UUID, user: CurrentUser, service: Documents) -> MessageResponse:
    await service.delete(user, document_id)
    return MessageResponse(message="Document deleted successfully")


@router.get(
    "/{document_id}/download",
    response_model=SignedUrlResponse,
    summary="Get a signed download URL",
    responses=_OWNED,
)
async def download_document(document_id: UUID, user: CurrentUser, service: Documents) -> SignedUrlResponse:
    return await service.download(user, document_id)
