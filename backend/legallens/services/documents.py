"""
Document management — the non-analysis half of the API.

Plain upload (stored, no OCR), read, rename / re-tag, delete, download
link, history listing and per-user statistics. Every per-document call
checks ownership first: 404 when the id is unknown, 403 when it belongs
to someone else.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import UploadFile

from legallens.auth.token import AuthenticatedUser
from legallens.core.errors import ErrorCode, ForbiddenError, NotFoundError, ValidationError
from legallens.db.repositories import DocumentRepository, HistoryRepository, ListQuery
from legallens.models.documents import Document
from legallens.schemas.documents import (
    MAX_FILE_SIZE_BYTES,
    DocumentDetail,
    DocumentListResponse,
    DocumentSummary,
    DocumentUpdateRequest,
    HistoryEntry,
    SignedUrlResponse,
    UserStats,
)
from legallens.services.analysis import history_entry
from legallens.services.ingestion import IngestionService
from legallens.storage.gcs import ObjectStorageService

logger = logging.getLogger(__name__)


class DocumentService:

    def __init__(
        self,
        documents: DocumentRepository,
        history:   HistoryRepository,
        storage:   ObjectStorageService,
        max_file_size: int = MAX_FILE_SIZE_BYTES,
    ) -> None:
        self._documents = documents
        self._history   = history
        self._storage   = storage
        self._ingestion = IngestionService(storage, max_file_size)

    async def upload(self, user: AuthenticatedUser, file: UploadFile | None) -> DocumentSummary:
        ingested = await self._ingestion.ingest(file, user.uid)
        try:
            document = await self._documents.save(Document(
                user_id=user.uid,
                file_name=ingested.file_name,
                storage_uri=ingested.uri,
                object_name=ingested.object_name,
                mime_type=ingested.mime_type,
                size_bytes=ingested.size_bytes,
                extracted_text="",
                entities=[],
                doc_metadata={},
            ))
            await self._history.append(user.uid, history_entry(document, analyzed=False))
            await self._documents.commit()
        except Exception:
            logger.warning("Document record failed, removing blob | uri=%s", ingested.uri)
            try:
                await self._storage.delete_object(ingested.uri)
            except Exception as exc:
                logger.error("Orphaned blob | uri=%s error=%s", ingested.uri, exc)
            raise
        return DocumentSummary.from_model(document)

    async def _owned(self, user: AuthenticatedUser, document_id: uuid.UUID) -> Document:
        document = await self._documents.get(document_id)
        if document is None:
            raise NotFoundError("Document not found", code=ErrorCode.DOCUMENT_NOT_FOUND)
        if document.user_id != user.uid:
            logger.info("Access denied | user=%s document=%s", user.uid, document_id)
            raise ForbiddenError()
        return document

    async def get(self, user: AuthenticatedUser, document_id: uuid.UUID) -> DocumentDetail:
        return DocumentDetail.from_model(await self._owned(user, document_id))

    async def list_documents(self, user: AuthenticatedUser, query: ListQuery) -> DocumentListResponse:
        result = await self._documents.list_for_user(user.uid, query)
        return DocumentListResponse(
            documents=[DocumentSummary.from_model(d) for d in result.items],
            pagination=result.pagination(),
        )

    async def update(
        self,
        user: AuthenticatedUser,
        document_id: uuid.UUID,
        body: DocumentUpdateRequest,
    ) -> DocumentDetail:
        document = await self._owned(user, document_id)

        fields = {}
        if body.file_name is not None:
            fields["file_name"] = body.file_name
        if body.metadata is not None:
            fields["doc_metadata"] = {**(document.doc_metadata or {}), **body.metadata}
        if not fields:
            raise ValidationError("No updatable fields supplied")

        updated = await self._documents.update(document_id, **fields)
        if updated is None:
            raise NotFoundError("Document not found", code=ErrorCode.DOCUMENT_NOT_FOUND)
        await self._documents.commit()
        return DocumentDetail.from_model(updated)

    async def delete(self, user: AuthenticatedUser, document_id: uuid.UUID) -> None:
        """Blob first, then the record: a failed blob delete leaves both in place."""
        document = await self._owned(user, document_id)
        await self._storage.delete_object(document.storage_uri)
        await self._documents.delete(document_id)
        await self._documents.commit()
        logger.info("Document removed | id=%s user=%s", document_id, user.uid)

    async def download(self, user: AuthenticatedUser, document_id: uuid.UUID) -> SignedUrlResponse:
        document = await self._owned(user, document_id)
        signed = await self._storage.generate_signed_url(document.storage_uri)
        return SignedUrlResponse(signed_url=signed.url, expires_in=signed.expires_in)

    async def recent(self, user: AuthenticatedUser, limit: int = 10) -> list[HistoryEntry]:
        entries = await self._history.recent(user.uid, limit)
        return [HistoryEntry.model_validate(e) for e in entries]

    async def stats(self, user: AuthenticatedUser) -> UserStats:
        return UserStats(**await self._documents.stats_for_user(user.uid))
