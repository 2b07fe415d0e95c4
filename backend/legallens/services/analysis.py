"""
Document-analysis pipeline

Upload-and-analyze (POST /api/upload) is strictly linear:

    ingest ──► extract (Document AI) ──► reason (Gemini) ──► persist
      │             │                        │                  │
      │             └──────── failure ───────┴──── failure ─────┤
      │                          │                              │
      ▼                          ▼                              ▼
   400 / 502          delete the stored blob,        commit fails or any step
   nothing stored     re-raise, nothing persisted    before it: roll back,
                                                     delete blob, re-raise

Every external call is awaited in sequence; no stage retries or falls back.
The first failure aborts the request.

Failed attempts are deliberately NOT persisted: an Analysis row only ever
exists in status "completed". The failure is logged at WARNING with the
user, source and reason instead, which is where an audit trail of failed
attempts lives.

Analyze / chat resolve the text to work on from either a document the
caller owns or a raw ``gs://`` URI:

  documentId given   → 404 if missing, 403 if someone else's, else its text
  no text yet + URI  → a document row for that URI must belong to the
                       caller; a URI with no row must be in our bucket.
                       Then Document AI extracts the text.
  still no text      → 400 "No text content available for …"
"""

from __future__ import annotations

import logging
import mimetypes
import uuid
from datetime import datetime, timezone

from fastapi import UploadFile

from legallens.auth.token import AuthenticatedUser
from legallens.core.errors import (
    ErrorCode,
    ForbiddenError,
    GenerativeAIError,
    NotFoundError,
    OCRError,
    OCRFailure,
    ValidationError,
)
from legallens.db.repositories import (
    AnalysisRepository,
    DocumentRepository,
    HistoryRepository,
    ListQuery,
)
from legallens.llm import prompts
from legallens.llm.gateway import GeminiGateway
from legallens.models.documents import Analysis, Document
from legallens.processing.ocr import SUPPORTED_MIME_TYPES, DocumentAIExtractor
from legallens.schemas.analysis import (
    AnalysisListResponse,
    AnalysisRecord,
    AnalyzeRequest,
    AnalyzeResponse,
    ChatRequest,
    ChatResponse,
)
from legallens.schemas.documents import (
    MAX_FILE_SIZE_BYTES,
    HistoryEntry,
    SignedUrlResponse,
    UploadMetadata,
    UploadResponse,
)
from legallens.services.ingestion import IngestedFile, IngestionService
from legallens.storage.gcs import ObjectStorageService

logger = logging.getLogger(__name__)


def history_entry(document: Document, analyzed: bool) -> dict:
    """Snapshot a document for user_history (JSON-ready, camelCase)."""
    return HistoryEntry(
        document_id=document.id,
        file_name=document.file_name,
        gcs_uri=document.storage_uri,
        mime_type=document.mime_type,
        size=document.size_bytes,
        text_length=len(document.extracted_text or ""),
        analyzed=analyzed,
        created_at=document.created_at or datetime.now(timezone.utc),
    ).model_dump(mode="json", by_alias=True)


class AnalysisPipeline:
    """Stateless — one instance per request, every collaborator injected."""

    def __init__(
        self,
        documents: DocumentRepository,
        analyses:  AnalysisRepository,
        history:   HistoryRepository,
        storage:   ObjectStorageService,
        extractor: DocumentAIExtractor,
        gateway:   GeminiGateway,
        max_file_size: int = MAX_FILE_SIZE_BYTES,
    ) -> None:
        self._documents = documents
        self._analyses  = analyses
        self._history   = history
        self._storage   = storage
        self._extractor = extractor
        self._gateway   = gateway
        self._ingestion = IngestionService(storage, max_file_size)

    # ------------------------------------------------------------------
    # POST /api/upload
    # ------------------------------------------------------------------

    async def upload_and_analyze(
        self,
        user: AuthenticatedUser,
        file: UploadFile | None,
    ) -> UploadResponse:
        ingested = await self._ingestion.ingest(file, user.uid)

        try:
            extraction = await self._extractor.extract(ingested.uri, ingested.mime_type)
            analysis = await self._gateway.analyze(prompts.upload_analysis_prompt(extraction.text))

            document = await self._documents.save(Document(
                user_id=user.uid,
                file_name=ingested.file_name,
                storage_uri=ingested.uri,
                object_name=ingested.object_name,
                mime_type=ingested.mime_type,
                size_bytes=ingested.size_bytes,
                extracted_text=extraction.text,
                confidence=extraction.confidence,
                entities=extraction.entities,
                analysis=analysis,
                doc_metadata={"pages": extraction.pages, "ocr": extraction.metadata},
            ))
            await self._history.append(user.uid, history_entry(document, analyzed=True))
            await self._documents.commit()
        except Exception as exc:
            logger.warning(
                "Upload aborted, nothing persisted | user=%s uri=%s reason=%s",
                user.uid, ingested.uri, getattr(exc, "code", type(exc).__name__),
            )
            await self._discard_blob(ingested)
            raise

        return UploadResponse(
            document_id=document.id,
            file_name=document.file_name,
            gcs_uri=document.storage_uri,
            extracted_text=extraction.text,
            analysis=analysis,
            metadata=UploadMetadata(
                file_size=ingested.size_bytes,
                uploaded_at=document.created_at or datetime.now(timezone.utc),
                text_length=len(extraction.text),
                confidence=extraction.confidence,
                entity_count=len(extraction.entities),
            ),
        )

    async def _discard_blob(self, ingested: IngestedFile) -> None:
        # best effort: the original failure is what the caller must see
        try:
            await self._storage.delete_object(ingested.uri)
        except Exception as exc:
            logger.error("Orphaned blob after failed upload | uri=%s error=%s", ingested.uri, exc)

    # ------------------------------------------------------------------
    # POST /api/analyze
    # ------------------------------------------------------------------

    async def analyze(self, user: AuthenticatedUser, request: AnalyzeRequest) -> AnalyzeResponse:
        self._require_reference(request.document_id, request.gcs_uri)
        document, text = await self._resolve_text(
            user, request.document_id, request.gcs_uri, purpose="analysis",
        )

        style = request.summary_style.value if request.summary_style else None
        prompt = prompts.analysis_prompt(text, request.question, style)
        try:
            answer = await self._gateway.analyze(prompt)
        except GenerativeAIError as exc:
            logger.warning(
                "Analysis failed, not persisted | user=%s document=%s reason=%s",
                user.uid, request.document_id, exc.reason.value,
            )
            raise

        gcs_uri = request.gcs_uri or (document.storage_uri if document else None)
        document_id = document.id if document else request.document_id
        record = await self._analyses.save(Analysis(
            document_id=document_id,
            storage_uri=gcs_uri,
            question=request.question or "",
            analysis=answer,
            summary=answer,
            extracted_length=len(text),
            user_id=user.uid,
            status="completed",
        ))
        await self._analyses.commit()

        return AnalyzeResponse(
            analysis_id=record.id,
            summary=answer,
            analysis=answer,
            extracted_length=len(text),
            document_id=document_id,
            gcs_uri=gcs_uri,
        )

    # ------------------------------------------------------------------
    # POST /api/analyze/chat
    # ------------------------------------------------------------------

    async def chat(self, user: AuthenticatedUser, request: ChatRequest) -> ChatResponse:
        self._require_reference(request.document_id, request.gcs_uri)
        _, text = await self._resolve_text(
            user, request.document_id, request.gcs_uri, purpose="chat",
        )

        prompt = prompts.chat_prompt(text, request.conversation_history, request.message)
        try:
            response = await self._gateway.chat(prompt)
        except GenerativeAIError as exc:
            logger.warning("Chat failed | user=%s reason=%s", user.uid, exc.reason.value)
            raise

        return ChatResponse(response=response, summary=response)

    # ------------------------------------------------------------------
    # Stored analyses
    # ------------------------------------------------------------------

    async def get_analysis(self, user: AuthenticatedUser, analysis_id: uuid.UUID) -> AnalysisRecord:
        record = await self._analyses.get(analysis_id)
        if record is None:
            raise NotFoundError("Analysis not found", code=ErrorCode.ANALYSIS_NOT_FOUND)
        if record.user_id != user.uid:
            raise ForbiddenError()
        return AnalysisRecord.from_model(record)

    async def list_analyses(
        self,
        user: AuthenticatedUser,
        page: int,
        limit: int,
        document_id: uuid.UUID | None = None,
        cursor: str | None = None,
    ) -> AnalysisListResponse:
        query = ListQuery(
            page=page,
            limit=limit,
            cursor=cursor,
            filters={"document_id": document_id} if document_id else {},
        )
        result = await self._analyses.list_for_user(user.uid, query)
        return AnalysisListResponse(
            analyses=[AnalysisRecord.from_model(a) for a in result.items],
            pagination=result.pagination(),
        )

    async def delete_analysis(self, user: AuthenticatedUser, analysis_id: uuid.UUID) -> None:
        await self.get_analysis(user, analysis_id)
        await self._analyses.delete(analysis_id)
        await self._analyses.commit()
        logger.info("Analysis deleted | id=%s user=%s", analysis_id, user.uid)

    # ------------------------------------------------------------------
    # POST /api/upload/signed-url
    # ------------------------------------------------------------------

    async def signed_url(self, user: AuthenticatedUser, gcs_uri: str) -> SignedUrlResponse:
        document = await self._documents.get_by_storage_uri(gcs_uri)
        if document is None:
            raise NotFoundError("Document not found", code=ErrorCode.DOCUMENT_NOT_FOUND)
        if document.user_id != user.uid:
            raise ForbiddenError()
        signed = await self._storage.generate_signed_url(gcs_uri)
        return SignedUrlResponse(signed_url=signed.url, expires_in=signed.expires_in)

    # ------------------------------------------------------------------
    # Text resolution
    # ------------------------------------------------------------------

    @staticmethod
    def _require_reference(document_id: uuid.UUID | None, gcs_uri: str | None) -> None:
        if document_id is None and not gcs_uri:
            raise ValidationError("Document ID or GCS URI is required")

    async def _resolve_text(
        self,
        user: AuthenticatedUser,
        document_id: uuid.UUID | None,
        gcs_uri: str | None,
        purpose: str,
    ) -> tuple[Document | None, str]:
        document: Document | None = None
        text = ""

        if document_id is not None:
            document = await self._documents.get(document_id)
            if document is None:
                raise NotFoundError("Document not found", code=ErrorCode.DOCUMENT_NOT_FOUND)
            if document.user_id != user.uid:
                raise ForbiddenError()
            text = document.extracted_text or ""

        if not text and gcs_uri:
            by_uri = await self._documents.get_by_storage_uri(gcs_uri)
            if by_uri is not None:
                if by_uri.user_id != user.uid:
                    raise ForbiddenError()
                document = document or by_uri
                text = by_uri.extracted_text or ""
            elif not self._storage.owns(gcs_uri):
                raise ForbiddenError()

            if not text:
                mime_type = document.mime_type if document else _guess_mime_type(gcs_uri)
                try:
                    text = (await self._extractor.extract(gcs_uri, mime_type)).text
                except OCRError as exc:
                    if exc.reason is not OCRFailure.NO_TEXT:
                        raise
                    logger.info("No text extracted for %s | uri=%s", purpose, gcs_uri)

        if not text:
            raise ValidationError(f"No text content available for {purpose}")
        return document, text


def _guess_mime_type(uri: str) -> str:
    guessed, _ = mimetypes.guess_type(uri)
    return guessed if guessed in SUPPORTED_MIME_TYPES else "application/pdf"
