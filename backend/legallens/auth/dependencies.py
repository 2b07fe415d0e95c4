"""
Composed FastAPI Dependencies

Combines auth + DB session + service-container handles into single
injectable objects. Route handlers import from here — never from
auth/token, db/session or core/services directly.

This is the single wiring point for the entire request context. Every
handle comes from ``request.app.state.services``, so a test can swap the
whole container or override any one dependency below.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from legallens.auth.token import AuthenticatedUser, get_current_user
from legallens.core.config import Settings
from legallens.db.repositories import (
    AnalysisRepository,
    DocumentRepository,
    HistoryRepository,
    UserRepository,
)
from legallens.db.session import get_db
from legallens.llm.gateway import GeminiGateway
from legallens.processing.ocr import DocumentAIExtractor
from legallens.services.analysis import AnalysisPipeline
from legallens.services.documents import DocumentService
from legallens.storage.gcs import ObjectStorageService


# ---------------------------------------------------------------------------
# 1. External service handles (built once by the ServiceContainer)
# ---------------------------------------------------------------------------

def get_storage(request: Request) -> ObjectStorageService:
    return request.app.state.services.storage


def get_extractor(request: Request) -> DocumentAIExtractor:
    return request.app.state.services.extractor


def get_gateway(request: Request) -> GeminiGateway:
    return request.app.state.services.gateway


def get_app_settings(request: Request) -> Settings:
    return request.app.state.services.settings


# ---------------------------------------------------------------------------
# 2. Repositories: all share the request's single transaction
# ---------------------------------------------------------------------------

def get_document_repository(
    session: Annotated[AsyncSession, Depends(get_db)],
) -> DocumentRepository:
    return DocumentRepository(session)


def get_analysis_repository(
    session: Annotated[AsyncSession, Depends(get_db)],
) -> AnalysisRepository:
    return AnalysisRepository(session)


def get_history_repository(
    session: Annotated[AsyncSession, Depends(get_db)],
) -> HistoryRepository:
    return HistoryRepository(session)


def get_user_repository(
    session: Annotated[AsyncSession, Depends(get_db)],
) -> UserRepository:
    return UserRepository(session)


# ---------------------------------------------------------------------------
# 3. Orchestration services (one per request)
# ---------------------------------------------------------------------------

def get_pipeline(
    documents: Annotated[DocumentRepository, Depends(get_document_repository)],
    analyses:  Annotated[AnalysisRepository, Depends(get_analysis_repository)],
    history:   Annotated[HistoryRepository, Depends(get_history_repository)],
    storage:   Annotated[ObjectStorageService, Depends(get_storage)],
    extractor: Annotated[DocumentAIExtractor, Depends(get_extractor)],
    gateway:   Annotated[GeminiGateway, Depends(get_gateway)],
    settings:  Annotated[Settings, Depends(get_app_settings)],
) -> AnalysisPipeline:
    return AnalysisPipeline(
        documents, analyses, history, storage, extractor, gateway,
        max_file_size=settings.max_file_size_bytes,
    )


def get_document_service(
    documents: Annotated[DocumentRepository, Depends(get_document_repository)],
    history:   Annotated[HistoryRepository, Depends(get_history_repository)],
    storage:   Annotated[ObjectStorageService, Depends(get_storage)],
    settings:  Annotated[Settings, Depends(get_app_settings)],
) -> DocumentService:
    return DocumentService(
        documents, history, storage, max_file_size=settings.max_file_size_bytes,
    )


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

CurrentUser = Annotated[AuthenticatedUser,  Depends(get_current_user)]
Users       = Annotated[UserRepository,     Depends(get_user_repository)]
Pipeline    = Annotated[AnalysisPipeline,   Depends(get_pipeline)]
Documents   = Annotated[DocumentService,    Depends(get_document_service)]
