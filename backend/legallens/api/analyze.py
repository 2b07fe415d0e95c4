"""
Analyze API — summaries, targeted questions and document chat

POST   /api/analyze                 → analysis (persisted)
POST   /api/analyze/chat            → chat turn (not persisted)
GET    /api/analyze/history         → caller's stored analyses
GET    /api/analyze/{analysis_id}   → one stored analysis
DELETE /api/analyze/{analysis_id}   → remove a stored analysis

Every route resolves text from a ``documentId`` the caller owns or from a
``gcsUri``. Neither given → 400 before any external call.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Query

from legallens.auth.dependencies import CurrentUser, Pipeline
from legallens.schemas.analysis import (
    AnalysisEnvelope,
    AnalysisListResponse,
    AnalyzeRequest,
    AnalyzeResponse,
    ChatRequest,
    ChatResponse,
)
from legallens.schemas.documents import ErrorResponse, MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analyze", tags=["Analysis"])

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Missing reference, no text, or safety block"},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse, "description": "Document belongs to another user"},
    404: {"model": ErrorResponse},
    429: {"model": ErrorResponse, "description": "AI quota exceeded"},
    502: {"model": ErrorResponse},
}


@router.post("", response_model=AnalyzeResponse, summary="Analyze a document", responses=_ERRORS)
async def analyze_document(
    body: AnalyzeRequest,
    user: CurrentUser,
    pipeline: Pipeline,
) -> AnalyzeResponse:
    return await pipeline.analyze(user, body)


@router.post("/chat", response_model=ChatResponse, summary="Chat about a document", responses=_ERRORS)
async def chat_with_document(
    body: ChatRequest,
    user: CurrentUser,
    pipeline: Pipeline,
) -> ChatResponse:
    return await pipeline.chat(user, body)


@router.get("/history", response_model=AnalysisListResponse, summary="List stored analyses")
async def analysis_history(
    user: CurrentUser,
    pipeline: Pipeline,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    document_id: UUID | None = Query(None, alias="documentId"),
    cursor: str | None = Query(None),
) -> AnalysisListResponse:
    return await pipeline.list_analyses(user, page, limit, document_id, cursor)


@router.get(
    "/{analysis_id}",
    response_model=AnalysisEnvelope,
    summary="Get a stored analysis",
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_analysis(analysis_id: UUID, user: CurrentUser, pipeline: Pipeline) -> AnalysisEnvelope:
    return AnalysisEnvelope(analysis=await pipeline.get_analysis(user, analysis_id))


@router.delete(
    "/{analysis_id}",
    response_model=MessageResponse,
    summary="Delete a stored analysis",
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def delete_analysis(analysis_id: UUID, user: CurrentUser, pipeline: Pipeline) -> MessageResponse:
    await pipeline.delete_analysis(user, analysis_id)
    return MessageResponse(message="Analysis deleted successfully")
