"""Analyze / chat request and response bodies."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import Field

from legallens.schemas.documents import CamelModel, Pagination


class SummaryStyle(str, Enum):
    BRIEF           = "brief"
    DETAILED        = "detailed"
    COMPREHENSIVE   = "comprehensive"
    KEY_INFORMATION = "key_information"


class AnalyzeRequest(CamelModel):
    document_id:   UUID | None = None
    gcs_uri:       str | None = Field(None, pattern=r"^gs://")
    question:      str = Field("", max_length=1000)
    summary_style: SummaryStyle | None = None


class ConversationTurn(CamelModel):
    question: str
    answer:   str


class ChatRequest(CamelModel):
    document_id:          UUID | None = None
    gcs_uri:              str | None = Field(None, pattern=r"^gs://")
    message:              str = Field(..., min_length=1, max_length=1000)
    conversation_history: list[ConversationTurn] = Field(default_factory=list)


class AnalyzeResponse(CamelModel):
    success:          bool = True
    message:          str = "Document analyzed successfully"
    analysis_id:      UUID
    summary:          str
    analysis:         str
    extracted_length: int
    document_id:      UUID | None = None
    gcs_uri:          str | None = None


class ChatResponse(CamelModel):
    success:  bool = True
    message:  str = "Chat response generated successfully"
    response: str
    summary:  str


class AnalysisRecord(CamelModel):
    id:               UUID
    document_id:      UUID | None = None
    gcs_uri:          str | None = None
    question:         str
    analysis:         str
    summary:          str
    extracted_length: int
    user_id:          str
    status:           str
    created_at:       datetime

    @classmethod
    def from_model(cls, row) -> "AnalysisRecord":
        return cls(
            id=row.id,
            document_id=row.document_id,
            gcs_uri=row.storage_uri,
            question=row.question,
            analysis=row.analysis,
            summary=row.summary,
            extracted_length=row.extracted_length,
            user_id=row.user_id,
            status=row.status,
            created_at=row.created_at,
        )


class AnalysisEnvelope(CamelModel):
    success:  bool = True
    analysis: AnalysisRecord


class AnalysisListResponse(CamelModel):
    success:    bool = True
    analyses:   list[AnalysisRecord]
    pagination: Pagination
