"""
Document, History & Error — Pydantic Request/Response Schemas

Covers:
  - POST /api/upload and POST /api/documents/upload responses
  - Document detail / list / update bodies
  - History listing (pagination envelope) and per-user stats
  - The uniform error envelope used by every 4xx/5xx response

Design decisions:
  - Wire format is camelCase (alias_generator=to_camel); Python code uses
    snake_case. populate_by_name lets tests and services build models
    either way.
  - document ids are always server-generated (UUID4); never client-supplied.
  - Every response body carries ``success``.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from legallens.core.errors import ErrorCode, ValidationError


# ---------------------------------------------------------------------------
# Allowed MIME types: enforced before touching storage
# ---------------------------------------------------------------------------

ALLOWED_CONTENT_TYPES: frozenset[str] = frozenset(
    {
        "application/pdf",
        "image/png",
        "image/jpeg",
        "image/jpg",           # non-standard, but browsers still send it
        "image/gif",
        "image/bmp",
        "image/webp",
        "image/tiff",
    }
)

# 50 MiB hard ceiling
MAX_FILE_SIZE_BYTES: int = 50 * 1024 * 1024


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# Document views
# ---------------------------------------------------------------------------

class DocumentSummary(CamelModel):
    """List / history card — no extracted text."""
    id:          UUID
    user_id:     str
    file_name:   str
    gcs_uri:     str
    mime_type:   str
    size:        int
    text_length: int = 0
    confidence:  float | None = None
    created_at:  datetime
    updated_at:  datetime

    @classmethod
    def from_model(cls, doc) -> "DocumentSummary":
        return cls(
            id=doc.id,
            user_id=doc.user_id,
            file_name=doc.file_name,
            gcs_uri=doc.storage_uri,
            mime_type=doc.mime_type,
            size=doc.size_bytes,
            text_length=len(doc.extracted_text or ""),
            confidence=doc.confidence,
            created_at=doc.created_at,
            updated_at=doc.updated_at,
        )


class DocumentDetail(DocumentSummary):
    extracted_text: str = ""
    analysis:       str | None = None
    entities:       list[dict[str, Any]] = Field(default_factory=list)
    metadata:       dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_model(cls, doc) -> "DocumentDetail":
        summary = DocumentSummary.from_model(doc)
        return cls(
            **summary.model_dump(),
            extracted_text=doc.extracted_text or "",
            analysis=doc.analysis,
            entities=doc.entities or [],
            metadata=doc.doc_metadata or {},
        )


class DocumentEnvelope(CamelModel):
    success:  bool = True
    document: DocumentDetail


class DocumentUpdateRequest(CamelModel):
    """PATCH /api/documents/{id} — owner is never updatable."""
    file_name: str | None = Field(None, min_length=1, max_length=255)
    metadata:  dict[str, Any] | None = None


class UploadMetadata(CamelModel):
    file_size:    int
    uploaded_at:  datetime
    text_length:  int
    confidence:   float | None = None
    entity_count: int = 0


class UploadResponse(CamelModel):
    """POST /api/upload — upload + OCR + analysis in one call."""
    success:        bool = True
    message:        str = "Document uploaded and analyzed successfully"
    document_id:    UUID
    file_name:      str
    gcs_uri:        str
    extracted_text: str
    analysis:       str
    metadata:       UploadMetadata


class DocumentUploadResponse(CamelModel):
    """POST /api/documents/upload — stored, no OCR/analysis."""
    success:  bool = True
    message:  str = "Document uploaded successfully"
    document: DocumentSummary


class SignedUrlRequest(CamelModel):
    gcs_uri: str = Field(..., pattern=r"^gs://")


class SignedUrlResponse(CamelModel):
    success:    bool = True
    signed_url: str
    expires_in: int


# ---------------------------------------------------------------------------
# Listing / pagination
# ---------------------------------------------------------------------------

class SortField(str, Enum):
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"
    FILE_NAME  = "fileName"
    SIZE       = "size"


class SortOrder(str, Enum):
    ASC  = "asc"
    DESC = "desc"


class Pagination(CamelModel):
    page:        int
    limit:       int
    total:       int
    total_pages: int
    has_next:    bool
    has_prev:    bool
    next_cursor: str | None = None


class DocumentListResponse(CamelModel):
    success:    bool = True
    documents:  list[DocumentSummary]
    pagination: Pagination


class HistoryEntry(CamelModel):
    """Denormalized snapshot appended to user_history.entries."""
    document_id: UUID
    file_name:   str
    gcs_uri:     str
    mime_type:   str
    size:        int
    text_length: int = 0
    analyzed:    bool = False
    created_at:  datetime


class RecentHistoryResponse(CamelModel):
    success: bool = True
    entries: list[HistoryEntry]


class UserStats(CamelModel):
    total_documents:   int
    total_file_size:   int
    average_file_size: int
    oldest_document:   datetime | None = None
    newest_document:   datetime | None = None


class UserStatsResponse(CamelModel):
    success: bool = True
    stats:   UserStats


class MessageResponse(CamelModel):
    success: bool = True
    message: str


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str | None = None


class ErrorResponse(CamelModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `code` for programmatic handling.
    """
    success:    bool = False
    error:      str              = Field(..., description="Human-readable summary")
    code:       str              = Field(..., description="Stable machine-readable code")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None       = Field(None, description="Trace ID for log correlation")
    stack:      str | None       = Field(None, description="Only populated outside production")


# ---------------------------------------------------------------------------
# Pre-defined upload errors (keeps the ingestion service thin)
# ---------------------------------------------------------------------------

class UploadErrors:
    """Factories for every documented upload validation failure."""

    @staticmethod
    def missing_file() -> ValidationError:
        return ValidationError(
            "No file uploaded",
            code=ErrorCode.MISSING_FILE,
            details=[{
                "field": "file",
                "message": "The 'file' multipart field is required.",
                "code": ErrorCode.MISSING_FILE.value,
            }],
        )

    @staticmethod
    def file_too_large(size_bytes: int, limit: int = MAX_FILE_SIZE_BYTES) -> ValidationError:
        return ValidationError(
            "File size too large",
            code=ErrorCode.FILE_TOO_LARGE,
            details=[{
                "field": "file",
                "message": (
                    f"Received {size_bytes:,} bytes. "
                    f"Maximum size is {limit // (1024 * 1024)}MB"
                ),
                "code": ErrorCode.FILE_TOO_LARGE.value,
            }],
        )

    @staticmethod
    def unsupported_file_type(filename: str, detected_type: str) -> ValidationError:
        return ValidationError(
            f"File type '{detected_type}' is not supported",
            code=ErrorCode.UNSUPPORTED_FILE_TYPE,
            details=[{
                "field": "file",
                "message": (
                    f"'{filename}' has an unsupported type '{detected_type}'. "
                    "Allowed: PDF, PNG, JPEG, GIF, BMP, WEBP, TIFF."
                ),
                "code": ErrorCode.UNSUPPORTED_FILE_TYPE.value,
            }],
        )
