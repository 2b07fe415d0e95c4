"""
SQLAlchemy ORM Models — Users, Documents, Analyses, History

Using SQLAlchemy 2.x mapped classes for full async support.

Ownership note: every row that belongs to a user carries ``user_id`` (the
identity provider's uid). The ORM does not filter by it — ownership is
checked in the pipeline layer, which compares the stored owner against the
authenticated uid and answers 403 on mismatch.

Timestamps are server-assigned (``func.now()``); ``eager_defaults`` makes
them available on the instance right after flush, without a second SELECT.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Declarative base: shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# User: mirrored from the identity provider on sign-in
# ---------------------------------------------------------------------------

class User(Base):
    __tablename__ = "users"
    __mapper_args__ = {"eager_defaults": True}

    uid: Mapped[str] = mapped_column(Text, primary_key=True)
    email: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    display_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    photo_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<User uid={self.uid} email={self.email!r}>"


# ---------------------------------------------------------------------------
# Document: one uploaded file plus its extracted text
# ---------------------------------------------------------------------------

class Document(Base):
    """
    Created after a successful ingestion (and, for the upload-and-analyze
    flow, a successful extraction + analysis). Mutated only by explicit
    update calls; deletion removes the row outright.
    """

    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_user_created", "user_id", "created_at"),
        Index("idx_documents_storage_uri",  "storage_uri"),
    )
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )

    # Owner: taken from the verified token, never from the request body
    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)

    file_name: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Original filename as supplied by the client",
    )
    storage_uri: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="gs://<bucket>/<object_name>",
    )
    object_name: Mapped[str] = mapped_column(Text, nullable=False)
    mime_type: Mapped[str] = mapped_column(Text, nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)

    extracted_text: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default="")
    confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    entities: Mapped[list] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )
    analysis: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Upload-time legal analysis; NULL for plain uploads",
    )

    doc_metadata: Mapped[dict] = mapped_column(
        "metadata",                 # PostgreSQL column name stays 'metadata'
        JSONB,
        nullable=False,
        default=dict,
        server_default=text("'{}'::jsonb"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} user={self.user_id} "
            f"file={self.file_name!r} size={self.size_bytes}>"
        )


# ---------------------------------------------------------------------------
# Analysis: one question (or general summary) answered over one text
# ---------------------------------------------------------------------------

class Analysis(Base):
    """
    Only completed analyses are stored. A failed OCR or Gemini call aborts
    the request before anything is written, so ``status`` has one value.
    """

    __tablename__ = "analyses"
    __table_args__ = (
        CheckConstraint("status IN ('completed')", name="analyses_status_check"),
        Index("idx_analyses_user_created", "user_id", "created_at"),
        Index("idx_analyses_document_id",  "document_id"),
    )
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=func.gen_random_uuid(),
    )
    # No FK: analyses outlive the document they were run against
    document_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    storage_uri: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    question: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        server_default="",
        comment="Empty string means 'general summary'",
    )
    analysis: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    extracted_length: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="completed",
        server_default="completed",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<Analysis id={self.id} user={self.user_id} document={self.document_id}>"


# ---------------------------------------------------------------------------
# UserHistory: per-user append-only list of document snapshots
# ---------------------------------------------------------------------------

class UserHistory(Base):
    """
    Denormalized snapshots (not references) of each document the user has
    uploaded, used for the fast "recent documents" read path. Appended with
    a single atomic upsert — see HistoryRepository.append.
    """

    __tablename__ = "user_history"

    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    entries: Mapped[list] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        server_default=text("'[]'::jsonb"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
