"""
Document Ingestion Service

Orchestrates the first stage of every upload:
  1. Require a file (400 "No file uploaded")
  2. Read it with a hard size ceiling (400 "File size too large")
  3. Resolve the MIME type — the declared type when it is specific,
     magic bytes when the client sent a generic one
  4. Check the type against the allow-list (PDF + common raster images)
  5. Write the bytes to object storage under a collision-free name
  6. Return the stored object's URI

Steps 1–4 run before any network call: a rejected file never reaches
storage. Step 5 is a single-object PUT, so there is nothing partial to
clean up if it fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote

from fastapi import UploadFile

from legallens.processing.ocr import normalize_mime_type
from legallens.schemas.documents import (
    ALLOWED_CONTENT_TYPES,
    MAX_FILE_SIZE_BYTES,
    UploadErrors,
)
from legallens.storage.gcs import ObjectStorageService

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# File type detection helpers
# ---------------------------------------------------------------------------

# Magic byte signatures for each supported type
_MAGIC_BYTES: dict[bytes, str] = {
    b"%PDF":              "application/pdf",
    b"\x89PNG\r\n\x1a\n": "image/png",
    b"\xff\xd8\xff":      "image/jpeg",
    b"GIF87a":            "image/gif",
    b"GIF89a":            "image/gif",
    b"BM":                "image/bmp",
    b"II*\x00":           "image/tiff",   # little-endian
    b"MM\x00*":           "image/tiff",   # big-endian
}

_GENERIC_CONTENT_TYPES = frozenset({"", "application/octet-stream", "binary/octet-stream"})


def sniff_mime_type(file_head: bytes) -> str:
    """Detect a supported type from the first bytes; octet-stream if unknown."""
    # RIFF....WEBP: the signature is split around a 4-byte length
    if file_head[:4] == b"RIFF" and file_head[8:12] == b"WEBP":
        return "image/webp"
    for magic, mime in _MAGIC_BYTES.items():
        if file_head.startswith(magic):
            return mime
    return "application/octet-stream"


def resolve_mime_type(declared: str | None, file_head: bytes) -> str:
    mime = normalize_mime_type(declared or "")
    if mime in _GENERIC_CONTENT_TYPES:
        return sniff_mime_type(file_head)
    return mime


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IngestedFile:
    file_name:   str
    object_name: str
    uri:         str
    mime_type:   str
    size_bytes:  int


# ---------------------------------------------------------------------------
# Core ingestion orchestrator
# ---------------------------------------------------------------------------

class IngestionService:
    """
    Stateless service object — one instance per request.
    All dependencies are injected (testable, no hidden globals).
    """

    def __init__(
        self,
        storage: ObjectStorageService,
        max_file_size: int = MAX_FILE_SIZE_BYTES,
    ) -> None:
        self._storage = storage
        self._max_file_size = max_file_size

    async def ingest(self, file: UploadFile | None, user_id: str) -> IngestedFile:
        """Validate, then store. Raises ValidationError / StorageError."""

        # ---- Step 1–2: presence + size --------------------------------
        data = await self._read_upload(file)
        file_name = file.filename

        # ---- Step 3–4: MIME type against the allow-list ---------------
        mime_type = resolve_mime_type(file.content_type, data[:16])
        if mime_type not in ALLOWED_CONTENT_TYPES:
            logger.info(
                "Ingest rejected | user=%s file=%s declared=%s resolved=%s",
                user_id, file_name, file.content_type, mime_type,
            )
            raise UploadErrors.unsupported_file_type(file_name, mime_type)

        # ---- Step 5: storage write ------------------------------------
        object_name = self._storage.build_object_name(file_name)
        logger.info(
            "Ingest start | user=%s file=%s size=%d mime=%s",
            user_id, file_name, len(data), mime_type,
        )
        stored = await self._storage.put_object(
            object_name,
            data,
            content_type=mime_type,
            # object metadata must be ASCII
            metadata={"originalname": quote(file_name), "uploadedby": user_id},
        )

        return IngestedFile(
            file_name=file_name,
            object_name=stored.name,
            uri=stored.uri,
            mime_type=mime_type,
            size_bytes=len(data),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _read_upload(self, file: UploadFile | None) -> bytes:
        """
        Read the upload into memory with a hard size ceiling.
        Never reads more than one byte past the limit.
        """
        if file is None or not file.filename:
            raise UploadErrors.missing_file()

        if file.size is not None and file.size > self._max_file_size:
            raise UploadErrors.file_too_large(file.size, self._max_file_size)

        data = await file.read(self._max_file_size + 1)
        if len(data) > self._max_file_size:
            raise UploadErrors.file_too_large(len(data), self._max_file_size)
        if not data:
            raise UploadErrors.missing_file()
        return data
