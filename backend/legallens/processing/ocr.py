"""
Text Extraction — Google Document AI
════════════════════════════════════

The document already lives in Cloud Storage when extraction runs, so the
processor is handed a ``GcsDocument`` reference rather than the raw bytes:

    ProcessRequest(
        name="projects/<p>/locations/<loc>/processors/<id>",
        gcs_document=GcsDocument(gcs_uri="gs://…", mime_type="application/pdf"),
    )

Result contract
───────────────
  text        non-empty — an empty result is fatal for the caller (no text ⇒
              nothing to analyze), raised as OCRError(NO_TEXT)
  entities    [{type, mentionText, confidence, normalizedValue}], passed
              through from the processor unmodified
  confidence  arithmetic mean of per-token confidences when the processor
              reports any, otherwise DEFAULT_CONFIDENCE

No retry policy is layered on top of the client's own; a processor failure
aborts the calling flow as OCRError(PROCESSOR_FAILURE).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterable

from google.api_core.client_options import ClientOptions
from google.api_core.exceptions import GoogleAPICallError
from google.cloud import documentai

from legallens.core.config import Settings
from legallens.core.errors import OCRError, OCRFailure, ValidationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CONFIDENCE = 0.8

SUPPORTED_MIME_TYPES: frozenset[str] = frozenset(
    {
        "application/pdf",
        "image/png",
        "image/jpeg",
        "image/gif",
        "image/bmp",
        "image/webp",
        "image/tiff",
    }
)

_MIME_ALIASES = {"image/jpg": "image/jpeg", "image/tif": "image/tiff"}


def normalize_mime_type(mime_type: str) -> str:
    mime = (mime_type or "").split(";", 1)[0].strip().lower()
    return _MIME_ALIASES.get(mime, mime)


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------

@dataclass
class ExtractionResult:
    """
    text        : full document text
    pages       : page count reported by the processor
    entities    : processor entities (see module docstring)
    confidence  : 0.0–1.0
    metadata    : processor name, elapsed time, source URI
    """
    text:       str
    pages:      int = 0
    entities:   list[dict[str, Any]] = field(default_factory=list)
    confidence: float = DEFAULT_CONFIDENCE
    metadata:   dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Derived values: pure functions over the processor's Document
# ---------------------------------------------------------------------------

def _token_confidences(pages: Iterable[Any]) -> list[float]:
    values: list[float] = []
    for page in pages or ():
        for token in getattr(page, "tokens", None) or ():
            # v1 DetectedBreak carries only a type; the token's layout holds
            # the score. Prefer a break score if a processor ever reports one.
            conf = getattr(getattr(token, "detected_break", None), "confidence", None)
            if not conf:
                conf = getattr(getattr(token, "layout", None), "confidence", None)
            # proto3 reports an unset float as 0.0
            if conf:
                values.append(float(conf))
    return values


def compute_confidence(document: Any) -> float:
    values = _token_confidences(getattr(document, "pages", None))
    if not values:
        return DEFAULT_CONFIDENCE
    return sum(values) / len(values)


def extract_entities(document: Any) -> list[dict[str, Any]]:
    entities = []
    for entity in getattr(document, "entities", None) or ():
        normalized = getattr(getattr(entity, "normalized_value", None), "text", "") or None
        entities.append({
            "type":            entity.type_,
            "mentionText":     entity.mention_text,
            "confidence":      entity.confidence,
            "normalizedValue": normalized,
        })
    return entities


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class DocumentAIExtractor:
    """
    Thin async wrapper over DocumentProcessorServiceAsyncClient.

    The client is created on first use, not at construction — building it
    resolves Google application-default credentials, which the app should
    only need once a request actually reaches OCR.
    """

    def __init__(
        self,
        processor_name: str,
        *,
        location: str = "us",
        client: documentai.DocumentProcessorServiceAsyncClient | None = None,
    ) -> None:
        self._processor_name = processor_name
        self._location = location
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "DocumentAIExtractor":
        return cls(
            settings.document_ai_processor_name,
            location=settings.document_ai_location,
        )

    @property
    def client(self) -> documentai.DocumentProcessorServiceAsyncClient:
        if self._client is None:
            self._client = documentai.DocumentProcessorServiceAsyncClient(
                client_options=ClientOptions(
                    api_endpoint=f"{self._location}-documentai.googleapis.com",
                ),
            )
        return self._client

    async def extract(self, uri: str, mime_type: str) -> ExtractionResult:
        mime = normalize_mime_type(mime_type)
        if mime not in SUPPORTED_MIME_TYPES:
            raise ValidationError(f"Unsupported MIME type for text extraction: {mime_type}")

        request = documentai.ProcessRequest(
            name=self._processor_name,
            gcs_document=documentai.GcsDocument(gcs_uri=uri, mime_type=mime),
        )

        t0 = time.monotonic()
        try:
            result = await self.client.process_document(request=request)
        except GoogleAPICallError as exc:
            logger.error("DocumentAI | processor call failed uri=%s error=%s", uri, exc)
            raise OCRError(
                OCRFailure.PROCESSOR_FAILURE,
                f"Text extraction failed: {exc.message or exc}",
            ) from exc
        elapsed_ms = (time.monotonic() - t0) * 1000

        document = result.document
        text = document.text or ""
        if not text.strip():
            logger.warning("DocumentAI | no text extracted uri=%s", uri)
            raise OCRError(OCRFailure.NO_TEXT, "No text could be extracted from the document")

        extraction = ExtractionResult(
            text=text,
            pages=len(document.pages),
            entities=extract_entities(document),
            confidence=compute_confidence(document),
            metadata={
                "processor":  self._processor_name,
                "mimeType":   mime,
                "sourceUri":  uri,
                "elapsedMs":  round(elapsed_ms, 1),
            },
        )
        logger.info(
            "DocumentAI | pages=%d chars=%d entities=%d confidence=%.3f elapsed_ms=%.0f",
            extraction.pages, len(text), len(extraction.entities),
            extraction.confidence, elapsed_ms,
        )
        return extraction
