"""
Service container — the process-wide handles to external services.

Initialization order (each step may depend only on earlier ones):

  1. settings
  2. database engine + session factory
  3. object storage
  4. identity (Firebase token verifier + JWKS cache)
  5. OCR (Document AI extractor)
  6. generative AI (Gemini gateway)

``startup()`` is idempotent: the lifespan calls it once, and a second call
(tests, reload) is a no-op. Nothing here opens a network connection —
the engine connects lazily, and the Document AI / Gemini clients are built
on first use — so startup cannot fail on a cloud outage.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from legallens.auth.token import FirebaseTokenVerifier
from legallens.core.config import Settings
from legallens.db.session import build_engine, build_sessionmaker
from legallens.llm.gateway import GeminiGateway
from legallens.processing.ocr import DocumentAIExtractor
from legallens.storage.gcs import ObjectStorageService

logger = logging.getLogger(__name__)


class ServiceContainer:

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.started = False
        self.engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None
        self._storage: ObjectStorageService | None = None
        self._verifier: FirebaseTokenVerifier | None = None
        self._extractor: DocumentAIExtractor | None = None
        self._gateway: GeminiGateway | None = None

    async def startup(self) -> None:
        if self.started:
            return

        self.engine = build_engine(self.settings)
        self._sessionmaker = build_sessionmaker(self.engine)
        self._storage = ObjectStorageService.from_settings(self.settings)
        self._verifier = FirebaseTokenVerifier.from_settings(self.settings)
        self._extractor = DocumentAIExtractor.from_settings(self.settings)
        self._gateway = GeminiGateway.from_settings(self.settings)

        self.started = True
        logger.info(
            "Services ready | bucket=%s processor=%s model=%s project=%s",
            self.settings.gcs_bucket,
            self.settings.document_ai_processor_id or "-",
            self.settings.gemini_model,
            self.settings.firebase_project_id or "-",
        )

    async def shutdown(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
        self.started = False
        logger.info("Services stopped")

    # ------------------------------------------------------------------
    # Accessors: fail loudly if a request arrives before startup
    # ------------------------------------------------------------------

    def _require(self, handle, name: str):
        if handle is None:
            raise RuntimeError(f"ServiceContainer not started: {name} unavailable")
        return handle

    @property
    def sessionmaker(self) -> async_sessionmaker[AsyncSession]:
        return self._require(self._sessionmaker, "database")

    @property
    def storage(self) -> ObjectStorageService:
        return self._require(self._storage, "storage")

    @property
    def verifier(self) -> FirebaseTokenVerifier:
        return self._require(self._verifier, "identity")

    @property
    def extractor(self) -> DocumentAIExtractor:
        return self._require(self._extractor, "ocr")

    @property
    def gateway(self) -> GeminiGateway:
        return self._require(self._gateway, "gemini")
