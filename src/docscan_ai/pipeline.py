"""
Component wiring for docscan-ai.

Builds the credential pool, translation cache, providers and orchestrator
from Settings and exposes document-level entry points for the CLI.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from pathlib import Path

from rich.console import Console

from docscan_ai.activity import make_log_callback
from docscan_ai.cache import TranslationCache
from docscan_ai.config import Settings
from docscan_ai.credentials import CredentialPool
from docscan_ai.credentials.store import DatabaseCredentialStore
from docscan_ai.database import Database, Document
from docscan_ai.llm import create_llm_provider
from docscan_ai.ocr import VisionOCR
from docscan_ai.ocr.vision import DEFAULT_OCR_PROMPT
from docscan_ai.processing import (
    ProcessingOrchestrator,
    ProcessingRequest,
    ProcessingStatus,
    StageExecutor,
    Transition,
)
from docscan_ai.translation import Translator

TransitionCallback = Callable[[Transition], None] | None


class DocumentPipeline:
    """
    Processes catalogued documents with the configured providers.

    One pipeline is shared by every document processed in a CLI invocation,
    so they draw from the same credential pool and cache.
    """

    def __init__(
        self,
        db: Database,
        settings: Settings,
        console: Console | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            db: Database instance.
            settings: Loaded settings.
            console: Echo log entries here when logging.console is enabled.
        """
        self.db = db
        self.settings = settings
        self._console = console if settings.logging.console else None
        # Set by stop_batch; documents still waiting for a slot are skipped
        self._stopped = False

        self._init_components()
        self._log = self._log_callback("pipeline")

    def _log_callback(self, stage: str):
        return make_log_callback(
            self.db, stage, level=self.settings.logging.level, console=self._console
        )

    def _init_components(self) -> None:
        """Initialize pipeline components."""
        settings = self.settings

        self.pool = CredentialPool(
            DatabaseCredentialStore(self.db, settings.credentials.api_keys),
            max_errors=settings.credentials.max_errors,
            cooldown=settings.credentials.cooldown,
            log_callback=self._log_callback("credentials"),
        )

        self.cache = TranslationCache(
            self.db,
            ttl=settings.cache.ttl,
            max_entries=settings.cache.max_entries,
            aggressive_ttl=settings.cache.aggressive_ttl,
            cleanup_fraction=settings.cache.cleanup_fraction,
            log_callback=self._log_callback("cache"),
        )

        self.provider = create_llm_provider(
            settings.provider.type,
            base_url=settings.provider.base_url,
            timeout=settings.provider.timeout_seconds,
        )

        self.ocr = VisionOCR(
            self.provider,
            prompt=settings.provider.ocr_prompt or DEFAULT_OCR_PROMPT,
            max_tokens=settings.provider.ocr_max_tokens,
        )
        self.translator = Translator(
            self.provider,
            temperature=settings.provider.temperature,
            max_tokens=settings.provider.max_tokens,
        )

        self.executor = StageExecutor(
            self.pool,
            self.ocr,
            self.translator,
            call_timeout=settings.processing.call_timeout_seconds,
            log_callback=self._log_callback("executor"),
        )

        self.orchestrator = ProcessingOrchestrator(
            self.db,
            self.executor,
            self.cache,
            default_ocr_model=settings.models.default_ocr_model,
            default_translation_model=settings.models.default_translation_model,
            max_retries=settings.processing.max_retries,
            log_callback=self._log_callback("orchestrator"),
        )

    def request_for(
        self,
        doc: Document,
        ocr_model: str | None = None,
        translation_model: str | None = None,
    ) -> ProcessingRequest:
        """
        Build a processing request for a catalogued document.

        Raises:
            ValueError: If a model is not in the configured model list.
        """
        models = self.settings.models
        return ProcessingRequest(
            document_id=doc.id,
            image=Path(doc.image_path),
            translate=doc.translate,
            source_language=doc.source_language,
            target_language=doc.target_language,
            ocr_model=models.resolve(ocr_model, models.default_ocr_model),
            translation_model=models.resolve(translation_model, models.default_translation_model),
        )

    async def process_document(
        self,
        doc: Document,
        on_transition: TransitionCallback = None,
        ocr_model: str | None = None,
        translation_model: str | None = None,
    ) -> ProcessingStatus:
        """
        Run one document until it finishes or stops in a failed stage.

        Returns:
            The last status the run persisted.
        """
        request = self.request_for(doc, ocr_model, translation_model)
        status = doc.status
        async for transition in self.orchestrator.process(request):
            status = transition.status
            if on_transition:
                on_transition(transition)
        return status

    async def process_in_batch(
        self,
        doc: Document,
        slots: asyncio.Semaphore,
        on_transition: TransitionCallback = None,
        ocr_model: str | None = None,
        translation_model: str | None = None,
    ) -> ProcessingStatus:
        """
        Wait for a free slot, then process the document.

        Once the batch is stopped, documents that had not started yet are
        left untouched so a later run can pick them up.

        Returns:
            The last persisted status.
        """
        async with slots:
            if self._stopped:
                self._log("INFO", "Skipped, batch was stopped", {"document_id": doc.id})
                return self.db.load_status(doc.id)
            return await self.process_document(doc, on_transition, ocr_model, translation_model)

    def stop_batch(self, documents: Iterable[Document]) -> int:
        """
        Stop a batch: cancel running documents and skip the ones still waiting.

        Returns:
            Number of running documents asked to cancel.
        """
        self._stopped = True
        cancelled = 0
        for doc in documents:
            if self.orchestrator.active_run(doc.id) is not None:
                if self.orchestrator.cancel(doc.id):
                    cancelled += 1
        return cancelled

    async def close(self) -> None:
        """Release provider connections."""
        await self.provider.close()
