import asyncio
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from docscan_ai.cache.base import CacheEntry, CacheStats, CacheStore
from docscan_ai.cache.translation_cache import TranslationCache
from docscan_ai.credentials.base import CredentialEntry, CredentialStore
from docscan_ai.credentials.pool import CredentialPool
from docscan_ai.exceptions import DocumentNotFoundError
from docscan_ai.ocr.base import ImageHandle, OCRProvider, OCRResult
from docscan_ai.processing.base import StatusStore
from docscan_ai.processing.executor import StageExecutor
from docscan_ai.processing.orchestrator import ProcessingOrchestrator
from docscan_ai.processing.status import ProcessingStatus

START = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class LogRecorder:
    """Collects (level, message, context) log callback invocations."""

    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict[str, Any]]] = []

    def __call__(self, level: str, message: str, context: dict[str, Any]) -> None:
        self.records.append((level, message, context))

    def messages(self, level: str | None = None) -> list[str]:
        return [m for lvl, m, _ in self.records if level is None or lvl == level]

    def text(self) -> str:
        return "\n".join(f"{m} {c}" for _, m, c in self.records)


def make_entry(cid: str, secret: str | None = None, **kwargs: Any) -> CredentialEntry:
    return CredentialEntry(
        id=cid,
        secret=secret or f"sk-secret-value-{cid}",
        label=kwargs.pop("label", cid),
        created_at=kwargs.pop("created_at", START),
        **kwargs,
    )


class MemoryCredentialStore(CredentialStore):
    def __init__(self, entries: Sequence[CredentialEntry] = ()) -> None:
        self.entries = {e.id: e for e in entries}
        self.persisted: list[CredentialEntry] = []
        self.fail_persist = False

    def list_credentials(self) -> list[CredentialEntry]:
        return list(self.entries.values())

    def persist_credential(self, entry: CredentialEntry) -> None:
        if self.fail_persist:
            raise OSError("disk full")
        self.entries[entry.id] = entry
        self.persisted.append(entry)


class MemoryStatusStore(StatusStore):
    def __init__(self) -> None:
        self.docs: dict[Any, dict[str, Any]] = {}
        self.history: dict[Any, list[ProcessingStatus]] = {}
        # Raise when asked to persist this status
        self.fail_on: ProcessingStatus | None = None

    def add(
        self,
        document_id: Any,
        status: ProcessingStatus = ProcessingStatus.PENDING,
        text: str | None = None,
        translated: str | None = None,
    ) -> None:
        self.docs[document_id] = {
            "status": status,
            "detail": None,
            "text": text,
            "translated": translated,
        }
        self.history[document_id] = []

    def _doc(self, document_id: Any) -> dict[str, Any]:
        if document_id not in self.docs:
            raise DocumentNotFoundError(document_id)
        return self.docs[document_id]

    def load_status(self, document_id: Any) -> ProcessingStatus:
        return self._doc(document_id)["status"]

    def save_status(
        self, document_id: Any, status: ProcessingStatus, detail: str | None = None
    ) -> None:
        if status == self.fail_on:
            raise OSError("write failed")
        doc = self._doc(document_id)
        doc["status"] = status
        doc["detail"] = detail
        self.history[document_id].append(status)

    def load_text(self, document_id: Any) -> tuple[str | None, str | None]:
        doc = self._doc(document_id)
        return doc["text"], doc["translated"]

    def save_recognized_text(self, document_id: Any, text: str) -> None:
        self._doc(document_id)["text"] = text

    def save_translated_text(self, document_id: Any, text: str) -> None:
        self._doc(document_id)["translated"] = text

    def status(self, document_id: Any) -> ProcessingStatus:
        return self.docs[document_id]["status"]

    def detail(self, document_id: Any) -> str | None:
        return self.docs[document_id]["detail"]


class MemoryCacheStore(CacheStore):
    def __init__(self) -> None:
        self.entries: dict[str, CacheEntry] = {}
        self.fail_reads = False
        self.fail_writes = False

    def load_cache_entry(self, key: str) -> CacheEntry | None:
        if self.fail_reads:
            raise OSError("cache read failed")
        return self.entries.get(key)

    def save_cache_entry(self, entry: CacheEntry) -> None:
        if self.fail_writes:
            raise OSError("cache write failed")
        self.entries[entry.key] = entry

    def sweep_expired_cache_entries(self, ttl: timedelta, now: datetime) -> int:
        expired = [k for k, e in self.entries.items() if e.created_at < now - ttl]
        for key in expired:
            del self.entries[key]
        return len(expired)

    def count_cache_entries(self) -> int:
        return len(self.entries)

    def delete_oldest_cache_entries(self, count: int) -> int:
        oldest = sorted(self.entries.values(), key=lambda e: e.created_at)[:count]
        for entry in oldest:
            del self.entries[entry.key]
        return len(oldest)

    def cache_stats(self) -> CacheStats:
        entries = list(self.entries.values())
        return CacheStats(
            total_entries=len(entries),
            total_original_chars=sum(len(e.original_text) for e in entries),
            total_translated_chars=sum(len(e.translated_text) for e in entries),
            oldest_entry=min((e.created_at for e in entries), default=None),
            newest_entry=max((e.created_at for e in entries), default=None),
        )

    def clear_cache(self) -> int:
        count = len(self.entries)
        self.entries.clear()
        return count


class ScriptedOCR(OCRProvider):
    """
    OCR provider that plays back scripted results.

    Each script item is a string (recognized text) or an exception to raise.
    The last item repeats once the script runs out.
    """

    def __init__(self, *script: str | BaseException) -> None:
        self.script = list(script) or ["recognized text"]
        self.calls: list[str] = []
        # When set, calls block until the event is set
        self.gate: asyncio.Event | None = None
        self.entered: asyncio.Event | None = None

    @property
    def name(self) -> str:
        return "scripted"

    async def extract(
        self, image: ImageHandle, *, credential: CredentialEntry, model: str
    ) -> OCRResult:
        self.calls.append(credential.id)
        if self.entered is not None:
            self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        return OCRResult(content=item, model_used=model)


class ScriptedTranslator:
    """Translator stand-in with the same call signature as Translator."""

    def __init__(self, *script: str | BaseException) -> None:
        self.script = list(script) or ["translated text"]
        self.calls: list[tuple[str, str, str, str, str]] = []

    async def translate(
        self,
        text: str,
        source_lang: str,
        target_lang: str,
        model: str,
        credential: CredentialEntry,
    ) -> str:
        self.calls.append((text, source_lang, target_lang, model, credential.id))
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, BaseException):
            raise item
        return item


class Harness:
    """An orchestrator wired to in-memory fakes."""

    def __init__(
        self,
        *,
        credentials: Sequence[CredentialEntry] | None = None,
        ocr: ScriptedOCR | None = None,
        translator: ScriptedTranslator | None = None,
        max_retries: int = 3,
        clock: FakeClock | None = None,
    ) -> None:
        self.clock = clock or FakeClock()
        self.logs = LogRecorder()
        self.credential_store = MemoryCredentialStore(
            credentials if credentials is not None else [make_entry("k1"), make_entry("k2")]
        )
        self.pool = CredentialPool(self.credential_store, clock=self.clock, log_callback=self.logs)
        self.cache_store = MemoryCacheStore()
        self.cache = TranslationCache(self.cache_store, clock=self.clock, log_callback=self.logs)
        self.ocr = ocr or ScriptedOCR()
        self.translator = translator or ScriptedTranslator()
        self.executor = StageExecutor(
            self.pool, self.ocr, self.translator, log_callback=self.logs  # type: ignore[arg-type]
        )
        self.store = MemoryStatusStore()
        self.orchestrator = ProcessingOrchestrator(
            self.store,
            self.executor,
            self.cache,
            default_ocr_model="ocr-model",
            default_translation_model="translation-model",
            max_retries=max_retries,
            log_callback=self.logs,
        )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def logs() -> LogRecorder:
    return LogRecorder()
