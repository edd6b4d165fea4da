import asyncio
from pathlib import Path
from typing import Any

import pytest

from docscan_ai import pipeline as pipeline_module
from docscan_ai.config import Settings
from docscan_ai.database import Database, Document
from docscan_ai.exceptions import ApiError, ApiErrorKind
from docscan_ai.llm.base import LLMProvider, LLMResponse
from docscan_ai.pipeline import DocumentPipeline
from docscan_ai.processing.status import ProcessingStatus

SECRET = "sk-pipeline-secret-0001"


class FakeProvider(LLMProvider):
    """Answers OCR calls with page text and translation calls with a fixed string."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail_with: ApiError | None = None
        # When set, OCR calls block until the event is set
        self.gate: asyncio.Event | None = None
        self.entered: asyncio.Event | None = None

    @property
    def name(self) -> str:
        return "fake"

    async def complete(self, messages, *, credential, model, **kwargs: Any) -> LLMResponse:
        if self.fail_with is not None:
            raise self.fail_with
        is_ocr = isinstance(messages[0]["content"], list)
        self.calls.append(("ocr" if is_ocr else "translate", model))
        if is_ocr and self.gate is not None:
            self.entered.set()
            await self.gate.wait()
        return LLMResponse(content="page text" if is_ocr else "نص الصفحة", model=model)


@pytest.fixture()
def provider(monkeypatch: pytest.MonkeyPatch) -> FakeProvider:
    fake = FakeProvider()
    monkeypatch.setattr(pipeline_module, "create_llm_provider", lambda *a, **kw: fake)
    return fake


@pytest.fixture()
def db(tmp_path: Path):
    database = Database(tmp_path / "pipeline.duckdb")
    yield database
    database.close()


def _settings(**overrides: Any) -> Settings:
    return Settings(credentials={"api_keys": [{"key": SECRET, "label": "main"}]}, **overrides)


def _document(
    db: Database, tmp_path: Path, translate: bool = True, name: str = "page.png"
) -> Document:
    image = tmp_path / name
    image.write_bytes(b"\x89PNG")
    doc_id = db.add_document(
        Document(file_name=image.name, image_path=str(image), translate=translate)
    )
    return db.get_document(doc_id)


class TestDocumentPipeline:
    def test_processes_document_end_to_end(
        self, db: Database, tmp_path: Path, provider: FakeProvider
    ) -> None:
        doc = _document(db, tmp_path)
        pipeline = DocumentPipeline(db, _settings())
        seen: list[ProcessingStatus] = []

        final = asyncio.run(pipeline.process_document(doc, lambda t: seen.append(t.status)))

        assert final == ProcessingStatus.COMPLETE
        assert seen[-1] == ProcessingStatus.COMPLETE
        stored = db.get_document(doc.id)
        assert stored.recognized_text == "page text"
        assert stored.translated_text == "نص الصفحة"
        assert db.count_cache_entries() == 1
        assert [kind for kind, _ in provider.calls] == ["ocr", "translate"]

    def test_second_document_with_same_text_hits_cache(
        self, db: Database, tmp_path: Path, provider: FakeProvider
    ) -> None:
        pipeline = DocumentPipeline(db, _settings())
        first = _document(db, tmp_path)
        asyncio.run(pipeline.process_document(first))

        other = tmp_path / "copy.png"
        other.write_bytes(b"\x89PNG")
        second_id = db.add_document(Document(file_name="copy.png", image_path=str(other)))
        second = db.get_document(second_id)
        asyncio.run(pipeline.process_document(second))

        assert [kind for kind, _ in provider.calls] == ["ocr", "translate", "ocr"]
        assert db.get_document(second.id).status_detail is None
        assert any("served from cache" in e["message"] for e in db.get_logs(stage="orchestrator"))

    def test_ocr_only_documents(
        self, db: Database, tmp_path: Path, provider: FakeProvider
    ) -> None:
        doc = _document(db, tmp_path, translate=False)

        final = asyncio.run(DocumentPipeline(db, _settings()).process_document(doc))

        assert final == ProcessingStatus.COMPLETE
        assert db.get_document(doc.id).translated_text is None

    def test_requested_models_are_used(
        self, db: Database, tmp_path: Path, provider: FakeProvider
    ) -> None:
        doc = _document(db, tmp_path)
        pipeline = DocumentPipeline(db, _settings())

        asyncio.run(
            pipeline.process_document(
                doc,
                ocr_model="deepseek-ai/DeepSeek-OCR",
                translation_model="google/gemini-2.5-pro",
            )
        )

        assert provider.calls == [
            ("ocr", "deepseek-ai/DeepSeek-OCR"),
            ("translate", "google/gemini-2.5-pro"),
        ]

    def test_unknown_model_is_rejected(
        self, db: Database, tmp_path: Path, provider: FakeProvider
    ) -> None:
        doc = _document(db, tmp_path)

        with pytest.raises(ValueError, match="Unknown model"):
            DocumentPipeline(db, _settings()).request_for(doc, ocr_model="made-up")

    def test_invalid_key_is_deactivated_without_logging_it(
        self, db: Database, tmp_path: Path, provider: FakeProvider
    ) -> None:
        provider.fail_with = ApiError(ApiErrorKind.INVALID_CREDENTIAL, status_code=401)
        doc = _document(db, tmp_path)
        pipeline = DocumentPipeline(db, _settings(logging={"level": "DEBUG"}))

        final = asyncio.run(pipeline.process_document(doc))

        assert final == ProcessingStatus.OCR_FAILED
        assert pipeline.pool.healthy_count() == 0
        logs = db.get_logs(limit=1000)
        assert logs
        assert SECRET not in repr(logs)
        rows = db.conn.execute("SELECT * FROM credential_health").fetchall()
        assert SECRET not in repr(rows)
        assert rows[0][-1] is False

    def test_stopped_batch_cancels_running_and_skips_waiting_documents(
        self, db: Database, tmp_path: Path, provider: FakeProvider
    ) -> None:
        docs = [_document(db, tmp_path, name=f"page-{i}.png") for i in range(3)]
        pipeline = DocumentPipeline(db, _settings())

        async def scenario():
            provider.gate = asyncio.Event()
            provider.entered = asyncio.Event()
            slots = asyncio.Semaphore(1)
            batch = asyncio.gather(*(pipeline.process_in_batch(d, slots) for d in docs))
            await provider.entered.wait()

            assert pipeline.stop_batch(docs) == 1
            provider.gate.set()
            return await batch

        results = asyncio.run(scenario())

        assert results == [
            ProcessingStatus.CANCELLED,
            ProcessingStatus.PENDING,
            ProcessingStatus.PENDING,
        ]
        assert provider.calls == [("ocr", "google/gemini-2.5-flash")]
        assert [db.get_document(d.id).status for d in docs] == results
        skipped = [e for e in db.get_logs(stage="pipeline") if "batch was stopped" in e["message"]]
        assert len(skipped) == 2

    def test_close_releases_provider(self, db: Database, provider: FakeProvider) -> None:
        asyncio.run(DocumentPipeline(db, _settings()).close())
