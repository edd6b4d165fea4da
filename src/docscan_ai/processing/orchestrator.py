"""
LangGraph-based processing orchestrator.

Drives one document through OCR and optional translation:

    Pending -> Queued -> OcrInProgress -> OcrComplete
            -> TranslationInProgress -> TranslationComplete -> Complete

Every graph node performs at most one status transition and persists it
before the next node runs, so the stored status always reflects durable
forward progress. Transient failures re-enter the stage with another
credential up to a bounded number of retries; cancellation is cooperative and
takes effect at the next transition boundary.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from typing import Any, TypedDict

from langgraph.graph import END, StateGraph

from docscan_ai.cache.translation_cache import TranslationCache
from docscan_ai.exceptions import CacheUnavailableError, InvalidTransitionError, PersistenceError
from docscan_ai.ocr.base import ImageHandle
from docscan_ai.processing.base import StatusStore
from docscan_ai.processing.executor import StageExecutor, StageOutcome
from docscan_ai.processing.status import ProcessingStatus, validate_transition

DEFAULT_MAX_RETRIES = 3

INTERRUPTED_DETAIL = "interrupted before completion"
CANCELLED_DETAIL = "cancelled by request"
CACHE_HIT_DETAIL = "served from cache"
EMPTY_TEXT_DETAIL = "no text to translate"
MISSING_TEXT_DETAIL = "recognized text missing"


class ProcessingState(TypedDict):
    """State carried through the processing graph for one run."""

    document_id: Any
    image: ImageHandle
    translate: bool
    source_language: str
    target_language: str
    ocr_model: str
    translation_model: str

    # Persisted status when the run started
    resume_from: ProcessingStatus

    # Latest persisted status and its detail
    status: ProcessingStatus
    detail: str | None

    text: str | None
    translated_text: str | None

    # Run-local retry bookkeeping
    ocr_attempts: int
    translation_attempts: int
    tried_credentials: list[str]
    retryable: bool


@dataclass
class ProcessingRequest:
    """A request to process one document."""

    document_id: Any
    image: ImageHandle
    translate: bool = True
    source_language: str = "en"
    target_language: str = "ar"
    # Empty means the orchestrator's default model
    ocr_model: str = ""
    translation_model: str = ""


@dataclass(frozen=True)
class Transition:
    """One persisted status change."""

    document_id: Any
    status: ProcessingStatus
    detail: str | None = None


@dataclass(frozen=True)
class _RunFinished:
    error: BaseException | None = None


@dataclass
class ProcessingRun:
    """Handle on an active orchestration run."""

    document_id: Any
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task | None = None
    _subscribers: list[asyncio.Queue] = field(default_factory=list, repr=False)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, item: Transition | _RunFinished) -> None:
        for queue in list(self._subscribers):
            queue.put_nowait(item)

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()

    async def wait(self) -> ProcessingStatus:
        """
        Wait for the run to finish.

        Returns:
            The last persisted status.

        Raises:
            PersistenceError: If a status write failed during the run.
        """
        if self.task is None:
            raise RuntimeError("Run has not been started")
        return await asyncio.shield(self.task)


class ProcessingOrchestrator:
    """
    Runs documents through the processing state machine.

    At most one run is active per document; a second start request joins the
    active run instead of starting a parallel one.
    """

    def __init__(
        self,
        store: StatusStore,
        executor: StageExecutor,
        cache: TranslationCache,
        *,
        default_ocr_model: str,
        default_translation_model: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
        log_callback: Callable[[str, str, dict[str, Any]], None] | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Durable status and text storage.
            executor: Performs single OCR/translation attempts.
            cache: Translation cache consulted before every translation call.
            default_ocr_model: OCR model used when a request names none.
            default_translation_model: Translation model used when a request names none.
            max_retries: Retries allowed per stage after the first attempt.
            log_callback: Optional callback accepting (level, message, context).
        """
        self._store = store
        self._executor = executor
        self._cache = cache
        self._default_ocr_model = default_ocr_model
        self._default_translation_model = default_translation_model
        self._max_retries = max_retries
        self._log_callback = log_callback

        self._runs: dict[Any, ProcessingRun] = {}
        self._observers: dict[Any, list[asyncio.Queue]] = {}

        # Two stages of (start, run) per attempt plus queue/recover/finish nodes
        self._recursion_limit = 4 * (max_retries + 1) + 10
        self._app = self._build_graph().compile()

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def _log(self, level: str, message: str, context: dict[str, Any] | None = None) -> None:
        """Log a message via callback if available."""
        if self._log_callback:
            self._log_callback(level, message, context or {})

    # ==================== Graph ====================

    def _build_graph(self) -> StateGraph:
        """Build the LangGraph workflow."""
        workflow = StateGraph(ProcessingState)

        workflow.add_node("queue", self._node_queue)
        workflow.add_node("recover", self._node_recover)
        workflow.add_node("start_ocr", self._node_start_ocr)
        workflow.add_node("run_ocr", self._node_run_ocr)
        workflow.add_node("start_translation", self._node_start_translation)
        workflow.add_node("run_translation", self._node_run_translation)
        workflow.add_node("complete", self._node_complete)
        workflow.add_node("error", self._node_error)
        workflow.add_node("cancelled", self._node_cancelled)

        workflow.set_conditional_entry_point(
            self._route_entry,
            {
                "queue": "queue",
                "recover": "recover",
                "start_ocr": "start_ocr",
                "start_translation": "start_translation",
                "complete": "complete",
                "cancelled": "cancelled",
            },
        )
        workflow.add_conditional_edges(
            "queue",
            self._route_after_queue,
            {"start_ocr": "start_ocr", "cancelled": "cancelled"},
        )
        workflow.add_conditional_edges(
            "recover",
            self._route_after_recover,
            {
                "start_ocr": "start_ocr",
                "start_translation": "start_translation",
                "cancelled": "cancelled",
            },
        )
        workflow.add_conditional_edges(
            "start_ocr",
            self._route_after_start_ocr,
            {"run_ocr": "run_ocr", "cancelled": "cancelled"},
        )
        workflow.add_conditional_edges(
            "run_ocr",
            self._route_after_ocr,
            {
                "start_translation": "start_translation",
                "complete": "complete",
                "start_ocr": "start_ocr",
                "error": "error",
                "cancelled": "cancelled",
                "end": END,
            },
        )
        workflow.add_conditional_edges(
            "start_translation",
            self._route_after_start_translation,
            {"run_translation": "run_translation", "cancelled": "cancelled"},
        )
        workflow.add_conditional_edges(
            "run_translation",
            self._route_after_translation,
            {
                "complete": "complete",
                "start_translation": "start_translation",
                "error": "error",
                "cancelled": "cancelled",
                "end": END,
            },
        )
        workflow.add_edge("complete", END)
        workflow.add_edge("error", END)
        workflow.add_edge("cancelled", END)

        return workflow

    def _cancel_requested(self, state: ProcessingState) -> bool:
        run = self._runs.get(state["document_id"])
        return run is not None and run.cancel_requested

    def _route_entry(self, state: ProcessingState) -> str:
        """Pick up where the persisted status left off."""
        if self._cancel_requested(state):
            return "cancelled"

        status = state["resume_from"]
        if status == ProcessingStatus.PENDING:
            return "queue"
        if status in (ProcessingStatus.OCR_IN_PROGRESS, ProcessingStatus.TRANSLATION_IN_PROGRESS):
            return "recover"
        if status in (ProcessingStatus.QUEUED, ProcessingStatus.OCR_FAILED):
            return "start_ocr"
        if status == ProcessingStatus.OCR_COMPLETE:
            return "start_translation" if state["translate"] else "complete"
        if status == ProcessingStatus.TRANSLATION_FAILED:
            return "start_translation"
        return "complete"

    def _route_after_queue(self, state: ProcessingState) -> str:
        return "cancelled" if self._cancel_requested(state) else "start_ocr"

    def _route_after_recover(self, state: ProcessingState) -> str:
        if self._cancel_requested(state):
            return "cancelled"
        if state["status"] == ProcessingStatus.TRANSLATION_FAILED:
            return "start_translation"
        return "start_ocr"

    def _route_after_start_ocr(self, state: ProcessingState) -> str:
        return "cancelled" if self._cancel_requested(state) else "run_ocr"

    def _route_after_start_translation(self, state: ProcessingState) -> str:
        return "cancelled" if self._cancel_requested(state) else "run_translation"

    def _route_after_failure(self, state: ProcessingState, attempts: int, retry_node: str) -> str:
        if not state["retryable"]:
            return "end"
        if attempts <= self._max_retries:
            return retry_node
        return "error"

    def _route_after_ocr(self, state: ProcessingState) -> str:
        if self._cancel_requested(state):
            return "cancelled"
        if state["status"] == ProcessingStatus.OCR_COMPLETE:
            return "start_translation" if state["translate"] else "complete"
        return self._route_after_failure(state, state["ocr_attempts"], "start_ocr")

    def _route_after_translation(self, state: ProcessingState) -> str:
        if self._cancel_requested(state):
            return "cancelled"
        if state["status"] == ProcessingStatus.TRANSLATION_COMPLETE:
            return "complete"
        return self._route_after_failure(
            state, state["translation_attempts"], "start_translation"
        )

    # ==================== Persistence ====================

    def _persist(self, document_id: Any, action: Callable[[], None]) -> None:
        try:
            action()
        except Exception as e:
            raise PersistenceError(document_id, f"{type(e).__name__}: {e}") from e

    def _transition(
        self,
        state: ProcessingState,
        target: ProcessingStatus,
        detail: str | None = None,
    ) -> dict[str, Any]:
        """Validate, persist and log one status change."""
        document_id = state["document_id"]
        validate_transition(state["status"], target)
        self._persist(document_id, lambda: self._store.save_status(document_id, target, detail))

        self._log(
            "INFO",
            f"{state['status'].value} -> {target.value}" + (f" ({detail})" if detail else ""),
            {"document_id": document_id, "status": target.value},
        )
        return {"status": target, "detail": detail}

    # ==================== Nodes ====================

    async def _node_queue(self, state: ProcessingState) -> dict[str, Any]:
        return self._transition(state, ProcessingStatus.QUEUED)

    async def _node_recover(self, state: ProcessingState) -> dict[str, Any]:
        """Close out a stage left in progress by an interrupted process."""
        if state["status"] == ProcessingStatus.TRANSLATION_IN_PROGRESS:
            target = ProcessingStatus.TRANSLATION_FAILED
        else:
            target = ProcessingStatus.OCR_FAILED
        return self._transition(state, target, INTERRUPTED_DETAIL)

    async def _node_start_ocr(self, state: ProcessingState) -> dict[str, Any]:
        update = self._transition(state, ProcessingStatus.OCR_IN_PROGRESS)
        return {**update, "ocr_attempts": state["ocr_attempts"] + 1}

    async def _node_run_ocr(self, state: ProcessingState) -> dict[str, Any]:
        document_id = state["document_id"]
        outcome = await self._executor.run_ocr(
            state["image"],
            model=state["ocr_model"],
            exclude=state["tried_credentials"],
        )

        if self._cancel_requested(state):
            return {}

        if outcome.ok:
            text = (outcome.value or "").strip()
            self._persist(document_id, lambda: self._store.save_recognized_text(document_id, text))
            update = self._transition(state, ProcessingStatus.OCR_COMPLETE)
            return {**update, "text": text, "tried_credentials": []}

        return self._failed(state, ProcessingStatus.OCR_FAILED, outcome)

    async def _node_start_translation(self, state: ProcessingState) -> dict[str, Any]:
        update = self._transition(state, ProcessingStatus.TRANSLATION_IN_PROGRESS)
        return {**update, "translation_attempts": state["translation_attempts"] + 1}

    async def _node_run_translation(self, state: ProcessingState) -> dict[str, Any]:
        document_id = state["document_id"]
        text = state["text"]
        source = state["source_language"]
        target = state["target_language"]
        model = state["translation_model"]

        if text is None:
            update = self._transition(
                state, ProcessingStatus.TRANSLATION_FAILED, MISSING_TEXT_DETAIL
            )
            return {**update, "retryable": False}

        if not text.strip():
            return self._translated(state, "", EMPTY_TEXT_DETAIL)

        cached = await self._cache_lookup(document_id, text, source, target, model)
        if cached is not None:
            return self._translated(state, cached, CACHE_HIT_DETAIL)

        outcome = await self._executor.run_translation(
            text, source, target, model, exclude=state["tried_credentials"]
        )

        if self._cancel_requested(state):
            return {}

        if not outcome.ok:
            return self._failed(state, ProcessingStatus.TRANSLATION_FAILED, outcome)

        translated = outcome.value or ""
        await self._cache_store(document_id, text, translated, source, target, model)
        return self._translated(state, translated)

    async def _node_complete(self, state: ProcessingState) -> dict[str, Any]:
        return self._transition(state, ProcessingStatus.COMPLETE)

    async def _node_error(self, state: ProcessingState) -> dict[str, Any]:
        reason = state["detail"] or "processing failed"
        return self._transition(
            state,
            ProcessingStatus.ERROR,
            f"{reason}; gave up after {self._max_retries} retries",
        )

    async def _node_cancelled(self, state: ProcessingState) -> dict[str, Any]:
        return self._transition(state, ProcessingStatus.CANCELLED, CANCELLED_DETAIL)

    def _failed(
        self,
        state: ProcessingState,
        target: ProcessingStatus,
        outcome: StageOutcome[str],
    ) -> dict[str, Any]:
        update = self._transition(state, target, outcome.reason)
        tried = list(state["tried_credentials"])
        if outcome.credential_id and outcome.credential_id not in tried:
            tried.append(outcome.credential_id)
        return {**update, "retryable": outcome.retryable, "tried_credentials": tried}

    def _translated(
        self, state: ProcessingState, translated: str, detail: str | None = None
    ) -> dict[str, Any]:
        document_id = state["document_id"]
        self._persist(
            document_id, lambda: self._store.save_translated_text(document_id, translated)
        )
        update = self._transition(state, ProcessingStatus.TRANSLATION_COMPLETE, detail)
        return {**update, "translated_text": translated, "tried_credentials": []}

    async def _cache_lookup(
        self, document_id: Any, text: str, source: str, target: str, model: str
    ) -> str | None:
        try:
            entry = await self._cache.lookup(text, source, target, model)
        except CacheUnavailableError as e:
            self._log("WARNING", f"Cache lookup failed: {e}", {"document_id": document_id})
            return None
        return entry.translated_text if entry else None

    async def _cache_store(
        self,
        document_id: Any,
        text: str,
        translated: str,
        source: str,
        target: str,
        model: str,
    ) -> None:
        try:
            await self._cache.remember(text, translated, source, target, model)
        except CacheUnavailableError as e:
            self._log("WARNING", f"Cache write failed: {e}", {"document_id": document_id})

    # ==================== Runs ====================

    def active_run(self, document_id: Any) -> ProcessingRun | None:
        return self._runs.get(document_id)

    def start(self, request: ProcessingRequest) -> ProcessingRun:
        """
        Start processing a document, or join its active run.

        Must be called from a running event loop.

        Args:
            request: What to process and how.

        Returns:
            The active run for the document.

        Raises:
            DocumentNotFoundError: If the document does not exist.
            InvalidTransitionError: If the document is already terminal.
        """
        existing = self._runs.get(request.document_id)
        if existing is not None:
            return existing

        status = self._store.load_status(request.document_id)
        if status.is_terminal:
            raise InvalidTransitionError(status, ProcessingStatus.QUEUED)

        text, translated = self._store.load_text(request.document_id)
        initial_state: ProcessingState = {
            "document_id": request.document_id,
            "image": request.image,
            "translate": request.translate,
            "source_language": request.source_language,
            "target_language": request.target_language,
            "ocr_model": request.ocr_model or self._default_ocr_model,
            "translation_model": request.translation_model or self._default_translation_model,
            "resume_from": status,
            "status": status,
            "detail": None,
            "text": text,
            "translated_text": translated,
            "ocr_attempts": 0,
            "translation_attempts": 0,
            "tried_credentials": [],
            "retryable": False,
        }

        if status != ProcessingStatus.PENDING:
            self._log(
                "INFO",
                f"Resuming from {status.value}",
                {"document_id": request.document_id},
            )

        run = ProcessingRun(document_id=request.document_id)
        self._runs[request.document_id] = run
        run.task = asyncio.create_task(self._drive(run, initial_state))
        return run

    async def _drive(self, run: ProcessingRun, initial_state: ProcessingState) -> ProcessingStatus:
        """Execute the graph for one run and fan out its transitions."""
        final_status = initial_state["status"]
        error: BaseException | None = None

        try:
            async for update in self._app.astream(
                initial_state,
                config={"recursion_limit": self._recursion_limit},
                stream_mode="updates",
            ):
                for _node_name, delta in update.items():
                    if delta and "status" in delta:
                        final_status = delta["status"]
                        transition = Transition(
                            run.document_id, delta["status"], delta.get("detail")
                        )
                        self._publish(transition)
                        run.publish(transition)

            # Cancelled after the graph's last checkpoint but before it ended
            if run.cancel_requested and not final_status.is_terminal:
                transition = self._mark_cancelled(run.document_id, final_status)
                run.publish(transition)
                final_status = transition.status
            return final_status

        except Exception as e:
            error = e
            self._log(
                "ERROR",
                f"Processing aborted: {e}",
                {"document_id": run.document_id, "error_type": type(e).__name__},
            )
            raise

        finally:
            if self._runs.get(run.document_id) is run:
                del self._runs[run.document_id]
            if error is not None:
                self._publish(_RunFinished(error), run.document_id)
            run.publish(_RunFinished(error))

    async def process(self, request: ProcessingRequest) -> AsyncIterator[Transition]:
        """
        Start (or join) a run and yield its transitions until it finishes.

        A run finishes in a terminal status, or in OcrFailed/TranslationFailed
        when the failure cannot be fixed by retrying.

        Raises:
            PersistenceError: If a status write failed.
            InvalidTransitionError: If the document is already terminal.
        """
        run = self.start(request)
        queue = run.subscribe()
        try:
            while True:
                item = await queue.get()
                if isinstance(item, _RunFinished):
                    # Re-raises the run's error, if any
                    await run.wait()
                    return
                yield item
        finally:
            run.unsubscribe(queue)

    async def observe(self, document_id: Any) -> AsyncIterator[Transition]:
        """
        Yield the current status, then every later transition until terminal.

        History before the current status is not replayed. Observation spans
        runs, so a document that fails and is restarted keeps streaming.

        Raises:
            DocumentNotFoundError: If the document does not exist.
            PersistenceError: If an active run failed to write its status.
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._observers.setdefault(document_id, []).append(queue)
        try:
            status = self._store.load_status(document_id)
            yield Transition(document_id, status)
            if status.is_terminal:
                return

            while True:
                item = await queue.get()
                if isinstance(item, _RunFinished):
                    if item.error is not None:
                        raise item.error
                    continue
                yield item
                if item.status.is_terminal:
                    return
        finally:
            observers = self._observers.get(document_id, [])
            if queue in observers:
                observers.remove(queue)
            if not observers:
                self._observers.pop(document_id, None)

    def _publish(self, item: Transition | _RunFinished, document_id: Any = None) -> None:
        key = item.document_id if isinstance(item, Transition) else document_id
        for queue in list(self._observers.get(key, [])):
            queue.put_nowait(item)

    def cancel(self, document_id: Any) -> bool:
        """
        Request cancellation of a document.

        With an active run the request is picked up at the run's next
        transition boundary. Without one, a non-terminal document is moved to
        Cancelled directly.

        Returns:
            False if the document was already terminal, True otherwise.

        Raises:
            DocumentNotFoundError: If the document does not exist.
            PersistenceError: If the Cancelled status cannot be written.
        """
        # Checked first: an active run may already have persisted its final status
        status = self._store.load_status(document_id)
        if status.is_terminal:
            return False

        run = self._runs.get(document_id)
        if run is not None:
            if not run.cancel_requested:
                self._log("INFO", "Cancellation requested", {"document_id": document_id})
            run.cancel_event.set()
            return True

        self._mark_cancelled(document_id, status)
        return True

    def _mark_cancelled(self, document_id: Any, status: ProcessingStatus) -> Transition:
        """Persist Cancelled for a document no graph node will move again."""
        validate_transition(status, ProcessingStatus.CANCELLED)
        self._persist(
            document_id,
            lambda: self._store.save_status(
                document_id, ProcessingStatus.CANCELLED, CANCELLED_DETAIL
            ),
        )
        self._log(
            "INFO",
            f"{status.value} -> {ProcessingStatus.CANCELLED.value} ({CANCELLED_DETAIL})",
            {"document_id": document_id, "status": ProcessingStatus.CANCELLED.value},
        )
        transition = Transition(document_id, ProcessingStatus.CANCELLED, CANCELLED_DETAIL)
        self._publish(transition)
        return transition
