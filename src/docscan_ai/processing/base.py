"""
Persistence interface for document processing state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from docscan_ai.processing.status import ProcessingStatus


class StatusStore(ABC):
    """
    Durable storage for a document's status and intermediate text.

    Writes must be durable when the call returns; the orchestrator does not
    move on to the next transition until then.
    """

    @abstractmethod
    def load_status(self, document_id: Any) -> ProcessingStatus:
        """
        Return the persisted status of a document.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        ...

    @abstractmethod
    def save_status(
        self, document_id: Any, status: ProcessingStatus, detail: str | None = None
    ) -> None:
        """Persist a new status with an optional human-readable detail."""
        ...

    @abstractmethod
    def load_text(self, document_id: Any) -> tuple[str | None, str | None]:
        """Return (recognized text, translated text) stored for a document."""
        ...

    @abstractmethod
    def save_recognized_text(self, document_id: Any, text: str) -> None: ...

    @abstractmethod
    def save_translated_text(self, document_id: Any, text: str) -> None: ...
