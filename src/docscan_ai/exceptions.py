"""
Exception hierarchy for docscan-ai.

Provider failures are classified into an ApiErrorKind so callers can decide
between retrying with another credential and giving up.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

EXHAUSTED_REASON = "credentials exhausted"


class ApiErrorKind(str, Enum):
    """Classification of a failed provider call."""

    INVALID_CREDENTIAL = "invalid_credential"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    PERMANENT = "permanent"

    @property
    def is_retryable(self) -> bool:
        """Whether another attempt with a different credential may succeed."""
        return self in (ApiErrorKind.RATE_LIMITED, ApiErrorKind.TRANSIENT)

    @property
    def reason(self) -> str:
        """Human-readable reason shown to users instead of the provider payload."""
        return _REASONS[self]


_REASONS = {
    ApiErrorKind.INVALID_CREDENTIAL: "credential rejected",
    ApiErrorKind.RATE_LIMITED: "rate limited by provider",
    ApiErrorKind.TRANSIENT: "temporary provider failure",
    ApiErrorKind.PERMANENT: "request rejected by provider",
}


class DocScanError(Exception):
    """Base exception for docscan-ai."""


class ApiError(DocScanError):
    """A provider call failed with a classified error."""

    def __init__(
        self,
        kind: ApiErrorKind,
        message: str | None = None,
        *,
        status_code: int | None = None,
    ):
        super().__init__(message or kind.reason)
        self.kind = kind
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"ApiError(kind={self.kind.value!r}, status_code={self.status_code!r})"


class CredentialsExhaustedError(DocScanError):
    """No credential in the pool is currently eligible for a call."""

    def __init__(self, message: str = EXHAUSTED_REASON):
        super().__init__(message)


class CacheUnavailableError(DocScanError):
    """The translation cache could not be read or written."""


class PersistenceError(DocScanError):
    """A document status could not be written durably."""

    def __init__(self, document_id: Any, message: str):
        super().__init__(f"Failed to persist status for document {document_id}: {message}")
        self.document_id = document_id


class InvalidTransitionError(DocScanError):
    """A status change that is not an edge of the processing state machine."""

    def __init__(self, current: Any, target: Any):
        current_name = getattr(current, "value", current)
        target_name = getattr(target, "value", target)
        super().__init__(f"Invalid status transition: {current_name} -> {target_name}")
        self.current = current
        self.target = target


class DocumentNotFoundError(DocScanError):
    """The requested document does not exist in the catalog."""

    def __init__(self, document_id: Any):
        super().__init__(f"Document {document_id} not found")
        self.document_id = document_id
