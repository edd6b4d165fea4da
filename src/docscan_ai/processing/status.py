"""
Document processing status and its transition table.

Statuses are persisted as small integers; the mapping below is part of the
storage format and existing values must never be reassigned.
"""

from __future__ import annotations

from enum import Enum

from docscan_ai.exceptions import InvalidTransitionError


class ProcessingStatus(str, Enum):
    """Where a document is in its OCR/translation lifecycle."""

    PENDING = "pending"
    QUEUED = "queued"
    OCR_IN_PROGRESS = "ocr_in_progress"
    OCR_COMPLETE = "ocr_complete"
    OCR_FAILED = "ocr_failed"
    TRANSLATION_IN_PROGRESS = "translation_in_progress"
    TRANSLATION_COMPLETE = "translation_complete"
    TRANSLATION_FAILED = "translation_failed"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERROR = "error"

    @property
    def code(self) -> int:
        """Stable integer used for persistence."""
        return _STATUS_CODES[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_in_progress(self) -> bool:
        return self in (
            ProcessingStatus.QUEUED,
            ProcessingStatus.OCR_IN_PROGRESS,
            ProcessingStatus.TRANSLATION_IN_PROGRESS,
        )

    @property
    def is_failed(self) -> bool:
        return self in (
            ProcessingStatus.OCR_FAILED,
            ProcessingStatus.TRANSLATION_FAILED,
            ProcessingStatus.ERROR,
        )

    @property
    def can_retry(self) -> bool:
        """Whether a user would be offered a retry for this status."""
        return self.is_failed or self == ProcessingStatus.CANCELLED


_STATUS_CODES: dict[ProcessingStatus, int] = {
    ProcessingStatus.PENDING: 0,
    ProcessingStatus.QUEUED: 1,
    ProcessingStatus.OCR_IN_PROGRESS: 2,
    ProcessingStatus.OCR_COMPLETE: 3,
    ProcessingStatus.OCR_FAILED: 4,
    ProcessingStatus.TRANSLATION_IN_PROGRESS: 5,
    ProcessingStatus.TRANSLATION_COMPLETE: 6,
    ProcessingStatus.TRANSLATION_FAILED: 7,
    ProcessingStatus.COMPLETE: 8,
    ProcessingStatus.CANCELLED: 9,
    ProcessingStatus.ERROR: 10,
}

_CODE_STATUSES: dict[int, ProcessingStatus] = {code: s for s, code in _STATUS_CODES.items()}

TERMINAL_STATUSES = frozenset(
    {ProcessingStatus.COMPLETE, ProcessingStatus.ERROR, ProcessingStatus.CANCELLED}
)

_S = ProcessingStatus

TRANSITIONS: dict[ProcessingStatus, frozenset[ProcessingStatus]] = {
    _S.PENDING: frozenset({_S.QUEUED, _S.CANCELLED}),
    _S.QUEUED: frozenset({_S.OCR_IN_PROGRESS, _S.CANCELLED}),
    _S.OCR_IN_PROGRESS: frozenset({_S.OCR_COMPLETE, _S.OCR_FAILED, _S.CANCELLED}),
    _S.OCR_COMPLETE: frozenset({_S.TRANSLATION_IN_PROGRESS, _S.COMPLETE, _S.CANCELLED}),
    _S.OCR_FAILED: frozenset({_S.OCR_IN_PROGRESS, _S.ERROR, _S.CANCELLED}),
    _S.TRANSLATION_IN_PROGRESS: frozenset(
        {_S.TRANSLATION_COMPLETE, _S.TRANSLATION_FAILED, _S.CANCELLED}
    ),
    _S.TRANSLATION_COMPLETE: frozenset({_S.COMPLETE, _S.CANCELLED}),
    _S.TRANSLATION_FAILED: frozenset({_S.TRANSLATION_IN_PROGRESS, _S.ERROR, _S.CANCELLED}),
    _S.COMPLETE: frozenset(),
    _S.CANCELLED: frozenset(),
    _S.ERROR: frozenset(),
}


def status_to_int(status: ProcessingStatus) -> int:
    """Encode a status for storage."""
    return _STATUS_CODES[status]


def status_from_int(code: int) -> ProcessingStatus:
    """
    Decode a stored status.

    Unknown codes decode to ERROR so a corrupted row shows up as a failed
    document instead of breaking listings.
    """
    return _CODE_STATUSES.get(code, ProcessingStatus.ERROR)


def can_transition(current: ProcessingStatus, target: ProcessingStatus) -> bool:
    """Check whether current -> target is an edge of the state machine."""
    return target in TRANSITIONS[current]


def validate_transition(current: ProcessingStatus, target: ProcessingStatus) -> None:
    """
    Raise if current -> target is not allowed.

    Raises:
        InvalidTransitionError: If the edge does not exist.
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)
