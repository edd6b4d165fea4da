import pytest

from docscan_ai.exceptions import InvalidTransitionError
from docscan_ai.processing.status import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    ProcessingStatus,
    can_transition,
    status_from_int,
    status_to_int,
    validate_transition,
)

S = ProcessingStatus


class TestStatusCodes:
    def test_codes_are_stable(self) -> None:
        expected = {
            S.PENDING: 0,
            S.QUEUED: 1,
            S.OCR_IN_PROGRESS: 2,
            S.OCR_COMPLETE: 3,
            S.OCR_FAILED: 4,
            S.TRANSLATION_IN_PROGRESS: 5,
            S.TRANSLATION_COMPLETE: 6,
            S.TRANSLATION_FAILED: 7,
            S.COMPLETE: 8,
            S.CANCELLED: 9,
            S.ERROR: 10,
        }
        for status, code in expected.items():
            assert status_to_int(status) == code
            assert status.code == code

    def test_every_code_decodes_back(self) -> None:
        for status in ProcessingStatus:
            assert status_from_int(status_to_int(status)) == status

    @pytest.mark.parametrize("code", [-1, 11, 99])
    def test_unknown_code_decodes_to_error(self, code: int) -> None:
        assert status_from_int(code) == S.ERROR


class TestStatusProperties:
    def test_terminal_statuses(self) -> None:
        assert TERMINAL_STATUSES == {S.COMPLETE, S.CANCELLED, S.ERROR}
        assert S.COMPLETE.is_terminal
        assert not S.OCR_FAILED.is_terminal

    def test_in_progress(self) -> None:
        assert S.QUEUED.is_in_progress
        assert S.OCR_IN_PROGRESS.is_in_progress
        assert S.TRANSLATION_IN_PROGRESS.is_in_progress
        assert not S.OCR_COMPLETE.is_in_progress

    def test_failed_and_retry(self) -> None:
        assert S.OCR_FAILED.is_failed
        assert S.TRANSLATION_FAILED.is_failed
        assert S.ERROR.is_failed
        assert S.CANCELLED.can_retry
        assert not S.COMPLETE.can_retry


class TestTransitions:
    def test_happy_path_is_allowed(self) -> None:
        path = [
            S.PENDING,
            S.QUEUED,
            S.OCR_IN_PROGRESS,
            S.OCR_COMPLETE,
            S.TRANSLATION_IN_PROGRESS,
            S.TRANSLATION_COMPLETE,
            S.COMPLETE,
        ]
        for current, target in zip(path, path[1:]):
            assert can_transition(current, target)

    def test_ocr_only_path(self) -> None:
        assert can_transition(S.OCR_COMPLETE, S.COMPLETE)

    def test_failed_stages_can_be_retried(self) -> None:
        assert can_transition(S.OCR_FAILED, S.OCR_IN_PROGRESS)
        assert can_transition(S.TRANSLATION_FAILED, S.TRANSLATION_IN_PROGRESS)
        assert can_transition(S.OCR_FAILED, S.ERROR)
        assert can_transition(S.TRANSLATION_FAILED, S.ERROR)

    def test_every_non_terminal_status_can_be_cancelled(self) -> None:
        for status in ProcessingStatus:
            if not status.is_terminal:
                assert can_transition(status, S.CANCELLED)

    def test_terminal_statuses_have_no_exits(self) -> None:
        for status in TERMINAL_STATUSES:
            assert TRANSITIONS[status] == frozenset()

    def test_skipping_stages_is_rejected(self) -> None:
        assert not can_transition(S.PENDING, S.OCR_IN_PROGRESS)
        assert not can_transition(S.QUEUED, S.COMPLETE)
        assert not can_transition(S.OCR_FAILED, S.TRANSLATION_IN_PROGRESS)

    def test_validate_raises_for_invalid_edge(self) -> None:
        with pytest.raises(InvalidTransitionError, match="complete -> queued"):
            validate_transition(S.COMPLETE, S.QUEUED)

    def test_validate_accepts_valid_edge(self) -> None:
        validate_transition(S.PENDING, S.QUEUED)
