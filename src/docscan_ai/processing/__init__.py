"""
Document processing: status state machine, stage executor and orchestrator.
"""

from docscan_ai.processing.base import StatusStore
from docscan_ai.processing.executor import StageExecutor, StageOutcome
from docscan_ai.processing.orchestrator import (
    ProcessingOrchestrator,
    ProcessingRequest,
    ProcessingRun,
    Transition,
)
from docscan_ai.processing.status import (
    TRANSITIONS,
    ProcessingStatus,
    can_transition,
    status_from_int,
    status_to_int,
)

__all__ = [
    "ProcessingOrchestrator",
    "ProcessingRequest",
    "ProcessingRun",
    "ProcessingStatus",
    "StageExecutor",
    "StageOutcome",
    "StatusStore",
    "TRANSITIONS",
    "Transition",
    "can_transition",
    "status_from_int",
    "status_to_int",
]
