# ============================================================================
# src/medical_digitizer/core/lifecycle.py
# ============================================================================
"""
Document Lifecycle

Directed status graph and the progress attached to each stage.

    uploaded -> [need_scanning -> scanned ->] analyzing -> processing
             -> digitized -> completed

`error` is reachable from every non-terminal status and is terminal.
Only an explicit resubmission leaves `error` (or, when forced, any other
status) and it always lands on `uploaded`.
"""

from typing import Dict, FrozenSet

from .enums import DocumentStatus
from ..utils.exceptions import InvalidTransitionError


S = DocumentStatus

TRANSITIONS: Dict[DocumentStatus, FrozenSet[DocumentStatus]] = {
    S.UPLOADED: frozenset({S.NEED_SCANNING, S.ANALYZING, S.ERROR}),
    S.NEED_SCANNING: frozenset({S.SCANNED, S.ERROR}),
    S.SCANNED: frozenset({S.ANALYZING, S.ERROR}),
    S.ANALYZING: frozenset({S.PROCESSING, S.ERROR}),
    S.PROCESSING: frozenset({S.DIGITIZED, S.ERROR}),
    S.DIGITIZED: frozenset({S.COMPLETED, S.ERROR}),
    S.COMPLETED: frozenset(),
    S.ERROR: frozenset(),
}

STAGE_PROGRESS: Dict[DocumentStatus, int] = {
    S.UPLOADED: 0,
    S.NEED_SCANNING: 5,
    S.SCANNED: 15,
    S.ANALYZING: 25,
    S.PROCESSING: 60,
    S.DIGITIZED: 85,
    S.COMPLETED: 100,
}

STAGE_LABELS: Dict[DocumentStatus, str] = {
    S.UPLOADED: "Uploaded",
    S.NEED_SCANNING: "Awaiting scan",
    S.SCANNED: "Scan complete",
    S.ANALYZING: "OCR and entity extraction",
    S.PROCESSING: "Patient matching",
    S.DIGITIZED: "Formatting record",
    S.COMPLETED: "Completed",
    S.ERROR: "Failed",
}

TERMINAL_STATES = frozenset({S.COMPLETED, S.ERROR})


def can_transition(current: DocumentStatus, target: DocumentStatus) -> bool:
    return target in TRANSITIONS[current]


def validate_transition(current: DocumentStatus, target: DocumentStatus) -> None:
    """Raise InvalidTransitionError unless current -> target is an edge."""
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)


def is_terminal(status: DocumentStatus) -> bool:
    return status in TERMINAL_STATES


def progress_for(status: DocumentStatus, current_progress: int = 0) -> int:
    """
    Progress to report after entering `status`.

    Never lower than the current value; entering `error` keeps the
    current value frozen.
    """
    if status == S.ERROR:
        return current_progress
    return max(current_progress, STAGE_PROGRESS[status])
