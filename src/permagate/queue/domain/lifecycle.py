"""Upload lifecycle state machine.

States:
    AWAITING_APPROVAL -> APPROVED -> UPLOADING -> COMPLETED
                      -> REJECTED              -> FAILED -> UPLOADING (retry)
                                   UPLOADING -> APPROVED (cancel)

REJECTED and COMPLETED are terminal. All transitions are validated.
"""

from __future__ import annotations

from enum import IntEnum, auto
from typing import TYPE_CHECKING

from permagate.core.types import ApprovalStatus, ExecutionStatus
from permagate.queue.types import QueueError

if TYPE_CHECKING:
    from permagate.queue.types import PendingUpload, UploadExecutionState


class QueueState(IntEnum):
    """Combined approval and execution state of one item."""

    AWAITING_APPROVAL = auto()
    APPROVED = auto()
    REJECTED = auto()
    UPLOADING = auto()
    COMPLETED = auto()
    FAILED = auto()


VALID_TRANSITIONS: dict[QueueState, set[QueueState]] = {
    QueueState.AWAITING_APPROVAL: {QueueState.APPROVED, QueueState.REJECTED},
    QueueState.APPROVED: {QueueState.UPLOADING},
    QueueState.UPLOADING: {
        QueueState.COMPLETED,
        QueueState.FAILED,
        QueueState.APPROVED,  # cancel
    },
    QueueState.FAILED: {QueueState.UPLOADING},  # retry
    QueueState.REJECTED: set(),  # Terminal
    QueueState.COMPLETED: set(),  # Terminal
}

TERMINAL_STATES = frozenset(
    state for state, targets in VALID_TRANSITIONS.items() if not targets
)


class InvalidTransitionError(QueueError):
    """Raised when attempting an invalid state transition."""

    def __init__(self, upload_id: str, current: QueueState, target: QueueState) -> None:
        self.upload_id = upload_id
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot transition {upload_id} from {current.name} to {target.name}"
        )


_EXECUTION_STATES = {
    ExecutionStatus.UPLOADING: QueueState.UPLOADING,
    ExecutionStatus.COMPLETED: QueueState.COMPLETED,
    ExecutionStatus.FAILED: QueueState.FAILED,
}

_APPROVAL_STATES = {
    ApprovalStatus.AWAITING_APPROVAL: QueueState.AWAITING_APPROVAL,
    ApprovalStatus.APPROVED: QueueState.APPROVED,
    ApprovalStatus.REJECTED: QueueState.REJECTED,
}


def queue_state(
    item: PendingUpload,
    execution: UploadExecutionState | None = None,
) -> QueueState:
    """Derive the lifecycle state from approval status and execution state."""
    if execution is not None:
        return _EXECUTION_STATES[execution.status]
    return _APPROVAL_STATES[item.status]


def check_transition(upload_id: str, current: QueueState, target: QueueState) -> None:
    """Validate a transition.

    Raises:
        InvalidTransitionError: If target is not reachable from current.
    """
    if target not in VALID_TRANSITIONS[current]:
        raise InvalidTransitionError(upload_id, current, target)
