"""Tests for the lifecycle state machine and operation descriptions."""

from __future__ import annotations

import pytest

from permagate.core.types import ApprovalStatus, ExecutionStatus, OperationType, Rail
from permagate.queue.domain.lifecycle import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    InvalidTransitionError,
    QueueState,
    check_transition,
    queue_state,
)
from permagate.queue.domain.operations import describe_operation
from permagate.queue.types import PendingUpload, QueueError, UploadExecutionState


def make_item(**kwargs: object) -> PendingUpload:
    defaults: dict[str, object] = {
        "local_path": "docs/report.pdf",
        "file_name": "report.pdf",
        "file_size": 1000,
    }
    defaults.update(kwargs)
    return PendingUpload(**defaults)  # type: ignore[arg-type]


class TestTransitions:
    """Tests for VALID_TRANSITIONS and check_transition."""

    def test_terminal_states(self) -> None:
        """Rejected and completed are the only terminal states."""
        assert TERMINAL_STATES == {QueueState.REJECTED, QueueState.COMPLETED}

    def test_every_state_has_an_entry(self) -> None:
        """The table covers every state."""
        assert set(VALID_TRANSITIONS) == set(QueueState)

    @pytest.mark.parametrize(
        "current,target",
        [
            (QueueState.AWAITING_APPROVAL, QueueState.APPROVED),
            (QueueState.AWAITING_APPROVAL, QueueState.REJECTED),
            (QueueState.APPROVED, QueueState.UPLOADING),
            (QueueState.UPLOADING, QueueState.COMPLETED),
            (QueueState.UPLOADING, QueueState.FAILED),
            (QueueState.UPLOADING, QueueState.APPROVED),
            (QueueState.FAILED, QueueState.UPLOADING),
        ],
    )
    def test_valid(self, current: QueueState, target: QueueState) -> None:
        """Listed transitions pass."""
        check_transition("id", current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (QueueState.REJECTED, QueueState.APPROVED),
            (QueueState.REJECTED, QueueState.UPLOADING),
            (QueueState.COMPLETED, QueueState.UPLOADING),
            (QueueState.APPROVED, QueueState.REJECTED),
            (QueueState.AWAITING_APPROVAL, QueueState.UPLOADING),
            (QueueState.FAILED, QueueState.COMPLETED),
        ],
    )
    def test_invalid(self, current: QueueState, target: QueueState) -> None:
        """Unlisted transitions raise InvalidTransitionError."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            check_transition("abc", current, target)

        assert exc_info.value.upload_id == "abc"
        assert exc_info.value.current is current
        assert exc_info.value.target is target
        assert isinstance(exc_info.value, QueueError)


class TestQueueState:
    """Tests for queue_state derivation."""

    def test_approval_status_without_execution(self) -> None:
        item = make_item(status=ApprovalStatus.REJECTED)
        assert queue_state(item) is QueueState.REJECTED

    def test_execution_takes_precedence(self) -> None:
        """An item handed to execution reports the execution status."""
        item = make_item(status=ApprovalStatus.APPROVED)
        execution = UploadExecutionState(upload_id=item.id, rail=Rail.FREE)

        assert queue_state(item, execution) is QueueState.UPLOADING

        execution.status = ExecutionStatus.FAILED
        assert queue_state(item, execution) is QueueState.FAILED


class TestDescribeOperation:
    """Tests for describe_operation."""

    def test_upload_shows_file_name(self) -> None:
        assert describe_operation(make_item()) == "report.pdf"

    def test_move(self) -> None:
        item = make_item(operation_type=OperationType.MOVE, previous_path="old/report.pdf")
        assert describe_operation(item) == "Move: old/report.pdf → docs/report.pdf"

    def test_move_unknown_origin(self) -> None:
        item = make_item(operation_type=OperationType.MOVE)
        assert describe_operation(item) == "Move: unknown → docs/report.pdf"

    def test_rename(self) -> None:
        item = make_item(operation_type=OperationType.RENAME, previous_path="docs/draft.pdf")
        assert describe_operation(item) == "Rename: draft.pdf → report.pdf"

    @pytest.mark.parametrize(
        "operation,expected",
        [
            (OperationType.HIDE, "Hide file from view"),
            (OperationType.UNHIDE, "Show hidden file"),
            (OperationType.DELETE, "Delete from permanent storage"),
        ],
    )
    def test_metadata_operations(self, operation: OperationType, expected: str) -> None:
        assert describe_operation(make_item(operation_type=operation)) == expected

    def test_every_operation_described(self) -> None:
        """No operation type falls through."""
        for operation in OperationType:
            assert describe_operation(make_item(operation_type=operation))
