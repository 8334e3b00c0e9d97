"""Operation descriptions shown next to queued items."""

from __future__ import annotations

from typing import TYPE_CHECKING, assert_never

from permagate.core.types import OperationType

if TYPE_CHECKING:
    from permagate.queue.types import PendingUpload


def _base_name(path: str | None) -> str:
    if not path:
        return "unknown"
    return path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]


def describe_operation(item: PendingUpload) -> str:
    """One-line description of the remote mutation an item performs."""
    operation = item.operation_type
    if operation is OperationType.UPLOAD:
        return item.file_name
    if operation is OperationType.MOVE:
        return f"Move: {item.previous_path or 'unknown'} → {item.local_path}"
    if operation is OperationType.RENAME:
        return f"Rename: {_base_name(item.previous_path)} → {item.file_name}"
    if operation is OperationType.HIDE:
        return "Hide file from view"
    if operation is OperationType.UNHIDE:
        return "Show hidden file"
    if operation is OperationType.DELETE:
        return "Delete from permanent storage"
    assert_never(operation)
