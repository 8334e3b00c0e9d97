"""Shared types for permagate.

This module defines the closed enums used across the queue engine, the
network adapters and the CLI. Values are the wire/config strings.
"""

from __future__ import annotations

from enum import Enum


class OperationType(str, Enum):
    """Kind of remote mutation a detected local change requires."""

    UPLOAD = "upload"
    MOVE = "move"
    RENAME = "rename"
    HIDE = "hide"
    UNHIDE = "unhide"
    DELETE = "delete"

    @property
    def is_metadata_only(self) -> bool:
        """True for operations that only rewrite metadata (never content)."""
        return self is not OperationType.UPLOAD


class ConflictType(str, Enum):
    """Conflict class assigned by the classifier."""

    NONE = "none"
    DUPLICATE = "duplicate"
    FILENAME_CONFLICT = "filename_conflict"
    CONTENT_CONFLICT = "content_conflict"


class Resolution(str, Enum):
    """Operator decision for a conflicted item."""

    KEEP_LOCAL = "keep_local"
    USE_REMOTE = "use_remote"
    KEEP_BOTH = "keep_both"
    SKIP = "skip"


class ApprovalStatus(str, Enum):
    """Approval-gate state of a pending upload."""

    AWAITING_APPROVAL = "awaiting_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class ExecutionStatus(str, Enum):
    """Live execution state of an approved upload."""

    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


class Rail(str, Enum):
    """Payment mechanism charged for an item."""

    FREE = "free"
    CREDIT = "credit"
    TOKEN = "token"


class PaymentPreference(str, Enum):
    """Global operator preference constraining rail selection."""

    AUTO = "auto"
    CREDIT_ONLY = "credit-only"
    TOKEN_ONLY = "token-only"
