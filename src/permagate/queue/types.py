"""Shared types and dataclasses for the upload queue.

This module provides:
- QueueError and subclasses: Exception classes
- LocalChange: Raw change descriptor emitted by the file watcher
- RemoteDescriptor: Known remote state for a path/content hash
- PendingUpload: A detected change awaiting a publishing decision
- ConflictResolution: Write-once operator decision for a conflicted item
- CostEstimate, PriceSnapshot, CostBreakdown: Cost layer results
- RailSelection: Payment rail chosen for an item
- UploadExecutionState, ProgressEvent: Execution lifecycle tracking
- SubmissionPayload, ApprovalOutcome, BatchSummary, OrchestratorStats
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field

from permagate.core.types import (
    ApprovalStatus,
    ConflictType,
    ExecutionStatus,
    OperationType,
    Rail,
    Resolution,
)


class QueueError(Exception):
    """Base exception for upload queue errors."""


class UnknownUploadError(QueueError):
    """No pending upload is tracked under this id."""

    def __init__(self, upload_id: str) -> None:
        self.upload_id = upload_id
        super().__init__(f"Unknown upload: {upload_id}")


class UnresolvedConflictError(QueueError):
    """Approval attempted on a conflicted item with no recorded resolution."""

    def __init__(self, upload_id: str, conflict_type: ConflictType) -> None:
        self.upload_id = upload_id
        self.conflict_type = conflict_type
        super().__init__(
            f"Upload {upload_id} has an unresolved {conflict_type.value} conflict"
        )


class ResolutionError(QueueError):
    """Resolution rejected (already recorded, or not valid for the conflict)."""


class FileTooLargeError(QueueError):
    """A content upload exceeds the configured size limit."""

    def __init__(self, local_path: str, file_size: int, limit: int) -> None:
        self.local_path = local_path
        self.file_size = file_size
        self.limit = limit
        super().__init__(
            f"{local_path} is {file_size} bytes; the limit is {limit} bytes"
        )


class OracleError(Exception):
    """A price or balance oracle could not produce a value."""


@dataclass(frozen=True)
class LocalChange:
    """A locally detected change, as emitted by the file watcher.

    Attributes:
        local_path: Path of the file in the sync folder
        file_size: Size in bytes (0 for pure metadata operations)
        operation_type: Kind of remote mutation required
        content_hash: Hash of the local content, if known
        previous_path: Prior location/name for move and rename
    """

    local_path: str
    file_size: int
    operation_type: OperationType = OperationType.UPLOAD
    content_hash: str | None = None
    previous_path: str | None = None

    @property
    def file_name(self) -> str:
        """Last path component."""
        return self.local_path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]


@dataclass(frozen=True)
class RemoteDescriptor:
    """Known remote state matching a local path or content hash."""

    path: str
    content_hash: str | None = None
    entity_id: str | None = None

    @property
    def file_name(self) -> str:
        """Last path component."""
        return self.path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]


@dataclass
class PendingUpload:
    """One detected local change awaiting a publishing decision.

    estimated_cost is in native-token units, estimated_turbo_cost in credit
    units. Neither decides the charged rail on its own; see BalanceGate.
    """

    local_path: str
    file_name: str
    file_size: int
    operation_type: OperationType = OperationType.UPLOAD
    previous_path: str | None = None
    content_hash: str | None = None
    estimated_cost: float = 0.0
    estimated_turbo_cost: float | None = None
    has_sufficient_credit_balance: bool | None = None
    conflict_type: ConflictType = ConflictType.NONE
    conflict_details: str | None = None
    status: ApprovalStatus = ApprovalStatus.AWAITING_APPROVAL
    warning: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: float = field(default_factory=time.time)

    @classmethod
    def from_change(cls, change: LocalChange) -> PendingUpload:
        """Create an unpriced, unclassified item from a watcher change."""
        return cls(
            local_path=change.local_path,
            file_name=change.file_name,
            file_size=change.file_size,
            operation_type=change.operation_type,
            previous_path=change.previous_path,
            content_hash=change.content_hash,
        )

    @property
    def has_conflict(self) -> bool:
        """Check if the classifier flagged this item."""
        return self.conflict_type is not ConflictType.NONE

    def __repr__(self) -> str:
        return (
            f"PendingUpload({self.operation_type.value}, "
            f"path={self.local_path!r}, status={self.status.value})"
        )


@dataclass(frozen=True)
class ConflictResolution:
    """An operator decision resolving one conflicted item."""

    upload_id: str
    resolution: Resolution
    reasoning: str | None = None
    resolved_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class CostEstimate:
    """Per-item cost classification.

    Attributes:
        estimated_cost: Token units
        estimated_turbo_cost: Credit units
        is_free: Free tier or metadata-only operation
    """

    estimated_cost: float
    estimated_turbo_cost: float
    is_free: bool


@dataclass(frozen=True)
class PriceSnapshot:
    """Linear pricing derived from one oracle quote.

    Attributes:
        token_per_byte: Token units charged per byte
        credit_rate: Credit units per token unit
        fetched_at: Unix timestamp of the quote
        is_fallback: True when built from cached/default values after an error
    """

    token_per_byte: float
    credit_rate: float
    fetched_at: float = field(default_factory=time.time)
    is_fallback: bool = False

    def token_price_for_bytes(self, size: int) -> float:
        """Token cost for a payload of this many bytes."""
        return max(0.0, size * self.token_per_byte)


@dataclass(frozen=True)
class RailSelection:
    """The payment rail chosen for one item.

    Attributes:
        rail: free, credit or token
        sufficient: Whether the live balance covers the charge
        amount: Amount charged on that rail (credits or tokens)
        reason: Human-readable explanation
    """

    rail: Rail
    sufficient: bool
    amount: float = 0.0
    reason: str = ""


@dataclass
class CostBreakdown:
    """Aggregate over the conflict-free items awaiting approval."""

    free_files: int = 0
    credit_files: int = 0
    token_files: int = 0
    total_credit_cost: float = 0.0
    total_token_cost: float = 0.0
    metadata_only_ops: int = 0

    @property
    def total_files(self) -> int:
        """Items accounted for (free + credit + token)."""
        return self.free_files + self.credit_files + self.token_files


@dataclass(frozen=True)
class TopUpEstimate:
    """Estimated credits received when converting tokens.

    fee and net_tokens are in token units; net_credits applies the credit rate.
    """

    token_amount: float
    fee: float
    net_tokens: float
    net_credits: float


@dataclass
class UploadExecutionState:
    """Runtime lifecycle of an approved item handed to the execution service.

    progress never decreases while status is UPLOADING; error is set iff
    status is FAILED.
    """

    upload_id: str
    rail: Rail
    status: ExecutionStatus = ExecutionStatus.UPLOADING
    progress: int = 0
    error: str | None = None
    started_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ProgressEvent:
    """Progress report pushed by the execution service."""

    upload_id: str
    progress: int
    status: ExecutionStatus
    error: str | None = None


@dataclass(frozen=True)
class SubmissionPayload:
    """What the execution service needs to publish an item."""

    local_path: str
    target_name: str
    file_size: int
    operation_type: OperationType
    previous_path: str | None = None
    resolution: Resolution | None = None


@dataclass(frozen=True)
class ApprovalOutcome:
    """Result of approving one item."""

    upload_id: str
    selection: RailSelection
    submitted: bool
    error: str | None = None


@dataclass
class BatchSummary:
    """Result of approve_all()."""

    approved: list[str] = field(default_factory=list)
    submitted: list[str] = field(default_factory=list)
    skipped_conflicts: list[str] = field(default_factory=list)
    blocked: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


@dataclass
class OrchestratorStats:
    """Statistics for the orchestrator."""

    approved: int = 0
    rejected: int = 0
    submitted: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    blocked: int = 0
    ignored_events: int = 0
