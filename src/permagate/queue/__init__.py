"""Upload approval queue.

Architecture:
    LocalChange → UploadOrchestrator.add → PendingUpload (awaiting approval)
        → approve → BalanceGate → ExecutionService
        → ProgressChannel → UploadOrchestrator.run

Components:
- **UploadOrchestrator**: Owns the queue, resolutions and execution states
- **ProgressChannel**: Typed event channel from the execution service
- **PriceCache**: TTL-cached price snapshots with fallback
- **domain**: Pure rules (costs, conflicts, rails, lifecycle)

All public symbols are re-exported here.
"""

from permagate.queue.types import (
    ApprovalOutcome,
    BatchSummary,
    ConflictResolution,
    CostBreakdown,
    CostEstimate,
    FileTooLargeError,
    LocalChange,
    OracleError,
    OrchestratorStats,
    PendingUpload,
    PriceSnapshot,
    ProgressEvent,
    QueueError,
    RailSelection,
    RemoteDescriptor,
    ResolutionError,
    SubmissionPayload,
    TopUpEstimate,
    UnknownUploadError,
    UnresolvedConflictError,
    UploadExecutionState,
)
from permagate.queue.domain import (
    BalanceGate,
    ConflictClassifier,
    CostEstimator,
    InvalidTransitionError,
    QueueState,
    build_cost_breakdown,
    describe_operation,
    estimate_top_up,
    format_file_size,
    format_token_amount,
    is_too_large,
    keep_both_name,
)
from permagate.queue.events import ChannelClosedError, ProgressChannel
from permagate.queue.interfaces import (
    BalanceOracle,
    ExecutionService,
    PriceOracle,
    RemoteStateLookup,
)
from permagate.queue.orchestrator import UploadOrchestrator
from permagate.queue.pricing import PriceCache
from permagate.queue.retry import retry_with_backoff

__all__ = [
    # Types and dataclasses
    "ApprovalOutcome",
    "BatchSummary",
    "ConflictResolution",
    "CostBreakdown",
    "CostEstimate",
    "LocalChange",
    "OrchestratorStats",
    "PendingUpload",
    "PriceSnapshot",
    "ProgressEvent",
    "RailSelection",
    "RemoteDescriptor",
    "SubmissionPayload",
    "TopUpEstimate",
    "UploadExecutionState",
    # Errors
    "ChannelClosedError",
    "FileTooLargeError",
    "InvalidTransitionError",
    "OracleError",
    "QueueError",
    "ResolutionError",
    "UnknownUploadError",
    "UnresolvedConflictError",
    # Domain
    "BalanceGate",
    "ConflictClassifier",
    "CostEstimator",
    "QueueState",
    "build_cost_breakdown",
    "describe_operation",
    "estimate_top_up",
    "format_file_size",
    "format_token_amount",
    "is_too_large",
    "keep_both_name",
    # Services
    "BalanceOracle",
    "ExecutionService",
    "PriceOracle",
    "RemoteStateLookup",
    # Orchestration
    "PriceCache",
    "ProgressChannel",
    "UploadOrchestrator",
    "retry_with_backoff",
]
