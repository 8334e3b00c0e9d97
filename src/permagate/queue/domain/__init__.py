"""Domain modules for upload queue business rules.

This package centralizes the pure logic of the approval gate:
- costs: free-tier classification, cost estimates, queue breakdown
- conflicts: conflict classes and their valid resolutions
- rails: payment rail selection against live balances
- lifecycle: approval/execution state machine
- operations: human-readable operation descriptions

Architecture:
    domain/ holds no state and performs no I/O. The orchestrator owns the
    queue and calls into these modules.
"""

from permagate.queue.domain.conflicts import (
    PUBLISHING_RESOLUTIONS,
    VALID_RESOLUTIONS,
    ConflictClassifier,
    default_resolution,
    keep_both_name,
    valid_resolutions,
)
from permagate.queue.domain.costs import (
    BASE_UNITS_PER_TOKEN,
    CostEstimator,
    build_cost_breakdown,
    estimate_top_up,
    format_file_size,
    format_token_amount,
    is_free,
    is_too_large,
)
from permagate.queue.domain.lifecycle import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    InvalidTransitionError,
    QueueState,
    check_transition,
    queue_state,
)
from permagate.queue.domain.operations import describe_operation
from permagate.queue.domain.rails import BalanceGate

__all__ = [
    # costs
    "BASE_UNITS_PER_TOKEN",
    "CostEstimator",
    "build_cost_breakdown",
    "estimate_top_up",
    "format_file_size",
    "format_token_amount",
    "is_free",
    "is_too_large",
    # conflicts
    "PUBLISHING_RESOLUTIONS",
    "VALID_RESOLUTIONS",
    "ConflictClassifier",
    "default_resolution",
    "keep_both_name",
    "valid_resolutions",
    # rails
    "BalanceGate",
    # lifecycle
    "TERMINAL_STATES",
    "VALID_TRANSITIONS",
    "InvalidTransitionError",
    "QueueState",
    "check_transition",
    "queue_state",
    # operations
    "describe_operation",
]
