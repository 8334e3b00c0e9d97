"""Core module - Shared configuration and enums."""

from permagate.core.config import (
    DEFAULT_CONVERSION_FEE_RATE,
    DEFAULT_FREE_THRESHOLD_BYTES,
    ConfigError,
    GateConfig,
)
from permagate.core.types import (
    ApprovalStatus,
    ConflictType,
    ExecutionStatus,
    OperationType,
    PaymentPreference,
    Rail,
    Resolution,
)

__all__ = [
    # Config
    "DEFAULT_CONVERSION_FEE_RATE",
    "DEFAULT_FREE_THRESHOLD_BYTES",
    "ConfigError",
    "GateConfig",
    # Types
    "ApprovalStatus",
    "ConflictType",
    "ExecutionStatus",
    "OperationType",
    "PaymentPreference",
    "Rail",
    "Resolution",
]
