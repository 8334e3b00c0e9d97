"""Cost estimation.

Pure functions: no I/O, no retained state. Safe to call repeatedly and
concurrently, both per item and to rebuild the queue-level breakdown.

Size limit:
    content upload larger than the limit -> refused (never enqueued)

Free classification:
    size <= free threshold          -> free
    metadata-only operation         -> free (move/rename/hide/unhide/delete)
    otherwise                       -> token cost from the price function,
                                       credit cost = token cost * credit rate

Both costs are advisory; BalanceGate decides which rail is charged.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from permagate.core.types import ConflictType, Rail
from permagate.queue.types import CostBreakdown, CostEstimate, TopUpEstimate

if TYPE_CHECKING:
    from permagate.queue.types import PendingUpload, RailSelection

# Token base units per token (10^12)
BASE_UNITS_PER_TOKEN = 1e12

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def is_free(item: PendingUpload, free_threshold_bytes: int) -> bool:
    """Check if an item publishes at zero cost."""
    return (
        item.operation_type.is_metadata_only
        or item.file_size <= free_threshold_bytes
    )


def is_too_large(item: PendingUpload, max_file_size_bytes: int) -> bool:
    """Check if a content upload exceeds the size limit.

    Metadata-only operations publish no content and are never too large.
    """
    return (
        not item.operation_type.is_metadata_only
        and item.file_size > max_file_size_bytes
    )


class CostEstimator:
    """Classifies item cost against a free threshold and current prices."""

    def estimate(
        self,
        item: PendingUpload,
        free_threshold_bytes: int,
        credit_rate: float,
        token_price: Callable[[int], float],
    ) -> CostEstimate:
        """Estimate token and credit cost for one item.

        Args:
            item: The pending upload
            free_threshold_bytes: Inclusive free-tier cutoff
            credit_rate: Credit units per token unit
            token_price: Token cost for a byte count

        Returns:
            CostEstimate; a zero cost on a non-free item is valid
            (promotional pricing), only negatives are clamped.
        """
        if is_free(item, free_threshold_bytes):
            return CostEstimate(estimated_cost=0.0, estimated_turbo_cost=0.0, is_free=True)

        token_cost = max(0.0, token_price(item.file_size))
        credit_cost = max(0.0, token_cost * credit_rate)
        return CostEstimate(
            estimated_cost=token_cost,
            estimated_turbo_cost=credit_cost,
            is_free=False,
        )


def build_cost_breakdown(
    items: Iterable[PendingUpload],
    select_rail: Callable[[PendingUpload], RailSelection],
) -> CostBreakdown:
    """Aggregate costs over conflict-free items.

    Conflicted items (resolved or not) are excluded, so
    free_files + credit_files + token_files equals the number of
    conflict-free items passed in.

    Args:
        items: Items to aggregate
        select_rail: Rail selection for an item (BalanceGate)

    Returns:
        The breakdown
    """
    breakdown = CostBreakdown()
    for item in items:
        if item.conflict_type is not ConflictType.NONE:
            continue

        if item.operation_type.is_metadata_only:
            breakdown.metadata_only_ops += 1

        selection = select_rail(item)
        if selection.rail is Rail.FREE:
            breakdown.free_files += 1
        elif selection.rail is Rail.CREDIT:
            breakdown.credit_files += 1
            breakdown.total_credit_cost += selection.amount
        else:
            breakdown.token_files += 1
            breakdown.total_token_cost += selection.amount
    return breakdown


def estimate_top_up(
    token_amount: float,
    fee_rate: float,
    credit_rate: float,
) -> TopUpEstimate:
    """Estimate credits received for converting tokens.

    The fee is taken in tokens; what remains is converted at credit_rate.
    Both rates are display estimates; the payment service settles the
    actual amount.

    Args:
        token_amount: Tokens to convert
        fee_rate: Fraction of the amount kept as a conversion fee
        credit_rate: Credit units per token unit

    Raises:
        ValueError: If amount or credit_rate is negative, or fee_rate is
            outside [0, 1).
    """
    if token_amount < 0:
        raise ValueError(f"token_amount must be >= 0, got {token_amount}")
    if not 0 <= fee_rate < 1:
        raise ValueError(f"fee_rate must be in [0, 1), got {fee_rate}")
    if credit_rate < 0:
        raise ValueError(f"credit_rate must be >= 0, got {credit_rate}")
    fee = token_amount * fee_rate
    net_tokens = token_amount - fee
    return TopUpEstimate(
        token_amount=token_amount,
        fee=fee,
        net_tokens=net_tokens,
        net_credits=net_tokens * credit_rate,
    )


def format_file_size(size: int) -> str:
    """Human-readable size, e.g. "1.5 KB"."""
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {_SIZE_UNITS[unit]}"


def format_token_amount(amount: float) -> str:
    """Token amount with six decimals."""
    return f"{amount:.6f}"
