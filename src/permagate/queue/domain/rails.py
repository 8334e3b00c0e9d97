"""Payment rail selection.

Decision order:
1. Free item (free tier or metadata-only)      -> FREE, always sufficient
2. Credits cover the credit cost (not token-only) -> CREDIT
3. credit-only preference                     -> CREDIT, insufficient (no fallback)
4. Otherwise                                  -> TOKEN, sufficient iff token balance covers it
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from permagate.core.types import PaymentPreference, Rail
from permagate.queue.domain.costs import is_free
from permagate.queue.types import RailSelection

if TYPE_CHECKING:
    from permagate.queue.types import PendingUpload


class BalanceGate:
    """Chooses the rail that will actually pay for an item."""

    def __init__(self, free_threshold_bytes: int) -> None:
        self._free_threshold_bytes = free_threshold_bytes

    def select_rail(
        self,
        item: PendingUpload,
        credit_balance: float,
        token_balance: float,
        preference: PaymentPreference = PaymentPreference.AUTO,
    ) -> RailSelection:
        """Select the rail for one item against live balances.

        Args:
            item: A priced pending upload
            credit_balance: Available credits
            token_balance: Available tokens
            preference: Operator payment preference

        Returns:
            RailSelection with the charged amount and sufficiency flag
        """
        if is_free(item, self._free_threshold_bytes):
            return RailSelection(rail=Rail.FREE, sufficient=True, reason="Free")

        credit_cost = item.estimated_turbo_cost
        if preference is not PaymentPreference.TOKEN_ONLY and credit_cost is not None:
            if credit_balance >= credit_cost:
                return RailSelection(
                    rail=Rail.CREDIT,
                    sufficient=True,
                    amount=credit_cost,
                    reason="Paid with credits",
                )

        if preference is PaymentPreference.CREDIT_ONLY:
            return RailSelection(
                rail=Rail.CREDIT,
                sufficient=False,
                amount=credit_cost or 0.0,
                reason=(
                    f"Insufficient credits: need {credit_cost or 0.0:.6f}, "
                    f"have {credit_balance:.6f}"
                ),
            )

        token_cost = item.estimated_cost
        if token_balance >= token_cost:
            return RailSelection(
                rail=Rail.TOKEN,
                sufficient=True,
                amount=token_cost,
                reason="Paid with tokens",
            )
        return RailSelection(
            rail=Rail.TOKEN,
            sufficient=False,
            amount=token_cost,
            reason=f"Insufficient tokens: need {token_cost:.6f}, have {token_balance:.6f}",
        )

    def credit_sufficient(self, item: PendingUpload, credit_balance: float) -> bool:
        """Whether the credit rail alone can cover this item."""
        if is_free(item, self._free_threshold_bytes):
            return True
        cost = item.estimated_turbo_cost
        return cost is not None and credit_balance >= cost
