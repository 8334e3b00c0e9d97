"""Price snapshots with caching and conservative fallback.

Oracle failures never block approval: the cache serves the last good
snapshot, or the configured defaults, marked is_fallback with a warning the
orchestrator surfaces to the operator.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from permagate.queue.retry import retry_with_backoff
from permagate.queue.types import PriceSnapshot

if TYPE_CHECKING:
    from permagate.core.config import GateConfig
    from permagate.queue.interfaces import PriceOracle

logger = logging.getLogger(__name__)

# Byte count of the quote the linear snapshot is derived from
REFERENCE_QUOTE_BYTES = 1024 * 1024


class PriceCache:
    """Caches one price snapshot per TTL window.

    Usage:
        cache = PriceCache(oracle, config)
        snapshot = await cache.snapshot()
        cost = snapshot.token_price_for_bytes(5 * 1024 * 1024)
    """

    def __init__(
        self,
        oracle: PriceOracle | None,
        config: GateConfig,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            oracle: Price source; None means always use configured defaults
            config: Gate configuration (TTL, fallback prices, retries)
            clock: Monotonic time source
        """
        self._oracle = oracle
        self._config = config
        self._clock = clock
        self._snapshot: PriceSnapshot | None = None
        self._last_good: PriceSnapshot | None = None
        self._fetched_at: float | None = None
        self._warning: str | None = None

    @property
    def warning(self) -> str | None:
        """Warning from the last fetch, if it fell back."""
        return self._warning

    def default_snapshot(self) -> PriceSnapshot:
        """Snapshot built from configured fallback prices."""
        return PriceSnapshot(
            token_per_byte=self._config.fallback_token_per_byte,
            credit_rate=self._config.fallback_credit_rate,
            is_fallback=True,
        )

    def invalidate(self) -> None:
        """Force the next snapshot() call to refetch."""
        self._fetched_at = None

    def _is_fresh(self) -> bool:
        if self._snapshot is None or self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self._config.price_cache_ttl

    async def snapshot(self) -> PriceSnapshot:
        """Return a fresh snapshot, fetching from the oracle when stale.

        Returns:
            The current snapshot (possibly a fallback)
        """
        if self._is_fresh():
            assert self._snapshot is not None
            return self._snapshot

        if self._oracle is None:
            self._snapshot = self.default_snapshot()
            self._fetched_at = self._clock()
            return self._snapshot

        try:
            snapshot = await self._fetch()
        except Exception as e:
            self._snapshot = self._fallback(e)
        else:
            self._snapshot = snapshot
            self._last_good = snapshot
            self._warning = None
            logger.debug(
                "Fetched prices: %.3e token/byte, %.4f credits/token",
                snapshot.token_per_byte,
                snapshot.credit_rate,
            )
        self._fetched_at = self._clock()
        return self._snapshot

    async def _fetch(self) -> PriceSnapshot:
        assert self._oracle is not None
        oracle = self._oracle

        token_cost = await retry_with_backoff(
            lambda: oracle.get_token_price_for_bytes(REFERENCE_QUOTE_BYTES),
            max_retries=self._config.oracle_max_retries,
            initial_backoff=self._config.oracle_retry_backoff,
        )
        credit_cost = await retry_with_backoff(
            lambda: oracle.get_credit_cost_for_bytes(REFERENCE_QUOTE_BYTES),
            max_retries=self._config.oracle_max_retries,
            initial_backoff=self._config.oracle_retry_backoff,
        )

        token_cost = max(0.0, float(token_cost))
        credit_cost = max(0.0, float(credit_cost))
        if token_cost > 0:
            credit_rate = credit_cost / token_cost
        else:
            # Zero token price (promotion); keep credits comparable to defaults
            credit_rate = self._config.fallback_credit_rate
        return PriceSnapshot(
            token_per_byte=token_cost / REFERENCE_QUOTE_BYTES,
            credit_rate=credit_rate,
        )

    def _fallback(self, error: Exception) -> PriceSnapshot:
        if self._last_good is not None:
            source = "last known prices"
            base = self._last_good
        else:
            source = "default prices"
            base = self.default_snapshot()

        self._warning = f"Price oracle unavailable ({error}); using {source}"
        logger.warning("%s", self._warning)
        return PriceSnapshot(
            token_per_byte=base.token_per_byte,
            credit_rate=base.credit_rate,
            fetched_at=base.fetched_at,
            is_fallback=True,
        )
