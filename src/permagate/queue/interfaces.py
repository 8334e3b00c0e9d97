"""Service contracts consumed by the upload orchestrator.

Implementations are external collaborators (sync daemon, network clients).
Every method is a coroutine; the orchestrator awaits them on its loop.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from permagate.core.types import Rail
    from permagate.queue.types import RemoteDescriptor, SubmissionPayload


class ExecutionService(Protocol):
    """Publishes approved items and reports progress through a ProgressChannel."""

    async def submit(self, upload_id: str, payload: SubmissionPayload, rail: Rail) -> None:
        """Start publishing an item on the given rail.

        Raises:
            Exception: Any error means the item was not accepted.
        """
        ...

    async def cancel(self, upload_id: str) -> None:
        """Ask the service to stop an in-flight item (advisory)."""
        ...


class BalanceOracle(Protocol):
    """Live wallet balances."""

    async def get_token_balance(self) -> float:
        """Native token balance."""
        ...

    async def get_credit_balance(self) -> float:
        """Prepaid credit balance."""
        ...


class PriceOracle(Protocol):
    """Current publishing prices."""

    async def get_token_price_for_bytes(self, size: int) -> float:
        """Token cost to publish this many bytes."""
        ...

    async def get_credit_cost_for_bytes(self, size: int) -> float:
        """Credit cost to publish this many bytes."""
        ...


class RemoteStateLookup(Protocol):
    """Remote metadata already known for a local path or content hash."""

    async def find(self, local_path: str, content_hash: str | None) -> RemoteDescriptor | None:
        """Return the matching remote descriptor, or None."""
        ...
