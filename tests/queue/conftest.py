"""Shared fakes for upload queue tests."""

from __future__ import annotations

import pytest

from permagate.core.config import GateConfig
from permagate.core.types import Rail
from permagate.queue.types import RemoteDescriptor, SubmissionPayload


TOKEN_PER_BYTE = 1e-9
CREDIT_RATE = 1.1


class FakeExecution:
    """Execution service that records calls."""

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.fail_with = fail_with
        self.cancel_error: Exception | None = None
        self.submitted: list[tuple[str, SubmissionPayload, Rail]] = []
        self.cancelled: list[str] = []

    async def submit(self, upload_id: str, payload: SubmissionPayload, rail: Rail) -> None:
        self.submitted.append((upload_id, payload, rail))
        if self.fail_with is not None:
            raise self.fail_with

    async def cancel(self, upload_id: str) -> None:
        self.cancelled.append(upload_id)
        if self.cancel_error is not None:
            raise self.cancel_error

    def rails(self) -> dict[str, Rail]:
        return {upload_id: rail for upload_id, _, rail in self.submitted}


class FakeBalances:
    """Balance oracle with settable values."""

    def __init__(self, credit: float = 0.0, token: float = 0.0) -> None:
        self.credit = credit
        self.token = token
        self.error: Exception | None = None
        self.calls = 0

    async def get_token_balance(self) -> float:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.token

    async def get_credit_balance(self) -> float:
        if self.error is not None:
            raise self.error
        return self.credit


class FakePrices:
    """Linear price oracle."""

    def __init__(
        self,
        token_per_byte: float = TOKEN_PER_BYTE,
        credit_rate: float = CREDIT_RATE,
    ) -> None:
        self.token_per_byte = token_per_byte
        self.credit_rate = credit_rate
        self.error: Exception | None = None
        self.calls = 0

    async def get_token_price_for_bytes(self, size: int) -> float:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return size * self.token_per_byte

    async def get_credit_cost_for_bytes(self, size: int) -> float:
        if self.error is not None:
            raise self.error
        return size * self.token_per_byte * self.credit_rate


class FakeLookup:
    """Remote state keyed by local path."""

    def __init__(self, remotes: dict[str, RemoteDescriptor] | None = None) -> None:
        self.remotes = remotes or {}

    async def find(self, local_path: str, content_hash: str | None) -> RemoteDescriptor | None:
        return self.remotes.get(local_path)


@pytest.fixture
def config() -> GateConfig:
    """Fast config: no pacing, short settle, no oracle retries."""
    return GateConfig(
        settle_delay=0.01,
        batch_pacing_delay=0.0,
        oracle_max_retries=0,
        oracle_retry_backoff=0.0,
    )


@pytest.fixture
def execution() -> FakeExecution:
    return FakeExecution()


@pytest.fixture
def balances() -> FakeBalances:
    return FakeBalances(credit=1.0, token=1.0)


@pytest.fixture
def prices() -> FakePrices:
    return FakePrices()


@pytest.fixture
def lookup() -> FakeLookup:
    return FakeLookup()
