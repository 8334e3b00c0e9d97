"""HTTP oracles for prices and balances.

This module provides:
- GatewayClient: Token prices and wallet balance from a storage gateway
- PaymentClient: Credit prices and credit balance from the payment service
- NetworkOracle: Both clients behind the PriceOracle/BalanceOracle contracts

Amounts on the wire are integer base units (10^12 per token or credit).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from permagate.core.config import GateConfig
from permagate.queue.domain import BASE_UNITS_PER_TOKEN
from permagate.queue.types import OracleError

logger = logging.getLogger(__name__)


def _to_units(raw: Any, what: str) -> float:
    """Convert a base-unit amount from the wire to token/credit units."""
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError) as e:
        raise OracleError(f"Malformed {what}: {raw!r}") from e
    if value < 0:
        raise OracleError(f"Negative {what}: {value}")
    return value / BASE_UNITS_PER_TOKEN


class _BaseClient:
    """Shared AsyncClient lifecycle and response handling."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def _get(self, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.get(path, **kwargs)
        except httpx.RequestError as e:
            raise OracleError(f"Request to {self._base_url}{path} failed: {e}") from e
        if response.status_code >= 400:
            raise OracleError(
                f"{self._base_url}{path} returned HTTP {response.status_code}"
            )
        return response


class GatewayClient(_BaseClient):
    """Storage gateway: token prices and wallet balance."""

    def __init__(
        self,
        gateway_url: str,
        wallet_address: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the gateway client.

        Args:
            gateway_url: Base URL of the gateway
            wallet_address: Wallet whose balance is queried
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        super().__init__(gateway_url, timeout, transport)
        self._wallet_address = wallet_address

    async def get_token_price_for_bytes(self, size: int) -> float:
        """Token cost to publish this many bytes.

        Raises:
            OracleError: On network failure or a malformed response
        """
        response = await self._get(f"/price/{int(size)}")
        return _to_units(response.text, "token price")

    async def get_token_balance(self) -> float:
        """Wallet token balance.

        Raises:
            OracleError: If no wallet is configured or the request fails
        """
        if not self._wallet_address:
            raise OracleError("No wallet address configured")
        response = await self._get(f"/wallet/{self._wallet_address}/balance")
        return _to_units(response.text, "token balance")


class PaymentClient(_BaseClient):
    """Payment service: credit prices and credit balance."""

    def __init__(
        self,
        payment_url: str,
        wallet_address: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the payment client.

        Args:
            payment_url: Base URL of the payment service
            wallet_address: Wallet whose credits are queried
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        super().__init__(payment_url, timeout, transport)
        self._wallet_address = wallet_address

    def _winc(self, response: httpx.Response, what: str) -> float:
        try:
            data = response.json()
        except ValueError as e:
            raise OracleError(f"Malformed {what} response") from e
        if not isinstance(data, dict) or "winc" not in data:
            raise OracleError(f"Malformed {what} response: missing winc")
        return _to_units(data["winc"], what)

    async def get_credit_cost_for_bytes(self, size: int) -> float:
        """Credit cost to publish this many bytes.

        Raises:
            OracleError: On network failure or a malformed response
        """
        response = await self._get(f"/v1/price/bytes/{int(size)}")
        return self._winc(response, "credit price")

    async def get_credit_balance(self) -> float:
        """Prepaid credit balance.

        Raises:
            OracleError: If no wallet is configured or the request fails
        """
        if not self._wallet_address:
            raise OracleError("No wallet address configured")
        response = await self._get(
            "/v1/account/balance", params={"address": self._wallet_address}
        )
        return self._winc(response, "credit balance")


class NetworkOracle:
    """Price and balance oracle backed by the gateway and payment service.

    Usage:
        async with NetworkOracle.from_config(config) as oracle:
            orchestrator = UploadOrchestrator(execution, oracle, oracle)
    """

    def __init__(self, gateway: GatewayClient, payment: PaymentClient) -> None:
        self._gateway = gateway
        self._payment = payment

    @classmethod
    def from_config(
        cls,
        config: GateConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> NetworkOracle:
        """Build both clients from gate configuration."""
        return cls(
            GatewayClient(
                config.gateway_url, config.wallet_address, config.timeout, transport
            ),
            PaymentClient(
                config.payment_url, config.wallet_address, config.timeout, transport
            ),
        )

    async def get_token_price_for_bytes(self, size: int) -> float:
        return await self._gateway.get_token_price_for_bytes(size)

    async def get_credit_cost_for_bytes(self, size: int) -> float:
        return await self._payment.get_credit_cost_for_bytes(size)

    async def get_token_balance(self) -> float:
        return await self._gateway.get_token_balance()

    async def get_credit_balance(self) -> float:
        return await self._payment.get_credit_balance()

    async def aclose(self) -> None:
        """Close both HTTP clients."""
        await self._gateway.aclose()
        await self._payment.aclose()

    async def __aenter__(self) -> NetworkOracle:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()
