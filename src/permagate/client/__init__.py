"""Network clients for price and balance oracles."""

from permagate.client.gateway import GatewayClient, NetworkOracle, PaymentClient

__all__ = [
    "GatewayClient",
    "NetworkOracle",
    "PaymentClient",
]
