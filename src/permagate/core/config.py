"""Configuration for the upload gate.

This module defines GateConfig, the single settings object shared by the
queue engine, the network adapters and the CLI.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any

from permagate.core.types import PaymentPreference

# Free tier: items at or under this many bytes publish at zero cost
DEFAULT_FREE_THRESHOLD_BYTES = 100 * 1024

# Content uploads above this size are refused at enqueue time
DEFAULT_MAX_FILE_SIZE_BYTES = 100 * 1024 * 1024

# Credit top-up conversion fee shown to operators (advisory, not settlement)
DEFAULT_CONVERSION_FEE_RATE = 0.23


class ConfigError(ValueError):
    """Invalid configuration value."""


@dataclass
class GateConfig:
    """Settings for cost estimation, rail selection and execution pacing.

    Attributes:
        free_threshold_bytes: Inclusive byte cutoff for free publishing.
        max_file_size_bytes: Largest content upload accepted into the queue.
        settle_delay: Seconds a completed item stays visible before removal.
        batch_pacing_delay: Seconds between submissions in approve_all().
        payment_preference: auto, credit-only or token-only.
        conversion_fee_rate: Estimated fee when converting tokens to credits.
        price_cache_ttl: Seconds a fetched price snapshot stays fresh.
        fallback_token_per_byte: Token price per byte used when the oracle is down.
        fallback_credit_rate: Credits per token unit used when the oracle is down.
        oracle_max_retries: Retries for a failing oracle call.
        oracle_retry_backoff: Initial backoff between oracle retries, in seconds.
        gateway_url: Base URL of the storage gateway (token prices/balance).
        payment_url: Base URL of the credit payment service.
        wallet_address: Address whose balances are queried.
        timeout: HTTP timeout in seconds.
    """

    free_threshold_bytes: int = DEFAULT_FREE_THRESHOLD_BYTES
    max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE_BYTES
    settle_delay: float = 2.0
    batch_pacing_delay: float = 0.1
    payment_preference: PaymentPreference = PaymentPreference.AUTO
    conversion_fee_rate: float = DEFAULT_CONVERSION_FEE_RATE
    price_cache_ttl: float = 300.0
    fallback_token_per_byte: float = 1e-12
    fallback_credit_rate: float = 1.1
    oracle_max_retries: int = 2
    oracle_retry_backoff: float = 0.5
    gateway_url: str = "https://arweave.net"
    payment_url: str = "https://payment.ardrive.io"
    wallet_address: str = ""
    timeout: float = 30.0

    def __post_init__(self) -> None:
        """Validate values and normalize URLs."""
        try:
            self.payment_preference = PaymentPreference(self.payment_preference)
        except ValueError as e:
            raise ConfigError(
                f"Unknown payment preference: {self.payment_preference!r}"
            ) from e

        non_negative = (
            "free_threshold_bytes",
            "settle_delay",
            "batch_pacing_delay",
            "price_cache_ttl",
            "fallback_token_per_byte",
            "fallback_credit_rate",
            "oracle_max_retries",
            "oracle_retry_backoff",
        )
        for name in non_negative:
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must be >= 0, got {getattr(self, name)}")

        if not 0 <= self.conversion_fee_rate < 1:
            raise ConfigError(
                f"conversion_fee_rate must be in [0, 1), got {self.conversion_fee_rate}"
            )
        if self.max_file_size_bytes <= 0:
            raise ConfigError(
                f"max_file_size_bytes must be > 0, got {self.max_file_size_bytes}"
            )
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be > 0, got {self.timeout}")

        self.gateway_url = self.gateway_url.rstrip("/")
        self.payment_url = self.payment_url.rstrip("/")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GateConfig:
        """Build a config from a dictionary, ignoring unknown keys.

        Args:
            data: Raw values (e.g. loaded from the JSON config file).

        Returns:
            A validated GateConfig.

        Raises:
            ConfigError: If a value has the wrong type or is out of range.
        """
        known = {f.name: f for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, raw in data.items():
            if key not in known:
                continue
            default = getattr(cls, key)
            values[key] = _coerce(key, raw, default)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible values."""
        data = asdict(self)
        data["payment_preference"] = self.payment_preference.value
        return data


def _coerce(key: str, raw: Any, default: Any) -> Any:
    """Convert a raw value to the type of the field default."""
    if isinstance(default, PaymentPreference):
        return raw
    try:
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {key}: {raw!r}") from e
    return str(raw)
