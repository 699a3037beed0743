"""OracleConfig: Process-wide, read-only oracle configuration.

The configuration is built once at startup (from environment variables and
CLI flags) and handed to every component by reference. There is no mutation
path after construction.

.. code-block:: python

    >>> config = OracleConfig(
    ...     admin_address="0x0000000000000000000000000000000000000a11",
    ...     authorized_feeders=["0x0000000000000000000000000000000000000fee"],
    ... )
    >>> config.tick_spacing_for_fee(500)
    10
    >>> config.tick_spacing_for_fee(1234)
    60
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Standard fee tier -> tick spacing mapping.
FEE_TICK_SPACING: dict[int, int] = {
    100: 1,
    500: 10,
    3000: 60,
    10000: 200,
}

DEFAULT_FEE = 3000
DEFAULT_TICK_SPACING = 60
DEFAULT_MAX_PRICE_AGE = 3600  # 1 hour
DEFAULT_TWAP_WINDOW = 1800  # 30 minutes
DEFAULT_RPC_URL = "http://localhost:8545"
DEFAULT_RPC_TIMEOUT = 10.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_TX_TIMEOUT = 120.0


def normalize_address(address: str, name: str = "address") -> str:
    """Validate an address and return its checksummed form.

    :param address: Hex address in any case.
    :param name: Field name used in the error message.
    :returns: EIP-55 checksummed address.
    :raises ValueError: If the value is not a 20-byte hex address.
    """
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ValueError(f"Invalid {name}: {address!r}")
    return Web3.to_checksum_address(address)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class OracleConfig:
    """Oracle configuration.

    :ivar default_fee: Fee tier used when a request omits one.
    :ivar default_tick_spacing: Tick spacing for fee tiers outside the standard mapping.
    :ivar max_price_age_seconds: Age after which an external price is stale.
    :ivar twap_window_seconds: TWAP window reported by the pool reader.
    :ivar admin_address: Oracle admin address.
    :ivar authorized_feeders: Addresses allowed to feed and invalidate prices.
    :ivar admin_is_feeder: Whether the admin may act as a feeder.
    :ivar rpc_url: JSON-RPC endpoint of the chain.
    :ivar pool_manager_address: PoolManager contract address.
    :ivar state_view_address: StateView lens contract address.
    :ivar price_oracle_address: PriceOracle (TWAP observations) contract address.
    :ivar rpc_timeout: Timeout in seconds for each RPC request and receipt wait.
    :ivar max_retries: Attempts for transient RPC failures.
    :ivar tx_timeout: Seconds to wait for a transaction receipt.
    """

    default_fee: int = DEFAULT_FEE
    default_tick_spacing: int = DEFAULT_TICK_SPACING
    max_price_age_seconds: int = DEFAULT_MAX_PRICE_AGE
    twap_window_seconds: int = DEFAULT_TWAP_WINDOW
    admin_address: str = ZERO_ADDRESS
    authorized_feeders: frozenset[str] = field(default_factory=frozenset)
    admin_is_feeder: bool = True
    rpc_url: str = DEFAULT_RPC_URL
    pool_manager_address: str | None = None
    state_view_address: str | None = None
    price_oracle_address: str | None = None
    rpc_timeout: float = DEFAULT_RPC_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    tx_timeout: float = DEFAULT_TX_TIMEOUT

    def __post_init__(self) -> None:
        """Validate fields and normalize addresses.

        :raises ValueError: If any threshold or address is invalid.
        """
        if self.default_fee < 0 or self.default_fee > 1_000_000:
            raise ValueError("default_fee must be between 0 and 1000000")
        if self.default_tick_spacing < 1:
            raise ValueError("default_tick_spacing must be at least 1")
        if self.max_price_age_seconds <= 0:
            raise ValueError("max_price_age_seconds must be positive")
        if self.twap_window_seconds <= 0:
            raise ValueError("twap_window_seconds must be positive")
        if self.rpc_timeout <= 0:
            raise ValueError("rpc_timeout must be positive")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.tx_timeout <= 0:
            raise ValueError("tx_timeout must be positive")

        # Frozen dataclass: normalized values go through object.__setattr__
        object.__setattr__(
            self, "admin_address", normalize_address(self.admin_address, "admin_address")
        )
        object.__setattr__(
            self,
            "authorized_feeders",
            frozenset(
                normalize_address(a, "feeder address") for a in self.authorized_feeders
            ),
        )
        for name in ("pool_manager_address", "state_view_address", "price_oracle_address"):
            value = getattr(self, name)
            if value:
                object.__setattr__(self, name, normalize_address(value, name))

    def tick_spacing_for_fee(self, fee: int) -> int:
        """Return the tick spacing of a fee tier.

        :param fee: Fee tier in hundredths of a bip.
        :returns: Standard tick spacing, or default_tick_spacing for unknown tiers.
        """
        return FEE_TICK_SPACING.get(fee, self.default_tick_spacing)

    def to_dict(self) -> dict:
        """Return the public view of the configuration (no endpoints or secrets)."""
        return {
            "defaultFee": self.default_fee,
            "defaultTickSpacing": self.default_tick_spacing,
            "maxPriceAge": self.max_price_age_seconds,
            "twapWindow": self.twap_window_seconds,
            "admin": self.admin_address,
            "adminIsFeeder": self.admin_is_feeder,
            "authorizedFeeders": sorted(self.authorized_feeders),
        }

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, **overrides: object
    ) -> OracleConfig:
        """Build a configuration from environment variables.

        Recognized variables: RPC_URL, POOL_MANAGER_ADDRESS, STATE_VIEW_ADDRESS,
        PRICE_ORACLE_ADDRESS, DEFAULT_FEE, DEFAULT_TICK_SPACING, MAX_PRICE_AGE,
        TWAP_WINDOW, ADMIN_ADDRESS, AUTHORIZED_FEEDERS, ADMIN_IS_FEEDER,
        RPC_TIMEOUT, TX_TIMEOUT, MAX_RETRIES. Keyword overrides that are not None win.

        :param environ: Variables to read (default: os.environ).
        :param overrides: Field values taking precedence over the environment.
        :returns: New OracleConfig instance.
        :raises ValueError: If a value cannot be parsed or fails validation.
        """
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}

        def _get(var: str) -> str | None:
            value = env.get(var)
            return value.strip() if value and value.strip() else None

        try:
            if (v := _get("RPC_URL")) is not None:
                values["rpc_url"] = v
            for var, name in (
                ("POOL_MANAGER_ADDRESS", "pool_manager_address"),
                ("STATE_VIEW_ADDRESS", "state_view_address"),
                ("PRICE_ORACLE_ADDRESS", "price_oracle_address"),
                ("ADMIN_ADDRESS", "admin_address"),
            ):
                if (v := _get(var)) is not None:
                    values[name] = v
            for var, name in (
                ("DEFAULT_FEE", "default_fee"),
                ("DEFAULT_TICK_SPACING", "default_tick_spacing"),
                ("MAX_PRICE_AGE", "max_price_age_seconds"),
                ("TWAP_WINDOW", "twap_window_seconds"),
                ("MAX_RETRIES", "max_retries"),
            ):
                if (v := _get(var)) is not None:
                    values[name] = int(v)
            if (v := _get("RPC_TIMEOUT")) is not None:
                values["rpc_timeout"] = float(v)
            if (v := _get("TX_TIMEOUT")) is not None:
                values["tx_timeout"] = float(v)
            if (v := _get("ADMIN_IS_FEEDER")) is not None:
                values["admin_is_feeder"] = _parse_bool(v)
            if (v := _get("AUTHORIZED_FEEDERS")) is not None:
                values["authorized_feeders"] = parse_address_list(v)
        except ValueError as e:
            raise ValueError(f"Invalid oracle configuration: {e}") from e

        for name, value in overrides.items():
            if value is not None:
                values[name] = value

        if "authorized_feeders" in values:
            values["authorized_feeders"] = frozenset(
                values["authorized_feeders"]  # type: ignore[arg-type]
            )
        return cls(**values)  # type: ignore[arg-type]


def parse_address_list(value: str | Iterable[str]) -> list[str]:
    """Parse a comma-separated address list.

    :param value: "0xabc,0xdef" string or an iterable of addresses.
    :returns: List of non-empty stripped entries.
    """
    items = value.split(",") if isinstance(value, str) else list(value)
    return [item.strip() for item in items if item and item.strip()]
