"""PairKey: Canonical identifier of an AMM pool.

A PairKey is the five-field pool key used by the PoolManager:
``(token_low, token_high, fee, tick_spacing, hooks)``. Tokens may be given in
either order; the key always stores them sorted by address so that
``PairKey(a, b, ...) == PairKey(b, a, ...)``.

The pool id used by the StateView lens is computed as:
    keccak256(abi.encode(token_low, token_high, fee, tick_spacing, hooks))

.. code-block:: python

    >>> key = PairKey(
    ...     "0x00000000000000000000000000000000000000bb",
    ...     "0x00000000000000000000000000000000000000aa",
    ...     fee=3000,
    ...     tick_spacing=60,
    ... )
    >>> key.token_low.lower()
    '0x00000000000000000000000000000000000000aa'
    >>> len(key.pool_id())
    32
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from eth_abi import encode as abi_encode
from web3 import Web3

from .errors import InvalidPairError, InvalidParameterError
from .OracleConfig import ZERO_ADDRESS

if TYPE_CHECKING:
    from .OracleConfig import OracleConfig

POOL_KEY_ABI_TYPES = ["address", "address", "uint24", "int24", "address"]


def to_token_address(token: str, name: str = "token") -> str:
    """Validate a token address and return its checksummed form.

    :param token: Hex token address.
    :param name: Parameter name used in the error message.
    :returns: Checksummed address.
    :raises InvalidParameterError: If the value is not an address.
    """
    if not isinstance(token, str) or not Web3.is_address(token):
        raise InvalidParameterError(f"Invalid {name} address: {token!r}")
    return Web3.to_checksum_address(token)


def sort_tokens(token_a: str, token_b: str) -> tuple[str, str]:
    """Sort two token addresses into canonical (low, high) order.

    :param token_a: First token address.
    :param token_b: Second token address.
    :returns: Checksummed (low, high) tuple.
    :raises InvalidParameterError: If either address is malformed.
    :raises InvalidPairError: If the tokens are equal or either is zero.
    """
    a = to_token_address(token_a, "tokenA")
    b = to_token_address(token_b, "tokenB")
    if a == ZERO_ADDRESS or b == ZERO_ADDRESS:
        raise InvalidPairError("Pair tokens must be non-zero addresses")
    if a == b:
        raise InvalidPairError(f"Pair tokens must be distinct, got {a} twice")
    return (a, b) if int(a, 16) < int(b, 16) else (b, a)


class PairKey:
    """Canonical pool key.

    :ivar token_low: Lower token address (currency0).
    :ivar token_high: Higher token address (currency1).
    :ivar fee: Pool fee tier in hundredths of a bip.
    :ivar tick_spacing: Pool tick spacing.
    :ivar hooks: Hooks contract address.
    """

    __slots__ = ("token_low", "token_high", "fee", "tick_spacing", "hooks")

    def __init__(
        self,
        token_a: str,
        token_b: str,
        fee: int,
        tick_spacing: int,
        hooks: str = ZERO_ADDRESS,
    ) -> None:
        """Initialize a pool key, sorting the tokens.

        :param token_a: One of the pool tokens.
        :param token_b: The other pool token.
        :param fee: Fee tier.
        :param tick_spacing: Tick spacing.
        :param hooks: Hooks address (default: zero address).
        :raises InvalidPairError: If tokens are equal or zero.
        :raises InvalidParameterError: If an address or number is malformed.
        """
        self.token_low, self.token_high = sort_tokens(token_a, token_b)
        if not isinstance(fee, int) or not 0 <= fee < 2**24:
            raise InvalidParameterError(f"Invalid fee tier: {fee!r}")
        if not isinstance(tick_spacing, int) or not 0 < tick_spacing < 2**23:
            raise InvalidParameterError(f"Invalid tick spacing: {tick_spacing!r}")
        self.fee = fee
        self.tick_spacing = tick_spacing
        self.hooks = to_token_address(hooks, "hooks")

    @classmethod
    def from_tokens(
        cls,
        token_a: str,
        token_b: str,
        config: OracleConfig,
        fee: int | None = None,
        tick_spacing: int | None = None,
        hooks: str = ZERO_ADDRESS,
    ) -> PairKey:
        """Build a key, filling fee and tick spacing from the configuration.

        :param token_a: One of the pool tokens.
        :param token_b: The other pool token.
        :param config: Oracle configuration providing defaults.
        :param fee: Fee tier (default: config.default_fee).
        :param tick_spacing: Tick spacing (default: derived from the fee tier).
        :param hooks: Hooks address.
        :returns: New PairKey.
        """
        pool_fee = config.default_fee if fee is None else fee
        spacing = config.tick_spacing_for_fee(pool_fee) if tick_spacing is None else tick_spacing
        return cls(token_a, token_b, pool_fee, spacing, hooks)

    def as_tuple(self) -> tuple[str, str, int, int, str]:
        """Return the key as the tuple passed to contract calls."""
        return (self.token_low, self.token_high, self.fee, self.tick_spacing, self.hooks)

    def pool_id(self) -> bytes:
        """Compute the 32-byte pool id (keccak256 of the ABI-encoded key)."""
        return Web3.keccak(abi_encode(POOL_KEY_ABI_TYPES, list(self.as_tuple())))

    def to_dict(self) -> dict:
        """Return a JSON-friendly view of the key."""
        return {
            "token0": self.token_low,
            "token1": self.token_high,
            "fee": self.fee,
            "tickSpacing": self.tick_spacing,
            "hooks": self.hooks,
        }

    def __str__(self) -> str:
        return f"{self.token_low}/{self.token_high}/{self.fee}"

    def __repr__(self) -> str:
        return (
            f"PairKey({self.token_low!r}, {self.token_high!r}, "
            f"fee={self.fee}, tick_spacing={self.tick_spacing}, hooks={self.hooks!r})"
        )

    def __hash__(self) -> int:
        return hash(self.as_tuple())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PairKey):
            return NotImplemented
        return self.as_tuple() == other.as_tuple()
