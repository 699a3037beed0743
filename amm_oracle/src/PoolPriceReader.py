"""PoolPriceReader: Spot and TWAP prices read from the pool.

Spot prices come from the pool's ``slot0`` square-root price:

    price = (sqrtPriceX96 / 2**96) ** 2

which is the amount of token_high (currency1) per unit of token_low
(currency0), in raw token units. Every price returned by this module uses
that orientation; ``inverse_price`` carries the other one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, localcontext
from enum import Enum
from typing import TYPE_CHECKING

from .errors import ContractRevertError, InsufficientObservationsError, NotFoundError

if TYPE_CHECKING:
    from .ChainClient import ChainClient
    from .OracleConfig import OracleConfig
    from .PairKey import PairKey

logger = logging.getLogger(__name__)

Q96 = 2**96
# Fixed point precision of on-chain TWAP values.
PRICE_DECIMALS = 18
MIN_TWAP_OBSERVATIONS = 2


class PriceSource(str, Enum):
    """Origin of a price observation."""

    POOL = "pool"
    EXTERNAL = "external"


@dataclass(frozen=True)
class PriceObservation:
    """A single price reading. Never mutated once produced.

    :ivar pair: Pair the price refers to.
    :ivar price: Amount of token_high per unit of token_low.
    :ivar source: Where the price came from.
    :ivar observed_at_block: Block number of the reading (None for external prices).
    :ivar observed_at_time: Unix timestamp of the reading.
    :ivar sqrt_price_x96: Raw pool square-root price, for pool readings.
    :ivar tick: Pool tick, for pool readings.
    """

    pair: PairKey
    price: Decimal
    source: PriceSource
    observed_at_block: int | None
    observed_at_time: float
    sqrt_price_x96: int | None = None
    tick: int | None = None

    @property
    def inverse_price(self) -> Decimal:
        """Amount of token_low per unit of token_high."""
        with localcontext() as ctx:
            ctx.prec = 40
            return Decimal(1) / self.price

    def to_dict(self) -> dict:
        data = {
            "pair": self.pair.to_dict(),
            "price": str(self.price),
            "inversePrice": str(self.inverse_price),
            "source": self.source.value,
            "observedAtBlock": self.observed_at_block,
            "observedAtTime": self.observed_at_time,
        }
        if self.sqrt_price_x96 is not None:
            data["sqrtPriceX96"] = str(self.sqrt_price_x96)
            data["tick"] = self.tick
        return data


@dataclass(frozen=True)
class TWAPState:
    """Read-only view of a pair's TWAP accumulator."""

    pair: PairKey
    observation_count: int
    window_seconds: int


@dataclass(frozen=True)
class TWAPReading:
    """TWAP value together with the accumulator state it was read from."""

    state: TWAPState
    twap: Decimal

    def to_dict(self) -> dict:
        return {
            "pair": self.state.pair.to_dict(),
            "twap": str(self.twap),
            "windowSeconds": self.state.window_seconds,
            "observationCount": self.state.observation_count,
        }


def sqrt_price_x96_to_price(sqrt_price_x96: int) -> Decimal:
    """Convert a Q64.96 square-root price to a decimal price.

    :param sqrt_price_x96: Pool square-root price.
    :returns: token_high per token_low.

    .. code-block:: python

        >>> sqrt_price_x96_to_price(2**96)
        Decimal('1')
        >>> sqrt_price_x96_to_price(2 * 2**96)
        Decimal('4')
    """
    with localcontext() as ctx:
        ctx.prec = 80
        return Decimal(sqrt_price_x96 * sqrt_price_x96) / Decimal(Q96 * Q96)


def from_fixed_point(value: int, decimals: int = PRICE_DECIMALS) -> Decimal:
    """Scale a fixed point integer down to a Decimal."""
    return Decimal(value).scaleb(-decimals)


class PoolPriceReader:
    """Reads spot and TWAP prices for a pair from chain.

    :ivar config: Oracle configuration.
    :ivar chain: Chain client.
    """

    def __init__(self, config: OracleConfig, chain: ChainClient) -> None:
        self.config = config
        self.chain = chain

    def get_pool_price(self, pair: PairKey) -> PriceObservation:
        """Read the current spot price of the pool.

        :param pair: Canonical pair key.
        :returns: Pool price observation.
        :raises NotFoundError: If the pool is not initialized.
        :raises ChainCallFailedError: If the RPC fails.
        """
        sqrt_price_x96, tick, _, _ = self.chain.get_slot0(pair.pool_id())
        if sqrt_price_x96 == 0:
            raise NotFoundError(f"Pool {pair} is not initialized")

        block_number, block_time = self.chain.get_latest_block()
        price = sqrt_price_x96_to_price(sqrt_price_x96)
        logger.debug(f"{pair}: pool price {price} (tick={tick}, block={block_number})")
        return PriceObservation(
            pair=pair,
            price=price,
            source=PriceSource.POOL,
            observed_at_block=block_number,
            observed_at_time=float(block_time),
            sqrt_price_x96=sqrt_price_x96,
            tick=tick,
        )

    def get_twap_state(self, pair: PairKey) -> TWAPState:
        """Read the TWAP accumulator state of a pair."""
        count = self.chain.get_observation_count(pair.token_low, pair.token_high)
        return TWAPState(pair, count, self.config.twap_window_seconds)

    def get_twap(self, pair: PairKey) -> TWAPReading:
        """Read the TWAP over the configured window.

        :param pair: Canonical pair key.
        :returns: TWAP reading.
        :raises InsufficientObservationsError: If fewer than two observations
            exist, or the recorded ones do not span the window yet.
        :raises ChainCallFailedError: If the RPC fails.
        """
        state = self.get_twap_state(pair)
        if state.observation_count < MIN_TWAP_OBSERVATIONS:
            raise InsufficientObservationsError(
                f"{pair} has {state.observation_count} observation(s), "
                f"at least {MIN_TWAP_OBSERVATIONS} are needed for a TWAP"
            )
        try:
            raw = self.chain.get_twap(pair.token_low, pair.token_high)
        except ContractRevertError as e:
            # The oracle reverts while its observations do not cover the window
            raise InsufficientObservationsError(
                f"{pair} observations do not span the {state.window_seconds}s TWAP window: "
                f"{e.revert_reason}"
            ) from e
        return TWAPReading(state, from_fixed_point(raw))
