"""Unit tests for PoolPriceReader."""

from decimal import Decimal
from unittest.mock import patch

import pytest

from amm_oracle.src.errors import (
    ChainCallFailedError,
    ContractRevertError,
    InsufficientObservationsError,
    NotFoundError,
)
from amm_oracle.src.PairKey import PairKey
from amm_oracle.src.PoolPriceReader import (
    Q96,
    PoolPriceReader,
    PriceSource,
    from_fixed_point,
    sqrt_price_x96_to_price,
)

from conftest import TOKEN_HIGH, TOKEN_LOW

PAIR = PairKey(TOKEN_LOW, TOKEN_HIGH, 3000, 60)


class TestSqrtPriceConversion:
    """Test Q64.96 square-root price conversion."""

    def test_unit_price(self) -> None:
        """sqrtPriceX96 == 2**96 should be price 1."""
        assert sqrt_price_x96_to_price(Q96) == Decimal(1)

    def test_squared(self) -> None:
        """Price should be the square of the ratio."""
        assert sqrt_price_x96_to_price(3 * Q96) == Decimal(9)
        assert sqrt_price_x96_to_price(Q96 // 2) == Decimal("0.25")

    def test_fixed_point(self) -> None:
        """18-decimal integers should scale down exactly."""
        assert from_fixed_point(1_500_000_000_000_000_000) == Decimal("1.5")


class TestPoolPrice:
    """Test spot price reads."""

    def test_pool_price(self, config, chain) -> None:
        """Spot price should be stamped with the latest block."""
        chain.slot0[PAIR.pool_id()] = (2 * Q96, 13863, 0, 3000)
        observation = PoolPriceReader(config, chain).get_pool_price(PAIR)

        assert observation.price == Decimal(4)
        assert observation.inverse_price == Decimal("0.25")
        assert observation.source is PriceSource.POOL
        assert observation.observed_at_block == 100
        assert observation.observed_at_time == 1_700_000_000.0
        assert observation.tick == 13863

    def test_uninitialized_pool(self, config, chain) -> None:
        """sqrtPriceX96 == 0 means no pool price."""
        chain.slot0[PAIR.pool_id()] = (0, 0, 0, 0)
        with pytest.raises(NotFoundError, match="not initialized"):
            PoolPriceReader(config, chain).get_pool_price(PAIR)

    def test_to_dict(self, config, chain) -> None:
        """Dict view should carry the raw pool fields."""
        data = PoolPriceReader(config, chain).get_pool_price(PAIR).to_dict()
        assert data["price"] == "1"
        assert data["source"] == "pool"
        assert data["sqrtPriceX96"] == str(Q96)
        assert data["pair"]["token0"] == TOKEN_LOW


class TestTwap:
    """Test TWAP reads."""

    def test_insufficient_observations(self, config, chain) -> None:
        """Fewer than two observations should not produce a TWAP."""
        chain.observation_counts[(TOKEN_LOW, TOKEN_HIGH)] = 1
        with pytest.raises(InsufficientObservationsError):
            PoolPriceReader(config, chain).get_twap(PAIR)

    def test_twap(self, config, chain) -> None:
        """TWAP should be scaled from 18 decimals."""
        chain.observation_counts[(TOKEN_LOW, TOKEN_HIGH)] = 5
        chain.twaps[(TOKEN_LOW, TOKEN_HIGH)] = 2_000_000_000_000_000_000
        reading = PoolPriceReader(config, chain).get_twap(PAIR)

        assert reading.twap == Decimal(2)
        assert reading.to_dict()["windowSeconds"] == 1800
        assert reading.to_dict()["observationCount"] == 5

    def test_window_not_spanned(self, config, chain) -> None:
        """A TWAP revert should mean the window is not populated yet."""
        chain.observation_counts[(TOKEN_LOW, TOKEN_HIGH)] = 2
        revert = ContractRevertError("PriceOracle.getTWAP reverted", "window not covered")
        with patch.object(chain, "get_twap", side_effect=revert):
            with pytest.raises(InsufficientObservationsError, match="window not covered"):
                PoolPriceReader(config, chain).get_twap(PAIR)

    def test_twap_rpc_failure(self, config, chain) -> None:
        """Transport failures of the TWAP read should stay ChainCallFailed."""
        chain.observation_counts[(TOKEN_LOW, TOKEN_HIGH)] = 2
        failure = ChainCallFailedError("PriceOracle.getTWAP failed", "connection refused")
        with patch.object(chain, "get_twap", side_effect=failure):
            with pytest.raises(ChainCallFailedError, match="connection refused"):
                PoolPriceReader(config, chain).get_twap(PAIR)

    def test_twap_state(self, config, chain) -> None:
        """State should be readable without a populated window."""
        state = PoolPriceReader(config, chain).get_twap_state(PAIR)
        assert state.observation_count == 0
        assert state.window_seconds == config.twap_window_seconds
