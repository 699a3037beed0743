"""Unit tests for ObservationScheduler."""

import pytest

from amm_oracle.src.errors import InvalidParameterError, UnauthorizedError
from amm_oracle.src.FeederAuthority import FeederAuthority
from amm_oracle.src.ObservationScheduler import ObservationScheduler
from amm_oracle.src.PairKey import PairKey

from conftest import FEEDER, FEEDER_KEY, OUTSIDER_KEY, TOKEN_HIGH, TOKEN_LOW, TX_HASH

PAIR = PairKey(TOKEN_HIGH, TOKEN_LOW, 3000, 60)


@pytest.fixture
def scheduler(config, chain) -> ObservationScheduler:
    return ObservationScheduler(FeederAuthority(config, chain), chain)


class TestObserve:
    """Test on-demand observations."""

    def test_observe(self, scheduler, chain) -> None:
        """A feeder observation should be sent with sorted tokens."""
        result = scheduler.observe(PAIR, FEEDER_KEY)

        assert chain.sent == [("observePoolPrice", FEEDER, TOKEN_LOW, TOKEN_HIGH)]
        assert result["txHash"] == TX_HASH
        assert result["token0"] == TOKEN_LOW
        assert result["token1"] == TOKEN_HIGH
        assert result["observationCount"] == 1

    def test_count_grows(self, scheduler) -> None:
        """Each observation should increase the count."""
        scheduler.observe(PAIR, FEEDER_KEY)
        scheduler.observe(PAIR, FEEDER_KEY)
        assert scheduler.get_observation_count(PAIR) == 2

    def test_unauthorized(self, scheduler, chain) -> None:
        """Non-feeders should be rejected before any transaction."""
        with pytest.raises(UnauthorizedError):
            scheduler.observe(PAIR, OUTSIDER_KEY)
        assert chain.sent == []

    def test_address_not_accepted(self, scheduler, chain) -> None:
        """Observing needs a signing key, not an address."""
        with pytest.raises(InvalidParameterError):
            scheduler.observe(PAIR, FEEDER)
        assert chain.sent == []
