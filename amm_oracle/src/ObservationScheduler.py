"""ObservationScheduler: On-demand TWAP observation updates.

There is no background timer: observations are only recorded when a feeder
asks for one, so keeping the TWAP window populated is the caller's job.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .FeederAuthority import Role, load_account

if TYPE_CHECKING:
    from .ChainClient import ChainClient
    from .FeederAuthority import FeederAuthority
    from .PairKey import PairKey

logger = logging.getLogger(__name__)


class ObservationScheduler:
    """Submits TWAP observation transactions for feeders.

    :ivar authority: Role checker.
    :ivar chain: Chain client.
    """

    def __init__(self, authority: FeederAuthority, chain: ChainClient) -> None:
        self.authority = authority
        self.chain = chain

    def observe(self, pair: PairKey, signing_key: str) -> dict:
        """Record a new observation for a pair and wait for inclusion.

        :param pair: Canonical pair key.
        :param signing_key: Feeder private key.
        :returns: Transaction receipt fields plus the new observation count.
        :raises InvalidParameterError: If the signing key is malformed.
        :raises UnauthorizedError: If the signer is not a feeder.
        :raises ChainCallFailedError: If the transaction fails.
        """
        account = load_account(signing_key)
        self.authority.authorize(account.address, Role.FEEDER)

        receipt = self.chain.observe_pool_price(account, pair.token_low, pair.token_high)
        count = self.chain.get_observation_count(pair.token_low, pair.token_high)
        logger.info(f"{pair}: observation recorded by {account.address}, count={count}")
        return {
            **receipt,
            "token0": pair.token_low,
            "token1": pair.token_high,
            "observationCount": count,
        }

    def get_observation_count(self, pair: PairKey) -> int:
        """Return the number of observations recorded for a pair."""
        return self.chain.get_observation_count(pair.token_low, pair.token_high)
