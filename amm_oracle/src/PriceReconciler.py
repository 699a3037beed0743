"""PriceReconciler: Combines the external feed and the pool price.

Policy for the combined price (external preferred, pool fallback):
    1. The pair key is canonical by construction (tokens sorted).
    2. A valid external entry with ``now - submitted_at <= max_price_age_seconds``
       is returned with source=external.
    3. Otherwise the pool spot price is returned with source=pool.
    4. If the pool has no price either, NotFoundError is raised.

The single-source reads (``get_pool_price``, ``get_external_price``) do no
reconciliation and raise NotFoundError when their source has nothing usable.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .errors import NotFoundError, StaleError
from .PoolPriceReader import PriceObservation, PriceSource

if TYPE_CHECKING:
    from .ExternalFeedStore import ExternalFeedEntry, ExternalFeedStore
    from .PairKey import PairKey
    from .PoolPriceReader import PoolPriceReader

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconciledPrice:
    """Answer of the combined price read.

    :ivar observation: The chosen price.
    :ivar external_entry: External entry that was considered, if any.
    :ivar is_stale: Whether the considered external entry was stale.
    """

    observation: PriceObservation
    external_entry: ExternalFeedEntry | None = None
    is_stale: bool = False

    @property
    def from_pool(self) -> bool:
        return self.observation.source is PriceSource.POOL

    def to_dict(self) -> dict:
        data = self.observation.to_dict()
        data["fromPool"] = self.from_pool
        data["isStale"] = self.is_stale
        data["lastUpdate"] = (
            self.external_entry.submitted_at if self.external_entry is not None else None
        )
        return data


def external_observation(entry: ExternalFeedEntry) -> PriceObservation:
    """Turn an external feed entry into a price observation."""
    return PriceObservation(
        pair=entry.pair,
        price=entry.price,
        source=PriceSource.EXTERNAL,
        observed_at_block=None,
        observed_at_time=entry.submitted_at,
    )


class PriceReconciler:
    """Chooses between the external feed and the pool price.

    :ivar store: External feed store.
    :ivar pool_reader: Pool price reader.
    """

    def __init__(self, store: ExternalFeedStore, pool_reader: PoolPriceReader) -> None:
        self.store = store
        self.pool_reader = pool_reader

    def get_price(self, pair: PairKey) -> ReconciledPrice:
        """Return the reconciled price of a pair.

        :param pair: Canonical pair key.
        :returns: External price if usable, else the pool price.
        :raises NotFoundError: If neither source has a price.
        :raises ChainCallFailedError: If the pool read fails on RPC.
        """
        now = time.time()
        entry: ExternalFeedEntry | None
        try:
            entry = self.store.get(pair)
        except NotFoundError:
            entry = None

        stale = False
        if entry is not None:
            if self.store.is_usable(entry, now):
                return ReconciledPrice(external_observation(entry), entry, False)
            stale = self.store.is_stale(entry, now)
            logger.debug(
                f"{pair}: external price unusable (valid={entry.valid}, stale={stale}), "
                "falling back to pool"
            )

        try:
            observation = self.pool_reader.get_pool_price(pair)
        except NotFoundError as e:
            raise NotFoundError(f"No usable price for {pair}: {e}") from e
        return ReconciledPrice(observation, entry, stale)

    def get_pool_price(self, pair: PairKey) -> PriceObservation:
        """Return the pool price only (NotFoundError if uninitialized)."""
        return self.pool_reader.get_pool_price(pair)

    def get_external_price(self, pair: PairKey) -> PriceObservation:
        """Return the external price only.

        :param pair: Canonical pair key.
        :returns: External price observation.
        :raises NotFoundError: If no entry exists or it was invalidated.
        :raises StaleError: If the entry is older than the allowed age.
        """
        entry = self.store.get(pair)
        if not entry.valid:
            raise NotFoundError(f"External price for {pair} was invalidated")
        if self.store.is_stale(entry):
            raise StaleError(
                f"External price for {pair} is stale "
                f"(age {entry.age():.0f}s > {self.store.max_price_age_seconds}s)"
            )
        return external_observation(entry)
