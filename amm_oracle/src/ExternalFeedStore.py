"""ExternalFeedStore: Latest externally submitted price per pair.

One entry is kept per PairKey. Entries become stale on their own once
``now - submitted_at > max_price_age_seconds``; staleness is evaluated at read
time and there is no background sweep. Invalidation is explicit and
immediate, independent of age.

Concurrent feeds for the same pair race by timestamp: under the store lock a
write only replaces an entry whose ``submitted_at`` is not newer than its own,
so the latest ``submitted_at`` always wins regardless of arrival order.

.. code-block:: python

    >>> store = ExternalFeedStore(max_price_age_seconds=3600)
    >>> entry = store.feed(pair, Decimal("1.05"), feeder)
    >>> store.get(pair).price
    Decimal('1.05')
    >>> store.invalidate(pair)
    True
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Callable, Sequence

from .BatchRunner import BatchResult, run_sequential_batch
from .errors import InvalidParameterError, NotFoundError

if TYPE_CHECKING:
    from .PairKey import PairKey

logger = logging.getLogger(__name__)


def parse_price(value: object) -> Decimal:
    """Parse a price into a strictly positive finite Decimal.

    :param value: Price as Decimal, int, float or numeric string.
    :returns: Parsed Decimal.
    :raises InvalidParameterError: If the value is not a positive finite number.
    """
    if isinstance(value, bool):
        raise InvalidParameterError(f"Invalid price: {value!r}")
    try:
        price = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError) as e:
        raise InvalidParameterError(f"Invalid price: {value!r}") from e
    if not price.is_finite() or price <= 0:
        raise InvalidParameterError(f"Price must be a positive finite number, got {value!r}")
    return price


@dataclass(frozen=True)
class ExternalFeedEntry:
    """An externally submitted price.

    :ivar pair: Pair the price refers to.
    :ivar price: Amount of token_high per unit of token_low.
    :ivar feeder_address: Address that submitted the price.
    :ivar submitted_at: Unix timestamp of submission.
    :ivar valid: False once invalidated.
    """

    pair: PairKey
    price: Decimal
    feeder_address: str
    submitted_at: float
    valid: bool = True

    def age(self, now: float | None = None) -> float:
        """Seconds elapsed since submission."""
        return (time.time() if now is None else now) - self.submitted_at

    def to_dict(self) -> dict:
        return {
            "pair": self.pair.to_dict(),
            "price": str(self.price),
            "feeder": self.feeder_address,
            "timestamp": self.submitted_at,
            "isValid": self.valid,
        }


class ExternalFeedStore:
    """Thread-safe store of external price entries.

    :ivar max_price_age_seconds: Age after which an entry is stale.
    """

    def __init__(self, max_price_age_seconds: float) -> None:
        """Initialize an empty store.

        :param max_price_age_seconds: Staleness threshold in seconds.
        """
        self.max_price_age_seconds = max_price_age_seconds
        self._entries: dict[PairKey, ExternalFeedEntry] = {}
        self._lock = threading.Lock()

    def feed(
        self,
        pair: PairKey,
        price: object,
        feeder_address: str,
        submitted_at: float | None = None,
    ) -> ExternalFeedEntry:
        """Create or overwrite the entry of a pair.

        Authorization is the caller's responsibility (see FeederAuthority).

        :param pair: Canonical pair key (tokens already validated).
        :param price: Strictly positive finite price.
        :param feeder_address: Submitting address.
        :param submitted_at: Submission time (default: now).
        :returns: The entry stored for the pair after the write.
        :raises InvalidParameterError: If the price is not positive and finite.
        """
        parsed = parse_price(price)
        stamp = time.time() if submitted_at is None else submitted_at
        entry = ExternalFeedEntry(pair, parsed, feeder_address, stamp)

        with self._lock:
            current = self._entries.get(pair)
            if current is not None and current.submitted_at > stamp:
                logger.info(
                    f"{pair}: dropped feed from {feeder_address} at {stamp}, "
                    f"newer entry from {current.submitted_at} kept"
                )
                return current
            self._entries[pair] = entry

        logger.info(f"{pair}: external price {parsed} fed by {feeder_address}")
        return entry

    def feed_batch(
        self,
        feeder_address: str,
        entries: Sequence[Any],
        cancel_event: threading.Event | None = None,
        resolve: Callable[[Any], tuple[PairKey, object]] | None = None,
        contexts: Sequence[dict[str, Any]] | None = None,
    ) -> BatchResult:
        """Feed several prices in input order.

        A bad entry (e.g. a non-positive price or an invalid pair) fails
        alone; earlier and later entries are still stored.

        :param feeder_address: Submitting address, already authorized.
        :param entries: ``(pair, price)`` tuples, or raw items understood by ``resolve``.
        :param cancel_event: Optional event stopping the remaining entries.
        :param resolve: Turns a raw entry into ``(pair, price)``; its errors
            are reported against that entry only.
        :param contexts: Optional per-entry fields echoed in each result.
        :returns: Per-entry results aligned with ``entries``.
        """
        def _feed_one(item: Any) -> Callable[[], dict]:
            def _run() -> dict:
                pair, price = resolve(item) if resolve is not None else item
                return self.feed(pair, price, feeder_address).to_dict()
            return _run

        return run_sequential_batch(
            [_feed_one(item) for item in entries],
            cancel_event,
            label="feed-batch",
            contexts=contexts,
        )

    def invalidate(self, pair: PairKey) -> bool:
        """Mark the entry of a pair invalid.

        Idempotent: invalidating a missing or already invalid entry succeeds.

        :param pair: Canonical pair key.
        :returns: True if an entry existed for the pair.
        """
        with self._lock:
            current = self._entries.get(pair)
            if current is None:
                return False
            if current.valid:
                self._entries[pair] = replace(current, valid=False)

        logger.info(f"{pair}: external price invalidated")
        return True

    def get(self, pair: PairKey) -> ExternalFeedEntry:
        """Return the stored entry of a pair, valid or not.

        :param pair: Canonical pair key.
        :returns: Stored entry.
        :raises NotFoundError: If the pair has never been fed.
        """
        with self._lock:
            entry = self._entries.get(pair)
        if entry is None:
            raise NotFoundError(f"No external price for {pair}")
        return entry

    def is_stale(self, entry: ExternalFeedEntry, now: float | None = None) -> bool:
        """Check whether an entry is older than max_price_age_seconds."""
        return entry.age(now) > self.max_price_age_seconds

    def is_usable(self, entry: ExternalFeedEntry, now: float | None = None) -> bool:
        """Check whether an entry is valid and fresh."""
        return entry.valid and not self.is_stale(entry, now)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
