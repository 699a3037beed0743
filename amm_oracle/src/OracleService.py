"""OracleService: Orchestrator for price reconciliation and protocol fees.

A single OracleService is built at startup from an OracleConfig and a
ChainClient and shared by every request. It owns the external feed store
(the only mutable shared state) and wires the components together:

    - FeederAuthority: role checks before mutations
    - ExternalFeedStore: externally submitted prices
    - PoolPriceReader: pool spot price and TWAP
    - PriceReconciler: external-preferred, pool-fallback price selection
    - ObservationScheduler: on-demand TWAP observations
    - ProtocolFeeCoordinator: controller, per-pool fees and accruals

Every public method takes the raw request values (token addresses in any
order) and returns JSON-friendly dicts. Validation runs before any chain
call, and authorization before any mutation.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Sequence

from .ChainClient import ChainClient
from .errors import InvalidParameterError
from .ExternalFeedStore import ExternalFeedStore, parse_price
from .FeederAuthority import FeederAuthority, Role, is_authorized, load_account, resolve_address
from .ObservationScheduler import ObservationScheduler
from .OracleConfig import OracleConfig
from .OracleRequests import FeedBatchItem
from .PairKey import PairKey
from .PoolPriceReader import PoolPriceReader
from .PriceReconciler import PriceReconciler
from .ProtocolFeeCoordinator import ProtocolFeeCoordinator

logger = logging.getLogger(__name__)


class OracleService:
    """Oracle and protocol fee service.

    :ivar config: Process-wide configuration (read-only).
    :ivar chain: Chain client.
    :ivar authority: Role checker.
    :ivar store: External feed store.
    :ivar pool_reader: Pool price reader.
    :ivar reconciler: Price reconciler.
    :ivar scheduler: Observation scheduler.
    :ivar fees: Protocol fee coordinator.
    """

    def __init__(
        self,
        config: OracleConfig,
        chain: ChainClient,
        store: ExternalFeedStore | None = None,
    ) -> None:
        """Initialize the service.

        :param config: Oracle configuration.
        :param chain: Chain client (or a compatible fake in tests).
        :param store: Optional pre-built feed store.
        """
        self.config = config
        self.chain = chain
        self.authority = FeederAuthority(config, chain)
        self.store = store or ExternalFeedStore(config.max_price_age_seconds)
        self.pool_reader = PoolPriceReader(config, chain)
        self.reconciler = PriceReconciler(self.store, self.pool_reader)
        self.scheduler = ObservationScheduler(self.authority, chain)
        self.fees = ProtocolFeeCoordinator(self.authority, chain)

        logger.info(
            f"OracleService initialized: feeders={len(config.authorized_feeders)}, "
            f"max_price_age={config.max_price_age_seconds}s, "
            f"twap_window={config.twap_window_seconds}s"
        )

    @classmethod
    def from_config(cls, config: OracleConfig) -> OracleService:
        """Build a service connected to the configured RPC endpoint."""
        return cls(config, ChainClient(config))

    def pair(self, token_a: str, token_b: str, fee: int | None = None) -> PairKey:
        """Build the canonical pair key for two tokens."""
        return PairKey.from_tokens(token_a, token_b, self.config, fee=fee)

    @staticmethod
    def _signer(signing_key: str) -> str:
        # Mutations require a private key; plain addresses are rejected
        return load_account(signing_key).address

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    def get_price(self, token_a: str, token_b: str) -> dict:
        """Reconciled price: fresh external price, else pool price."""
        return self.reconciler.get_price(self.pair(token_a, token_b)).to_dict()

    def get_pool_price(self, token_a: str, token_b: str) -> dict:
        """Pool spot price only."""
        return self.reconciler.get_pool_price(self.pair(token_a, token_b)).to_dict()

    def get_external_price(self, token_a: str, token_b: str) -> dict:
        """External price only; NotFound when missing, invalid or stale."""
        return self.reconciler.get_external_price(self.pair(token_a, token_b)).to_dict()

    def get_twap(self, token_a: str, token_b: str) -> dict:
        """TWAP over the configured window."""
        return self.pool_reader.get_twap(self.pair(token_a, token_b)).to_dict()

    # ------------------------------------------------------------------
    # External feed
    # ------------------------------------------------------------------

    def feed(self, signing_key: str, token_a: str, token_b: str, price: Any) -> dict:
        """Submit an external price.

        :raises InvalidPairError: If the tokens are equal or zero.
        :raises InvalidParameterError: If the price is not positive and finite.
        :raises UnauthorizedError: If the signer is not a feeder.
        """
        pair = self.pair(token_a, token_b)
        parsed = parse_price(price)
        feeder = self.authority.authorize(self._signer(signing_key), Role.FEEDER)
        return self.store.feed(pair, parsed, feeder).to_dict()

    def feed_batch(
        self,
        signing_key: str,
        pairs: Sequence[Mapping[str, Any]],
        cancel_event: threading.Event | None = None,
    ) -> dict:
        """Submit several external prices in order.

        The signer is authorized once for the whole batch. Each entry is then
        validated and stored independently; failures are reported per entry.

        :param signing_key: Feeder private key.
        :param pairs: ``{"tokenA", "tokenB", "price"}`` payloads.
        :param cancel_event: Optional event stopping the remaining entries.
        :returns: BatchResult as a dict.
        :raises UnauthorizedError: If the signer is not a feeder.
        """
        feeder = self.authority.authorize(self._signer(signing_key), Role.FEEDER)

        def _resolve(item: Any) -> tuple[PairKey, Any]:
            if not isinstance(item, Mapping):
                raise InvalidParameterError("Batch entry must be an object")
            request = FeedBatchItem.from_payload(item)
            return self.pair(request.token_a, request.token_b), request.price

        contexts = [
            {"tokenA": item.get("tokenA", item.get("token0")),
             "tokenB": item.get("tokenB", item.get("token1"))}
            if isinstance(item, Mapping) else {}
            for item in pairs
        ]
        result = self.store.feed_batch(
            feeder, list(pairs), cancel_event, resolve=_resolve, contexts=contexts
        )
        return result.to_dict()

    def invalidate(self, signing_key: str, token_a: str, token_b: str) -> dict:
        """Invalidate the external price of a pair (feeder or admin).

        :returns: ``{"pair", "existed"}``; succeeds even if nothing was stored.
        """
        pair = self.pair(token_a, token_b)
        caller = self.authority.authorize(self._signer(signing_key), Role.FEEDER, Role.ADMIN)
        existed = self.store.invalidate(pair)
        logger.info(f"{pair}: invalidate by {caller} (existed={existed})")
        return {"pair": pair.to_dict(), "existed": existed}

    # ------------------------------------------------------------------
    # Observations
    # ------------------------------------------------------------------

    def observe(self, signing_key: str, token_a: str, token_b: str) -> dict:
        """Record a TWAP observation and wait for inclusion."""
        return self.scheduler.observe(self.pair(token_a, token_b), signing_key)

    def get_observation_count(self, token_a: str, token_b: str) -> dict:
        """Number of TWAP observations recorded for a pair."""
        pair = self.pair(token_a, token_b)
        return {"pair": pair.to_dict(), "count": self.scheduler.get_observation_count(pair)}

    # ------------------------------------------------------------------
    # Configuration and roles
    # ------------------------------------------------------------------

    def get_config(self) -> dict:
        """Public view of the oracle configuration."""
        return self.config.to_dict()

    def get_admin(self) -> dict:
        """Oracle admin address."""
        return {"admin": self.config.admin_address}

    def check_feeder(self, account: str) -> dict:
        """Whether an address may feed prices."""
        address = resolve_address(account)
        return {
            "account": address,
            "isAuthorized": is_authorized(self.config, address, Role.FEEDER),
        }

    # ------------------------------------------------------------------
    # Protocol fees
    # ------------------------------------------------------------------

    def get_fee_controller(self) -> dict:
        return self.fees.get_controller()

    def get_accrued_fee(self, token_address: str) -> dict:
        return self.fees.get_accrued(token_address).to_dict()

    def get_all_accrued(self, token_addresses: Sequence[str]) -> dict:
        return self.fees.get_all_accrued(list(token_addresses))

    def get_pool_fee(self, token_a: str, token_b: str, fee: int | None = None) -> dict:
        return self.fees.get_pool_fee(self.pair(token_a, token_b, fee))

    def set_controller(self, signing_key: str, controller_address: str) -> dict:
        return self.fees.set_controller(signing_key, controller_address)

    def set_fee(
        self,
        signing_key: str,
        token_a: str,
        token_b: str,
        fee: int | None = None,
        protocol_fee: int | Mapping[str, int] = 0,
    ) -> dict:
        return self.fees.set_fee(signing_key, self.pair(token_a, token_b, fee), protocol_fee)

    def collect_fees(
        self, signing_key: str, recipient: str, token_address: str, amount: str = "0"
    ) -> dict:
        return self.fees.collect(signing_key, recipient, token_address, amount)
