"""
AMM Price Oracle - Price Reconciliation and Protocol Fee Module

This module serves token pair prices and protocol fee administration:
- PairKey: Canonical (sorted) token pair and pool key
- ExternalFeedStore: Externally fed prices with staleness and invalidation
- PoolPriceReader: Pool spot price and TWAP reads
- PriceReconciler: External-preferred, pool-fallback price selection
- ObservationScheduler: On-demand TWAP observations
- ProtocolFeeCoordinator: Fee controller, per-pool fees and collection
- OracleService: Main orchestrator shared by all requests
- OracleApi: Operation dispatch and response envelopes
"""

from .ChainClient import ChainClient
from .errors import OracleError
from .ExternalFeedStore import ExternalFeedEntry, ExternalFeedStore
from .OracleApi import OracleApi
from .OracleConfig import OracleConfig
from .OracleService import OracleService
from .PairKey import PairKey
from .PoolPriceReader import PoolPriceReader, PriceObservation
from .PriceReconciler import PriceReconciler, ReconciledPrice
from .ProtocolFeeCoordinator import ProtocolFeeCoordinator

__all__ = [
    "ChainClient",
    "ExternalFeedEntry",
    "ExternalFeedStore",
    "OracleApi",
    "OracleConfig",
    "OracleError",
    "OracleService",
    "PairKey",
    "PoolPriceReader",
    "PriceObservation",
    "PriceReconciler",
    "ProtocolFeeCoordinator",
    "ReconciledPrice",
]
