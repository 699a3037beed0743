"""Shared fixtures: an in-memory chain and a wired OracleService."""

from __future__ import annotations

import pytest
from eth_account import Account

from amm_oracle.src.errors import ChainCallFailedError
from amm_oracle.src.OracleApi import OracleApi
from amm_oracle.src.OracleConfig import OracleConfig
from amm_oracle.src.OracleService import OracleService
from amm_oracle.src.PoolPriceReader import Q96

# Well-known local development keys (Hardhat/Anvil accounts 0-4)
ADMIN_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
FEEDER_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
CONTROLLER_KEY = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"
OWNER_KEY = "0x7c852118294e51e653712a81e05800f419141751be58f605c371e15141b007a6"
OUTSIDER_KEY = "0x47e179ec197488593b187f80a00eb0da91f1b9d0b13f8733639f19c30a34926a"

ADMIN = Account.from_key(ADMIN_KEY).address
FEEDER = Account.from_key(FEEDER_KEY).address
CONTROLLER = Account.from_key(CONTROLLER_KEY).address
OWNER = Account.from_key(OWNER_KEY).address
OUTSIDER = Account.from_key(OUTSIDER_KEY).address

# Digit-only addresses are their own checksum form
TOKEN_LOW = "0x" + "11" * 20
TOKEN_HIGH = "0x" + "22" * 20
TOKEN_OTHER = "0x" + "33" * 20

TX_HASH = "0x" + "ab" * 32


class FakeChain:
    """In-memory stand-in for ChainClient.

    Pools are initialized at price 1 unless ``slot0`` says otherwise. Writes
    are recorded in ``sent`` and return receipt dicts shaped like
    ChainClient's.
    """

    def __init__(self) -> None:
        self.slot0: dict[bytes, tuple[int, int, int, int]] = {}
        self.default_slot0 = (Q96, 0, 0, 3000)
        self.block = (100, 1_700_000_000)
        self.observation_counts: dict[tuple[str, str], int] = {}
        self.twaps: dict[tuple[str, str], int] = {}
        self.controller = CONTROLLER
        self.owner = OWNER
        self.accrued: dict[str, int] = {}
        # Fees accruing while a collect transaction is pending
        self.accrue_on_collect: dict[str, int] = {}
        self.failing_tokens: set[str] = set()
        self.sent: list[tuple] = []
        self.reads = 0

    def _receipt(self) -> dict:
        return {"txHash": TX_HASH, "gasUsed": "21000", "blockNumber": self.block[0] + 1}

    # Reads

    def get_latest_block(self) -> tuple[int, int]:
        self.reads += 1
        return self.block

    def get_slot0(self, pool_id: bytes) -> tuple[int, int, int, int]:
        self.reads += 1
        return self.slot0.get(pool_id, self.default_slot0)

    def get_observation_count(self, token0: str, token1: str) -> int:
        self.reads += 1
        return self.observation_counts.get((token0, token1), 0)

    def get_twap(self, token0: str, token1: str) -> int:
        self.reads += 1
        return self.twaps.get((token0, token1), 0)

    def get_protocol_fee_controller(self) -> str:
        self.reads += 1
        return self.controller

    def get_pool_manager_owner(self) -> str:
        self.reads += 1
        return self.owner

    def get_protocol_fees_accrued(self, token: str) -> int:
        self.reads += 1
        if token in self.failing_tokens:
            raise ChainCallFailedError("PoolManager.protocolFeesAccrued failed", "boom")
        return self.accrued.get(token, 0)

    # Writes

    def observe_pool_price(self, account, token0: str, token1: str) -> dict:
        self.sent.append(("observePoolPrice", account.address, token0, token1))
        key = (token0, token1)
        self.observation_counts[key] = self.observation_counts.get(key, 0) + 1
        return self._receipt()

    def set_protocol_fee_controller(self, account, controller: str) -> dict:
        self.sent.append(("setProtocolFeeController", account.address, controller))
        self.controller = controller
        return self._receipt()

    def set_protocol_fee(self, account, pool_key: tuple, protocol_fee: int) -> dict:
        self.sent.append(("setProtocolFee", account.address, pool_key, protocol_fee))
        return self._receipt()

    def collect_protocol_fees(self, account, recipient: str, token: str, amount: int) -> dict:
        self.sent.append(("collectProtocolFees", account.address, recipient, token, amount))
        available = self.accrued.get(token, 0) + self.accrue_on_collect.get(token, 0)
        # amount 0 collects the whole balance at execution time
        taken = available if amount == 0 else min(amount, available)
        self.accrued[token] = available - taken
        return self._receipt()


@pytest.fixture
def config() -> OracleConfig:
    return OracleConfig(
        admin_address=ADMIN,
        authorized_feeders=frozenset({FEEDER}),
        max_price_age_seconds=3600,
    )


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def service(config: OracleConfig, chain: FakeChain) -> OracleService:
    return OracleService(config, chain)


@pytest.fixture
def api(service: OracleService) -> OracleApi:
    return OracleApi(service)
