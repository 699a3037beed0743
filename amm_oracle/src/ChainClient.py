"""ChainClient: Web3 connection, contract ABIs and transaction submission.

All chain reads and writes used by the oracle go through this class. Reads
are retried with exponential backoff on transient transport failures
(connection errors, timeouts, HTTP 429 and 5xx). Other transport errors and
contract reverts are never retried and surface as ChainCallFailedError,
reverts with their reason verbatim.

Writes are signed locally with the caller's key, broadcast once, and block
until the receipt is available (bounded by ``OracleConfig.tx_timeout``).
Only the steps before broadcast (nonce, gas price, gas estimation) are
retried, so a transaction is never sent twice.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, TypeVar

import requests
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .errors import ChainCallFailedError, ContractRevertError

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount
    from web3.contract import Contract
    from web3.contract.contract import ContractFunction

    from .OracleConfig import OracleConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Retry configuration for transient RPC failures
BACKOFF_BASE = 0.5
BACKOFF_MAX = 5.0

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)

# HTTP statuses of the RPC endpoint worth retrying
TRANSIENT_HTTP_STATUSES = frozenset({429, 500, 502, 503, 504})

ABI_DIR = Path(__file__).parent / "abi"


def revert_reason(exc: BaseException) -> str:
    """Extract the revert reason of a failed contract call.

    :param exc: Exception raised by web3.
    :returns: Revert message as reported by the node.
    """
    message = getattr(exc, "message", None)
    if message:
        return str(message)
    return str(exc)


def is_transient(exc: BaseException) -> bool:
    """Whether a transport error may succeed on retry.

    Connection errors and timeouts are transient, as are HTTP 429 and 5xx
    answers of the RPC endpoint. Other HTTP errors are not.
    """
    if isinstance(exc, TRANSIENT_ERRORS):
        return True
    if isinstance(exc, requests.exceptions.HTTPError):
        response = exc.response
        return response is not None and response.status_code in TRANSIENT_HTTP_STATUSES
    return False


class ChainClient:
    """Read/write access to the PoolManager, StateView and PriceOracle contracts.

    :ivar config: Oracle configuration.
    :ivar w3: Web3 instance.
    :ivar pool_manager: PoolManager contract, or None if not configured.
    :ivar state_view: StateView contract, or None if not configured.
    :ivar price_oracle: PriceOracle contract, or None if not configured.
    """

    def __init__(self, config: OracleConfig, w3: Web3 | None = None) -> None:
        """Initialize the chain client.

        :param config: Oracle configuration (RPC URL, addresses, timeouts).
        :param w3: Optional pre-built Web3 instance. Creates an HTTP one if not provided.
        """
        self.config = config
        self.w3 = w3
        if w3 is None:
            self.w3 = Web3(
                Web3.HTTPProvider(
                    config.rpc_url, request_kwargs={"timeout": config.rpc_timeout}
                )
            )

        self.pool_manager: Contract | None = self._load("PoolManager", config.pool_manager_address)
        self.state_view: Contract | None = self._load("StateView", config.state_view_address)
        self.price_oracle: Contract | None = self._load(
            "PriceOracle", config.price_oracle_address
        )

    @staticmethod
    def get_abi(contract_name: str) -> list:
        """Load the ABI of a contract from the bundled abi folder.

        :param contract_name: Name of the contract (e.g., "PoolManager").
        :returns: ABI list.
        """
        with open(ABI_DIR / f"{contract_name}.json", "r") as file:
            return json.load(file)["abi"]

    def _load(self, contract_name: str, address: str | None) -> Contract | None:
        if not address:
            return None
        return self.w3.eth.contract(address=address, abi=self.get_abi(contract_name))

    def _require(self, contract: Contract | None, contract_name: str) -> Contract:
        if contract is None:
            raise ChainCallFailedError(f"{contract_name} address not configured")
        return contract

    # ------------------------------------------------------------------
    # Retry helpers
    # ------------------------------------------------------------------

    def _with_retry(self, description: str, fn: Callable[[], T]) -> T:
        """Run an RPC operation, retrying transient transport failures.

        :param description: Human readable name of the call for logs and errors.
        :param fn: Zero-argument callable performing the RPC.
        :returns: Result of fn.
        :raises ChainCallFailedError: On revert, RPC error or exhausted retries.
        """
        attempts = self.config.max_retries
        last_error: BaseException | None = None
        for attempt in range(attempts):
            try:
                return fn()
            except ContractLogicError as e:
                raise ContractRevertError(f"{description} reverted", revert_reason(e)) from e
            except requests.exceptions.RequestException as e:
                if not is_transient(e):
                    raise ChainCallFailedError(f"{description} failed", str(e)) from e
                last_error = e
                logger.warning(
                    "%s failed: %s (attempt %d/%d)", description, e, attempt + 1, attempts
                )
            except Web3Exception as e:
                raise ChainCallFailedError(f"{description} failed", str(e)) from e

            if attempt + 1 < attempts:
                delay = min(BACKOFF_BASE * (1.5 ** attempt), BACKOFF_MAX)
                time.sleep(delay)

        logger.error("%s failed after %d attempts: %s", description, attempts, last_error)
        raise ChainCallFailedError(
            f"{description} failed after {attempts} attempts", str(last_error)
        )

    def _read(self, description: str, fn: ContractFunction) -> Any:
        return self._with_retry(description, fn.call)

    def _send(
        self, description: str, account: LocalAccount, fn: ContractFunction
    ) -> dict[str, Any]:
        """Sign, broadcast and wait for a contract transaction.

        :param description: Name of the call for logs and errors.
        :param account: Signing account.
        :param fn: Bound contract function to execute.
        :returns: Dict with txHash, gasUsed and blockNumber.
        :raises ChainCallFailedError: If building, sending or execution fails.
        """
        def _build() -> dict:
            return fn.build_transaction(
                {
                    "from": account.address,
                    "nonce": self.w3.eth.get_transaction_count(account.address, "pending"),
                    "gasPrice": self.w3.eth.gas_price,
                }
            )

        tx_params = self._with_retry(f"{description} (build)", _build)
        signed = account.sign_transaction(tx_params)

        try:
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            raise ContractRevertError(f"{description} reverted", revert_reason(e)) from e
        except (Web3Exception, requests.exceptions.RequestException) as e:
            raise ChainCallFailedError(f"{description} could not be sent", str(e)) from e

        tx_hex = Web3.to_hex(tx_hash)
        logger.info(f"{description}: sent {tx_hex} from {account.address}")

        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.config.tx_timeout
            )
        except TimeExhausted as e:
            raise ChainCallFailedError(
                f"{description} not included after {self.config.tx_timeout}s", tx_hex
            ) from e
        except (Web3Exception, requests.exceptions.RequestException) as e:
            raise ChainCallFailedError(f"{description} receipt unavailable", str(e)) from e

        if receipt["status"] != 1:
            raise ContractRevertError(f"{description} reverted", f"transaction {tx_hex}")

        logger.info(
            f"{description}: included in block {receipt['blockNumber']} "
            f"(gasUsed={receipt['gasUsed']})"
        )
        return {
            "txHash": tx_hex,
            "gasUsed": str(receipt["gasUsed"]),
            "blockNumber": int(receipt["blockNumber"]),
        }

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_latest_block(self) -> tuple[int, int]:
        """Return (number, timestamp) of the latest block."""
        block = self._with_retry("eth_getBlockByNumber", lambda: self.w3.eth.get_block("latest"))
        return int(block["number"]), int(block["timestamp"])

    def get_slot0(self, pool_id: bytes) -> tuple[int, int, int, int]:
        """Read slot0 of a pool.

        :param pool_id: 32-byte pool id.
        :returns: (sqrtPriceX96, tick, protocolFee, lpFee).
        """
        state_view = self._require(self.state_view, "StateView")
        result = self._read("StateView.getSlot0", state_view.functions.getSlot0(pool_id))
        sqrt_price_x96, tick, protocol_fee, lp_fee = result
        return int(sqrt_price_x96), int(tick), int(protocol_fee), int(lp_fee)

    def get_observation_count(self, token0: str, token1: str) -> int:
        """Read the number of TWAP observations recorded for a pair."""
        oracle = self._require(self.price_oracle, "PriceOracle")
        return int(
            self._read(
                "PriceOracle.getObservationCount",
                oracle.functions.getObservationCount(token0, token1),
            )
        )

    def get_twap(self, token0: str, token1: str) -> int:
        """Read the TWAP of a pair as an 18-decimal fixed point integer."""
        oracle = self._require(self.price_oracle, "PriceOracle")
        return int(self._read("PriceOracle.getTWAP", oracle.functions.getTWAP(token0, token1)))

    def get_protocol_fee_controller(self) -> str:
        """Read the protocol fee controller address."""
        pool_manager = self._require(self.pool_manager, "PoolManager")
        return self._read(
            "PoolManager.protocolFeeController", pool_manager.functions.protocolFeeController()
        )

    def get_pool_manager_owner(self) -> str:
        """Read the PoolManager owner address."""
        pool_manager = self._require(self.pool_manager, "PoolManager")
        return self._read("PoolManager.owner", pool_manager.functions.owner())

    def get_protocol_fees_accrued(self, token: str) -> int:
        """Read the protocol fees accrued for a token (raw units)."""
        pool_manager = self._require(self.pool_manager, "PoolManager")
        return int(
            self._read(
                "PoolManager.protocolFeesAccrued",
                pool_manager.functions.protocolFeesAccrued(token),
            )
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def observe_pool_price(self, account: LocalAccount, token0: str, token1: str) -> dict:
        """Record a new TWAP observation for a pair."""
        oracle = self._require(self.price_oracle, "PriceOracle")
        return self._send(
            "PriceOracle.observePoolPrice",
            account,
            oracle.functions.observePoolPrice(token0, token1),
        )

    def set_protocol_fee_controller(self, account: LocalAccount, controller: str) -> dict:
        """Assign a new protocol fee controller (PoolManager owner only)."""
        pool_manager = self._require(self.pool_manager, "PoolManager")
        return self._send(
            "PoolManager.setProtocolFeeController",
            account,
            pool_manager.functions.setProtocolFeeController(controller),
        )

    def set_protocol_fee(
        self, account: LocalAccount, pool_key: tuple, protocol_fee: int
    ) -> dict:
        """Set the protocol fee of a pool (controller only)."""
        pool_manager = self._require(self.pool_manager, "PoolManager")
        return self._send(
            "PoolManager.setProtocolFee",
            account,
            pool_manager.functions.setProtocolFee(pool_key, protocol_fee),
        )

    def collect_protocol_fees(
        self, account: LocalAccount, recipient: str, token: str, amount: int
    ) -> dict:
        """Collect accrued protocol fees to a recipient (controller only)."""
        pool_manager = self._require(self.pool_manager, "PoolManager")
        return self._send(
            "PoolManager.collectProtocolFees",
            account,
            pool_manager.functions.collectProtocolFees(recipient, token, amount),
        )
