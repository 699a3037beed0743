"""Unit tests for ChainClient."""

from unittest.mock import MagicMock, patch

import pytest
import requests
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, TimeExhausted

from amm_oracle.src.ChainClient import ChainClient
from amm_oracle.src.errors import ChainCallFailedError, ContractRevertError
from amm_oracle.src.OracleConfig import OracleConfig
from amm_oracle.src.ProtocolFeeCoordinator import ProtocolFeeCoordinator

from conftest import FEEDER, TOKEN_HIGH, TOKEN_LOW, TOKEN_OTHER


@pytest.fixture
def w3() -> MagicMock:
    w3 = MagicMock()
    w3.eth.get_transaction_count.return_value = 0
    w3.eth.gas_price = 1
    w3.eth.send_raw_transaction.return_value = b"\xab" * 32
    w3.eth.wait_for_transaction_receipt.return_value = {
        "status": 1,
        "blockNumber": 101,
        "gasUsed": 50000,
    }
    return w3


@pytest.fixture
def client(w3) -> ChainClient:
    config = OracleConfig(
        pool_manager_address=TOKEN_LOW,
        state_view_address=TOKEN_HIGH,
        price_oracle_address=TOKEN_OTHER,
    )
    return ChainClient(config, w3=w3)


def http_error(status: int) -> requests.exceptions.HTTPError:
    response = requests.Response()
    response.status_code = status
    return requests.exceptions.HTTPError(f"{status} Server Error", response=response)


@pytest.fixture
def account() -> MagicMock:
    account = MagicMock()
    account.address = FEEDER
    return account


class TestChainClientSetup:
    """Test contract loading."""

    def test_abi_bundled(self) -> None:
        """Bundled ABIs should contain the functions used."""
        names = {item.get("name") for item in ChainClient.get_abi("PoolManager")}
        assert {"protocolFeeController", "setProtocolFee", "collectProtocolFees"} <= names
        names = {item.get("name") for item in ChainClient.get_abi("StateView")}
        assert "getSlot0" in names

    def test_unconfigured_contract(self, w3) -> None:
        """Calls to unconfigured contracts should fail cleanly."""
        client = ChainClient(OracleConfig(), w3=w3)
        assert client.state_view is None
        with pytest.raises(ChainCallFailedError, match="StateView address not configured"):
            client.get_slot0(b"\x00" * 32)


class TestChainClientRetry:
    """Test retry and error mapping."""

    @patch("amm_oracle.src.ChainClient.time.sleep")
    def test_transient_then_success(self, mock_sleep, client) -> None:
        """Transient errors should be retried with backoff."""
        fn = MagicMock(side_effect=[requests.exceptions.ConnectionError("down"), 42])
        assert client._with_retry("test", fn) == 42
        assert fn.call_count == 2
        mock_sleep.assert_called_once_with(0.5)

    @patch("amm_oracle.src.ChainClient.time.sleep")
    def test_retries_exhausted(self, mock_sleep, client) -> None:
        """Persistent transient errors should become ChainCallFailed."""
        fn = MagicMock(side_effect=requests.exceptions.Timeout("slow"))
        with pytest.raises(ChainCallFailedError, match="after 3 attempts"):
            client._with_retry("test", fn)
        assert fn.call_count == 3
        assert mock_sleep.call_count == 2

    @patch("amm_oracle.src.ChainClient.time.sleep")
    def test_revert_not_retried(self, mock_sleep, client) -> None:
        """Reverts should surface once with the reason verbatim."""
        fn = MagicMock(side_effect=ContractLogicError("execution reverted: InvalidCaller"))
        with pytest.raises(ContractRevertError, match="InvalidCaller") as exc_info:
            client._with_retry("test", fn)
        assert "InvalidCaller" in exc_info.value.revert_reason
        assert fn.call_count == 1
        mock_sleep.assert_not_called()

    @patch("amm_oracle.src.ChainClient.time.sleep")
    def test_rpc_error_not_retried(self, mock_sleep, client) -> None:
        """Non-transient web3 errors should not be retried."""
        fn = MagicMock(side_effect=BadFunctionCallOutput("empty"))
        with pytest.raises(ChainCallFailedError):
            client._with_retry("test", fn)
        assert fn.call_count == 1

    @patch("amm_oracle.src.ChainClient.time.sleep")
    @pytest.mark.parametrize("status", [429, 502, 503])
    def test_http_overload_retried(self, mock_sleep, client, status: int) -> None:
        """HTTP 429 and 5xx answers of the endpoint should be retried."""
        fn = MagicMock(side_effect=[http_error(status), 42])
        assert client._with_retry("test", fn) == 42
        assert fn.call_count == 2

    @patch("amm_oracle.src.ChainClient.time.sleep")
    def test_http_5xx_exhausted(self, mock_sleep, client) -> None:
        """Persistent HTTP 5xx answers should become ChainCallFailed."""
        fn = MagicMock(side_effect=http_error(502))
        with pytest.raises(ChainCallFailedError, match="after 3 attempts"):
            client._with_retry("test", fn)

    @patch("amm_oracle.src.ChainClient.time.sleep")
    def test_http_client_error_not_retried(self, mock_sleep, client) -> None:
        """Other HTTP errors should fail once as ChainCallFailed."""
        fn = MagicMock(side_effect=http_error(401))
        with pytest.raises(ChainCallFailedError):
            client._with_retry("test", fn)
        assert fn.call_count == 1
        mock_sleep.assert_not_called()

    @patch("amm_oracle.src.ChainClient.time.sleep")
    def test_http_error_in_accrued_batch(self, mock_sleep, client) -> None:
        """An HTTP error should fail each accrual slot, not the whole batch."""
        call = client.pool_manager.functions.protocolFeesAccrued.return_value.call
        call.side_effect = http_error(502)
        fees = ProtocolFeeCoordinator(MagicMock(), client)

        result = fees.get_all_accrued([TOKEN_LOW, TOKEN_HIGH])

        assert result["totalTokens"] == 2
        assert [f["success"] for f in result["fees"]] == [False, False]
        assert {f["code"] for f in result["fees"]} == {"ChainCallFailed"}


class TestChainClientReads:
    """Test read helpers."""

    def test_latest_block(self, client, w3) -> None:
        """Block number and timestamp should be returned as ints."""
        w3.eth.get_block.return_value = {"number": 7, "timestamp": 1000}
        assert client.get_latest_block() == (7, 1000)

    def test_get_slot0(self, client) -> None:
        """slot0 should be unpacked into four ints."""
        client.state_view.functions.getSlot0.return_value.call.return_value = (2**96, -5, 0, 3000)
        assert client.get_slot0(b"\x01" * 32) == (2**96, -5, 0, 3000)


class TestChainClientSend:
    """Test transaction submission."""

    def test_send_success(self, client, w3, account) -> None:
        """A mined transaction should return its receipt fields."""
        result = client.observe_pool_price(account, TOKEN_LOW, TOKEN_HIGH)
        assert result == {"txHash": "0x" + "ab" * 32, "gasUsed": "50000", "blockNumber": 101}
        account.sign_transaction.assert_called_once()
        w3.eth.wait_for_transaction_receipt.assert_called_once()

    def test_failed_receipt(self, client, w3, account) -> None:
        """A reverted receipt should raise ChainCallFailed."""
        w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 0,
            "blockNumber": 101,
            "gasUsed": 50000,
        }
        with pytest.raises(ChainCallFailedError, match="reverted"):
            client.set_protocol_fee(account, (TOKEN_LOW, TOKEN_HIGH, 3000, 60, TOKEN_OTHER), 0)

    def test_receipt_timeout(self, client, w3, account) -> None:
        """A transaction not mined in time should raise ChainCallFailed."""
        w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted()
        with pytest.raises(ChainCallFailedError, match="not included"):
            client.collect_protocol_fees(account, FEEDER, TOKEN_LOW, 1)

    @patch("amm_oracle.src.ChainClient.time.sleep")
    def test_broadcast_not_retried(self, mock_sleep, client, w3, account) -> None:
        """A failed broadcast should never be sent a second time."""
        w3.eth.send_raw_transaction.side_effect = requests.exceptions.ConnectionError("down")
        with pytest.raises(ChainCallFailedError, match="could not be sent"):
            client.set_protocol_fee_controller(account, TOKEN_OTHER)
        assert w3.eth.send_raw_transaction.call_count == 1

    def test_http_error_on_broadcast(self, client, w3, account) -> None:
        """An HTTP error while broadcasting should become ChainCallFailed."""
        w3.eth.send_raw_transaction.side_effect = http_error(502)
        with pytest.raises(ChainCallFailedError, match="could not be sent"):
            client.observe_pool_price(account, TOKEN_LOW, TOKEN_HIGH)
        assert w3.eth.send_raw_transaction.call_count == 1
