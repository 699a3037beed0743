"""ProtocolFeeCoordinator: Protocol fee controller, rates and accruals.

The coordinator keeps no fee state of its own: the controller address,
per-pool protocol fees and per-token accruals are always read from the
PoolManager. Writes are pre-checked against the current on-chain owner or
controller, and the contract's own revert is surfaced when it disagrees.

Protocol fees are packed in 24 bits, 12 per swap direction, each capped at
1000 pips (0.1%):

    protocolFee = zeroForOne | (oneForZero << 12)
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Mapping

from web3 import Web3

from .errors import InvalidParameterError, OracleError
from .FeederAuthority import Role, load_account
from .PairKey import to_token_address

if TYPE_CHECKING:
    from .ChainClient import ChainClient
    from .FeederAuthority import FeederAuthority
    from .PairKey import PairKey

logger = logging.getLogger(__name__)

TOKEN_DECIMALS = 18
MAX_PROTOCOL_FEE = 1000
PROTOCOL_FEE_MASK = 0xFFF
COLLECT_ALL = "0"


def format_units(raw: int, decimals: int = TOKEN_DECIMALS) -> str:
    """Format a raw token amount as a decimal string.

    .. code-block:: python

        >>> format_units(1_500_000_000_000_000_000)
        '1.5'
        >>> format_units(0)
        '0.0'
    """
    text = f"{Decimal(raw).scaleb(-decimals):f}"
    if "." in text:
        text = text.rstrip("0")
        if text.endswith("."):
            text += "0"
    else:
        text += ".0"
    return text


def parse_units(amount: str, decimals: int = TOKEN_DECIMALS) -> int:
    """Parse a human readable token amount into raw units.

    :param amount: Decimal amount (e.g., "1.5").
    :param decimals: Token decimals.
    :returns: Raw integer amount.
    :raises InvalidParameterError: If the amount is negative, non-numeric or
        has more precision than the token supports.
    """
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidParameterError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite() or value < 0:
        raise InvalidParameterError(f"Invalid amount: {amount!r}")
    raw = value.scaleb(decimals)
    if raw != raw.to_integral_value():
        raise InvalidParameterError(f"Amount {amount!r} exceeds {decimals} decimals")
    return int(raw)


def encode_protocol_fee(protocol_fee: int | Mapping[str, int]) -> int:
    """Pack a protocol fee into its 24-bit on-chain representation.

    :param protocol_fee: Same fee for both directions, or a mapping with
        ``zeroForOne`` and ``oneForZero`` keys.
    :returns: Packed fee, each direction capped at MAX_PROTOCOL_FEE.

    .. code-block:: python

        >>> encode_protocol_fee(500)
        2048500
        >>> encode_protocol_fee({"zeroForOne": 5000, "oneForZero": 0})
        1000
    """
    if isinstance(protocol_fee, Mapping):
        zero_for_one = int(protocol_fee.get("zeroForOne") or 0)
        one_for_zero = int(protocol_fee.get("oneForZero") or 0)
    else:
        zero_for_one = one_for_zero = int(protocol_fee)
    if zero_for_one < 0 or one_for_zero < 0:
        raise InvalidParameterError("Protocol fee must not be negative")
    zero_for_one = min(zero_for_one, MAX_PROTOCOL_FEE)
    one_for_zero = min(one_for_zero, MAX_PROTOCOL_FEE)
    return zero_for_one | (one_for_zero << 12)


def decode_protocol_fee(protocol_fee: int) -> tuple[int, int]:
    """Split a packed protocol fee into (zeroForOne, oneForZero)."""
    return protocol_fee & PROTOCOL_FEE_MASK, (protocol_fee >> 12) & PROTOCOL_FEE_MASK


@dataclass(frozen=True)
class ProtocolFeeAccrual:
    """Accrued protocol fees of one token, as read from chain."""

    token_address: str
    accrued_amount: int

    def to_dict(self) -> dict:
        return {
            "tokenAddress": self.token_address,
            "feesAccrued": str(self.accrued_amount),
            "feesFormatted": format_units(self.accrued_amount),
        }


class ProtocolFeeCoordinator:
    """Relays protocol fee reads and writes to the PoolManager.

    :ivar authority: Role checker (owner/controller pre-checks).
    :ivar chain: Chain client.
    :ivar max_workers: Thread pool size for batched accrual reads.
    """

    def __init__(
        self, authority: FeederAuthority, chain: ChainClient, max_workers: int = 8
    ) -> None:
        self.authority = authority
        self.chain = chain
        self.max_workers = max_workers

    def get_controller(self) -> dict:
        """Return the protocol fee controller and the PoolManager owner."""
        return {
            "controllerAddress": self.chain.get_protocol_fee_controller(),
            "poolManagerOwner": self.chain.get_pool_manager_owner(),
        }

    def get_accrued(self, token_address: str) -> ProtocolFeeAccrual:
        """Read the accrued protocol fees of a token.

        :raises InvalidParameterError: If the address is malformed.
        :raises ChainCallFailedError: If the RPC fails.
        """
        token = to_token_address(token_address, "token")
        return ProtocolFeeAccrual(token, self.chain.get_protocol_fees_accrued(token))

    def _accrued_item(self, token_address: str) -> dict:
        try:
            return {"success": True, **self.get_accrued(token_address).to_dict()}
        except OracleError as e:
            logger.warning(f"Accrued fee read failed for {token_address}: {e}")
            return {
                "success": False,
                "tokenAddress": token_address,
                "error": str(e),
                "code": e.code,
            }

    def get_all_accrued(self, token_addresses: list[str]) -> dict:
        """Read accrued fees for several tokens.

        Each read is independent: a failing token is reported in its slot and
        does not stop the others. Reads run in parallel; the result order
        matches the input order.

        :param token_addresses: Token addresses to query.
        :returns: ``{"fees": [...], "totalTokens": n}``.
        """
        if not token_addresses:
            return {"fees": [], "totalTokens": 0}
        workers = min(self.max_workers, len(token_addresses))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            fees = list(executor.map(self._accrued_item, token_addresses))
        return {"fees": fees, "totalTokens": len(fees)}

    def get_pool_fee(self, pair: PairKey) -> dict:
        """Read the protocol and LP fees configured on a pool."""
        pool_id = pair.pool_id()
        sqrt_price_x96, tick, protocol_fee, lp_fee = self.chain.get_slot0(pool_id)
        zero_for_one, one_for_zero = decode_protocol_fee(protocol_fee)
        return {
            **pair.to_dict(),
            "poolId": Web3.to_hex(pool_id),
            "sqrtPriceX96": str(sqrt_price_x96),
            "tick": tick,
            "protocolFee": protocol_fee,
            "protocolFeeZeroForOne": zero_for_one,
            "protocolFeeOneForZero": one_for_zero,
            "lpFee": lp_fee,
            "lpFeePercent": f"{lp_fee / 10000:.4f}%",
        }

    def set_controller(self, signing_key: str, new_controller: str) -> dict:
        """Assign the protocol fee controller (PoolManager owner only).

        :raises UnauthorizedError: If the signer is not the current owner.
        :raises ChainCallFailedError: If the transaction fails.
        """
        controller = to_token_address(new_controller, "controller")
        account = load_account(signing_key)
        self.authority.authorize(account.address, Role.OWNER)

        receipt = self.chain.set_protocol_fee_controller(account, controller)
        logger.info(f"Protocol fee controller set to {controller} by {account.address}")
        return {**receipt, "newController": controller}

    def set_fee(
        self, signing_key: str, pair: PairKey, protocol_fee: int | Mapping[str, int]
    ) -> dict:
        """Set the protocol fee of a pool (controller only).

        :param signing_key: Controller private key.
        :param pair: Pool key, including its fee tier.
        :param protocol_fee: Fee for both directions or per-direction mapping.
        :raises UnauthorizedError: If the signer is not the current controller.
        :raises ChainCallFailedError: If the transaction fails.
        """
        encoded = encode_protocol_fee(protocol_fee)
        account = load_account(signing_key)
        self.authority.authorize(account.address, Role.CONTROLLER)

        receipt = self.chain.set_protocol_fee(account, pair.as_tuple(), encoded)
        zero_for_one, one_for_zero = decode_protocol_fee(encoded)
        logger.info(f"{pair}: protocol fee set to {encoded} by {account.address}")
        return {
            **receipt,
            "poolKey": pair.to_dict(),
            "protocolFee": encoded,
            "zeroForOneFee": zero_for_one,
            "oneForZeroFee": one_for_zero,
        }

    def collect(
        self,
        signing_key: str,
        recipient: str,
        token_address: str,
        amount: str | None = COLLECT_ALL,
    ) -> dict:
        """Collect accrued protocol fees (controller only).

        ``amount == "0"`` (or omitted) collects the whole balance accrued when
        the transaction executes: the 0 sentinel is forwarded on-chain. The
        balance is read before and after only to report what was collected.

        :param signing_key: Controller private key.
        :param recipient: Address receiving the fees.
        :param token_address: Token to collect.
        :param amount: Human readable amount, or "0" for everything.
        :raises UnauthorizedError: If the signer is not the current controller.
        :raises ChainCallFailedError: If the transaction fails.
        """
        to = to_token_address(recipient, "recipient")
        token = to_token_address(token_address, "token")
        requested = parse_units(COLLECT_ALL if amount in (None, "") else amount)
        account = load_account(signing_key)
        self.authority.authorize(account.address, Role.CONTROLLER)

        accrued_before = self.chain.get_protocol_fees_accrued(token)
        receipt = self.chain.collect_protocol_fees(account, to, token, requested)
        accrued_after = self.chain.get_protocol_fees_accrued(token)
        # Fees accruing while pending can exceed a partial collection
        collected = max(accrued_before - accrued_after, 0)
        logger.info(
            f"Collected {format_units(collected)} of {token} to {to} "
            f"(remaining {format_units(accrued_after)})"
        )
        return {
            **receipt,
            "recipient": to,
            "tokenAddress": token,
            "amountRequested": "all" if requested == 0 else format_units(requested),
            "amountCollected": format_units(collected),
            "remainingFees": format_units(accrued_after),
        }
