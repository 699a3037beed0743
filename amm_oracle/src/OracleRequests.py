"""OracleRequests: One explicit request type per operation.

Each request is a frozen dataclass built from a loosely typed payload (e.g.
a JSON body) with ``from_payload``. Required parameters are checked here,
before any business logic or chain call runs; a missing one raises
MissingParameterError naming every absent field.

Parameter names follow the public interface (``tokenA``, ``tokenB``,
``signingKey``...). The legacy names ``token0``, ``token1`` and
``privateKey`` are accepted as aliases.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .errors import InvalidParameterError, MissingParameterError

ALIASES: dict[str, tuple[str, ...]] = {
    "tokenA": ("tokenA", "token0"),
    "tokenB": ("tokenB", "token1"),
    "signingKey": ("signingKey", "privateKey"),
}
DEFAULT_PROTOCOL_FEE = 0


def _lookup(payload: Mapping[str, Any], name: str) -> Any:
    for key in ALIASES.get(name, (name,)):
        value = payload.get(key)
        if value is not None and value != "":
            return value
    return None


def _required(payload: Mapping[str, Any], *names: str) -> list[Any]:
    """Fetch required parameters, raising once for all missing ones."""
    if not isinstance(payload, Mapping):
        raise InvalidParameterError("Request body must be an object")
    values = [_lookup(payload, n) for n in names]
    missing = [n for n, v in zip(names, values) if v is None]
    if missing:
        raise MissingParameterError(f"{', '.join(missing)} required")
    return values


def _optional(payload: Mapping[str, Any], name: str) -> Any:
    if not isinstance(payload, Mapping):
        raise InvalidParameterError("Request body must be an object")
    return _lookup(payload, name)


def parse_int_or_default(value: Any, default: int | None) -> int | None:
    """Parse an integer leniently: omitted or unparsable values give ``default``.

    .. code-block:: python

        >>> parse_int_or_default("500", 3000)
        500
        >>> parse_int_or_default("abc", 3000)
        3000
        >>> parse_int_or_default("1e400", 3000)
        3000
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        try:
            return int(float(str(value).strip()))
        except (ValueError, OverflowError):
            return default


def _list(value: Any, name: str) -> list:
    if not isinstance(value, (list, tuple)):
        raise InvalidParameterError(f"{name} must be a list")
    return list(value)


@dataclass(frozen=True)
class PairRequest:
    """Read request naming a token pair (get price, pool price, TWAP...)."""

    token_a: str
    token_b: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> PairRequest:
        token_a, token_b = _required(payload, "tokenA", "tokenB")
        return cls(token_a, token_b)


@dataclass(frozen=True)
class SignedPairRequest:
    """Write request naming a token pair (observe, invalidate)."""

    signing_key: str
    token_a: str
    token_b: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> SignedPairRequest:
        return cls(*_required(payload, "signingKey", "tokenA", "tokenB"))


@dataclass(frozen=True)
class FeedRequest:
    """Single external price submission."""

    signing_key: str
    token_a: str
    token_b: str
    price: Any

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> FeedRequest:
        return cls(*_required(payload, "signingKey", "tokenA", "tokenB", "price"))


@dataclass(frozen=True)
class FeedBatchItem:
    """One entry of a batch submission."""

    token_a: str
    token_b: str
    price: Any

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> FeedBatchItem:
        return cls(*_required(payload, "tokenA", "tokenB", "price"))


@dataclass(frozen=True)
class FeedBatchRequest:
    """Batch external price submission.

    Entries are kept as raw payloads: a malformed entry fails on its own
    when the batch runs instead of rejecting the whole request.
    """

    signing_key: str
    pairs: tuple[Any, ...]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> FeedBatchRequest:
        signing_key, pairs = _required(payload, "signingKey", "pairs")
        return cls(signing_key, tuple(_list(pairs, "pairs")))


@dataclass(frozen=True)
class EmptyRequest:
    """Request without parameters."""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> EmptyRequest:
        return cls()


@dataclass(frozen=True)
class AccountRequest:
    """Request naming an account to check."""

    account: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> AccountRequest:
        return cls(*_required(payload, "account"))


@dataclass(frozen=True)
class TokenRequest:
    """Request naming a single token."""

    token_address: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> TokenRequest:
        return cls(*_required(payload, "tokenAddress"))


@dataclass(frozen=True)
class TokenListRequest:
    """Request naming several tokens."""

    token_addresses: tuple[str, ...]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> TokenListRequest:
        (tokens,) = _required(payload, "tokenAddresses")
        return cls(tuple(_list(tokens, "tokenAddresses")))


@dataclass(frozen=True)
class PoolFeeRequest:
    """Protocol fee read of one pool.

    ``fee`` is None when omitted or unparsable; the configured default fee
    tier applies then.
    """

    token_a: str
    token_b: str
    fee: int | None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> PoolFeeRequest:
        token_a, token_b = _required(payload, "tokenA", "tokenB")
        fee = parse_int_or_default(_optional(payload, "fee"), None)
        return cls(token_a, token_b, fee)


@dataclass(frozen=True)
class SetControllerRequest:
    """Protocol fee controller assignment."""

    signing_key: str
    controller_address: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> SetControllerRequest:
        return cls(*_required(payload, "signingKey", "controllerAddress"))


@dataclass(frozen=True)
class SetFeeRequest:
    """Protocol fee update of one pool.

    ``fee`` falls back to the configured default fee tier (3000 unless
    overridden) and ``protocolFee`` to 0 when omitted or unparsable. ``protocolFee`` may also be ``{"zeroForOne": n, "oneForZero": m}``.
    """

    signing_key: str
    token_a: str
    token_b: str
    fee: int | None
    protocol_fee: int | dict[str, int]

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> SetFeeRequest:
        signing_key, token_a, token_b = _required(payload, "signingKey", "tokenA", "tokenB")
        fee = parse_int_or_default(_optional(payload, "fee"), None)
        raw_protocol_fee = _optional(payload, "protocolFee")
        protocol_fee: int | dict[str, int]
        if isinstance(raw_protocol_fee, Mapping):
            protocol_fee = {
                key: parse_int_or_default(raw_protocol_fee.get(key), DEFAULT_PROTOCOL_FEE)
                for key in ("zeroForOne", "oneForZero")
            }
        else:
            protocol_fee = parse_int_or_default(raw_protocol_fee, DEFAULT_PROTOCOL_FEE)
        return cls(signing_key, token_a, token_b, fee, protocol_fee)


@dataclass(frozen=True)
class CollectRequest:
    """Protocol fee collection. ``amount`` "0" (the default) means everything."""

    signing_key: str
    recipient: str
    token_address: str
    amount: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> CollectRequest:
        signing_key, recipient, token = _required(
            payload, "signingKey", "recipient", "tokenAddress"
        )
        amount = _optional(payload, "amount")
        return cls(signing_key, recipient, token, "0" if amount is None else str(amount))
