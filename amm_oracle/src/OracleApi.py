"""OracleApi: Operation dispatch and response envelopes.

This is the boundary between transport (HTTP, CLI...) and the service. It
maps operation names to a request type and a service method, and turns every
outcome into an envelope:

    {"success": True, "data": {...}}
    {"success": False, "error": "...", "code": "NotFound", "status": 404}

Statuses: 400 missing/invalid parameters, 403 unauthorized, 404 no usable
price, 409 TWAP not populated, 500 chain or internal failures.

.. code-block:: python

    >>> api = OracleApi(service)
    >>> api.handle("get-price", {"tokenA": usdc, "tokenB": weth})
    {'success': True, 'data': {...}}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Mapping

from .errors import InvalidParameterError, OracleError
from .OracleRequests import (
    AccountRequest,
    CollectRequest,
    EmptyRequest,
    FeedBatchRequest,
    FeedRequest,
    PairRequest,
    PoolFeeRequest,
    SetControllerRequest,
    SetFeeRequest,
    SignedPairRequest,
    TokenListRequest,
    TokenRequest,
)

if TYPE_CHECKING:
    from .OracleService import OracleService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Operation:
    """A dispatchable operation.

    :ivar request_type: Request dataclass with a ``from_payload`` classmethod.
    :ivar run: Calls the service with a parsed request.
    :ivar mutating: Whether the operation changes state. Outcomes of mutating
        operations are logged at INFO, reads at DEBUG.
    """

    request_type: Any
    run: Callable[[OracleService, Any], dict]
    mutating: bool = False


OPERATIONS: dict[str, Operation] = {
    # Prices
    "get-price": Operation(PairRequest, lambda s, r: s.get_price(r.token_a, r.token_b)),
    "get-pool-price": Operation(
        PairRequest, lambda s, r: s.get_pool_price(r.token_a, r.token_b)
    ),
    "get-external-price": Operation(
        PairRequest, lambda s, r: s.get_external_price(r.token_a, r.token_b)
    ),
    "get-twap": Operation(PairRequest, lambda s, r: s.get_twap(r.token_a, r.token_b)),
    # External feed
    "feed": Operation(
        FeedRequest,
        lambda s, r: s.feed(r.signing_key, r.token_a, r.token_b, r.price),
        mutating=True,
    ),
    "feed-batch": Operation(
        FeedBatchRequest, lambda s, r: s.feed_batch(r.signing_key, r.pairs), mutating=True
    ),
    "invalidate": Operation(
        SignedPairRequest,
        lambda s, r: s.invalidate(r.signing_key, r.token_a, r.token_b),
        mutating=True,
    ),
    # Observations
    "observe": Operation(
        SignedPairRequest,
        lambda s, r: s.observe(r.signing_key, r.token_a, r.token_b),
        mutating=True,
    ),
    "get-observation-count": Operation(
        PairRequest, lambda s, r: s.get_observation_count(r.token_a, r.token_b)
    ),
    # Configuration and roles
    "get-config": Operation(EmptyRequest, lambda s, r: s.get_config()),
    "get-admin": Operation(EmptyRequest, lambda s, r: s.get_admin()),
    "check-feeder": Operation(AccountRequest, lambda s, r: s.check_feeder(r.account)),
    # Protocol fees
    "get-fee-controller": Operation(EmptyRequest, lambda s, r: s.get_fee_controller()),
    "get-accrued-fee": Operation(
        TokenRequest, lambda s, r: s.get_accrued_fee(r.token_address)
    ),
    "get-all-accrued": Operation(
        TokenListRequest, lambda s, r: s.get_all_accrued(r.token_addresses)
    ),
    "get-pool-fee": Operation(
        PoolFeeRequest, lambda s, r: s.get_pool_fee(r.token_a, r.token_b, r.fee)
    ),
    "set-controller": Operation(
        SetControllerRequest,
        lambda s, r: s.set_controller(r.signing_key, r.controller_address),
        mutating=True,
    ),
    "set-fee": Operation(
        SetFeeRequest,
        lambda s, r: s.set_fee(r.signing_key, r.token_a, r.token_b, r.fee, r.protocol_fee),
        mutating=True,
    ),
    "collect-fees": Operation(
        CollectRequest,
        lambda s, r: s.collect_fees(r.signing_key, r.recipient, r.token_address, r.amount),
        mutating=True,
    ),
}


def error_envelope(error: OracleError) -> dict:
    """Build the failure envelope of a service error."""
    return {
        "success": False,
        "error": str(error),
        "code": error.code,
        "status": error.status_code,
    }


class OracleApi:
    """Dispatches named operations to an OracleService.

    :ivar service: Shared service instance.
    """

    def __init__(self, service: OracleService) -> None:
        self.service = service

    @staticmethod
    def available_operations() -> list[str]:
        """Sorted list of operation names."""
        return sorted(OPERATIONS)

    def handle(self, operation: str, payload: Mapping[str, Any] | None = None) -> dict:
        """Run an operation and wrap its outcome in an envelope.

        :param operation: Operation name (e.g., "get-price").
        :param payload: Request parameters.
        :returns: Success or failure envelope. Never raises for service errors.
        """
        op = OPERATIONS.get(operation)
        try:
            if op is None:
                raise InvalidParameterError(
                    f"Unknown operation '{operation}'. "
                    f"Available: {', '.join(self.available_operations())}"
                )
            request = op.request_type.from_payload(payload if payload is not None else {})
            data = op.run(self.service, request)
        except OracleError as e:
            if e.status_code >= 500:
                log = logger.warning
            elif op is not None and op.mutating:
                log = logger.info
            else:
                log = logger.debug
            log(f"{operation} failed ({e.code}): {e}")
            return error_envelope(e)
        except Exception as e:
            logger.exception(f"{operation} failed unexpectedly")
            return {
                "success": False,
                "error": str(e),
                "code": "InternalError",
                "status": 500,
            }
        if op.mutating:
            logger.info(f"{operation} succeeded")
        else:
            logger.debug(f"{operation} succeeded")
        return {"success": True, "data": data}
