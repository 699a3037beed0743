"""FeederAuthority: Role checks for feeders, the fee controller and the admin.

The role predicate ``is_authorized`` is pure: it only looks at the
configuration and at the on-chain addresses it is given. FeederAuthority
wraps it, resolving signing keys to addresses and reading the current
controller/owner from chain when a role needs them. The service-layer check
is a fast-fail; the contracts remain the authority for on-chain writes.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3

from .errors import InvalidParameterError, UnauthorizedError

if TYPE_CHECKING:
    from .ChainClient import ChainClient
    from .OracleConfig import OracleConfig

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Roles recognized by the service."""

    FEEDER = "feeder"
    CONTROLLER = "controller"
    ADMIN = "admin"
    OWNER = "owner"


def load_account(signing_key: str) -> LocalAccount:
    """Load a signing account from a hex private key.

    :param signing_key: 32-byte private key as hex (with or without 0x).
    :returns: eth_account LocalAccount.
    :raises InvalidParameterError: If the key cannot be parsed. The key itself
        is never included in the message.
    """
    try:
        return Account.from_key(signing_key)
    except (ValueError, TypeError) as e:
        raise InvalidParameterError("Invalid signing key") from e


def resolve_address(signing_key_or_address: str) -> str:
    """Resolve a caller identity to a checksummed address.

    :param signing_key_or_address: Either an address or a hex private key.
    :returns: Checksummed address of the caller.
    :raises InvalidParameterError: If the value is neither.
    """
    if isinstance(signing_key_or_address, str) and Web3.is_address(signing_key_or_address):
        return Web3.to_checksum_address(signing_key_or_address)
    return load_account(signing_key_or_address).address


def _same_address(a: str | None, b: str | None) -> bool:
    if not a or not b:
        return False
    return a.lower() == b.lower()


def is_authorized(
    config: OracleConfig,
    address: str,
    role: Role,
    *,
    controller: str | None = None,
    owner: str | None = None,
) -> bool:
    """Check whether an address holds a role.

    Feeders are the configured ``authorized_feeders``; the admin also counts as
    a feeder unless ``config.admin_is_feeder`` is False. Controller and owner
    checks compare against the on-chain addresses passed in.

    :param config: Oracle configuration.
    :param address: Caller address.
    :param role: Required role.
    :param controller: Current protocol fee controller (for Role.CONTROLLER).
    :param owner: Current PoolManager owner (for Role.OWNER).
    :returns: True if the address holds the role.

    .. code-block:: python

        >>> is_authorized(config, config.admin_address, Role.FEEDER)
        True
    """
    if role is Role.FEEDER:
        if any(_same_address(address, f) for f in config.authorized_feeders):
            return True
        return config.admin_is_feeder and _same_address(address, config.admin_address)
    if role is Role.ADMIN:
        return _same_address(address, config.admin_address)
    if role is Role.CONTROLLER:
        return _same_address(address, controller)
    if role is Role.OWNER:
        return _same_address(address, owner)
    return False


class FeederAuthority:
    """Resolves callers and enforces roles before mutations.

    :ivar config: Oracle configuration.
    :ivar chain: Chain client used to read the controller and owner.
    """

    def __init__(self, config: OracleConfig, chain: ChainClient | None = None) -> None:
        """Initialize the authority.

        :param config: Oracle configuration.
        :param chain: Chain client, required only for controller/owner checks.
        """
        self.config = config
        self.chain = chain

    def authorize(self, signing_key_or_address: str, *roles: Role) -> str:
        """Require the caller to hold at least one of the given roles.

        Never mutates state.

        :param signing_key_or_address: Caller private key or address.
        :param roles: Accepted roles.
        :returns: Checksummed caller address.
        :raises InvalidParameterError: If the identity cannot be resolved.
        :raises UnauthorizedError: If the caller holds none of the roles.
        :raises ChainCallFailedError: If the controller/owner cannot be read.
        """
        address = resolve_address(signing_key_or_address)
        controller = owner = None
        if Role.CONTROLLER in roles:
            controller = self._chain().get_protocol_fee_controller()
        if Role.OWNER in roles:
            owner = self._chain().get_pool_manager_owner()

        for role in roles:
            if is_authorized(
                self.config, address, role, controller=controller, owner=owner
            ):
                return address

        names = " or ".join(r.value for r in roles)
        logger.warning(f"Rejected {address}: not {names}")
        raise UnauthorizedError(f"{address} is not authorized as {names}")

    def _chain(self) -> ChainClient:
        if self.chain is None:
            raise RuntimeError("FeederAuthority needs a chain client for on-chain roles")
        return self.chain
