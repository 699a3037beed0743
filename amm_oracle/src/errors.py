"""Error taxonomy for the oracle and protocol-fee service.

Every error raised by the service derives from OracleError and carries a
stable ``code`` plus the HTTP-style ``status_code`` used when the error is
turned into a response envelope by OracleApi.
"""


class OracleError(Exception):
    """Base exception for oracle service errors.

    :cvar code: Stable error identifier reported in response envelopes.
    :cvar status_code: HTTP-style status associated with the error.
    """

    code = "OracleError"
    status_code = 500


class MissingParameterError(OracleError):
    """Raised when a required request parameter is absent."""

    code = "MissingParameter"
    status_code = 400


class InvalidParameterError(OracleError):
    """Raised when a request parameter is present but malformed."""

    code = "InvalidParameter"
    status_code = 400


class InvalidPairError(InvalidParameterError):
    """Raised for equal or zero token addresses in a pair."""

    code = "InvalidPair"


class UnauthorizedError(OracleError):
    """Raised when the caller lacks the role required for an operation."""

    code = "Unauthorized"
    status_code = 403


class NotFoundError(OracleError):
    """Raised when no usable price source has anything to return."""

    code = "NotFound"
    status_code = 404


class StaleError(NotFoundError):
    """Raised when an external price exists but is older than the allowed age."""

    code = "Stale"


class InsufficientObservationsError(OracleError):
    """Raised when the TWAP window is not yet populated."""

    code = "InsufficientObservations"
    status_code = 409


class ChainCallFailedError(OracleError):
    """Raised when an RPC call or transaction fails.

    :ivar revert_reason: Revert reason reported by the node, if any.
    """

    code = "ChainCallFailed"
    status_code = 500

    def __init__(self, message: str, revert_reason: str | None = None):
        """Initialize the chain error.

        :param message: Description of the failed call.
        :param revert_reason: Underlying revert reason, appended verbatim.
        """
        self.revert_reason = revert_reason
        if revert_reason:
            message = f"{message}: {revert_reason}"
        super().__init__(message)


class ContractRevertError(ChainCallFailedError):
    """Raised when a contract call or transaction reverts."""
