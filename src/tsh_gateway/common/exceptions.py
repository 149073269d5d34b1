"""Exception taxonomy for the tunnel gateway.

Every error carries a stable ``category`` that is reported to API callers
together with a human-readable diagnostic, and the HTTP status the control
API answers with.
"""


class GatewayError(Exception):
    """Base exception for all gateway errors."""

    category = "GatewayError"
    http_status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidEnvironmentError(GatewayError):
    """Raised when a connect request names an unknown environment."""

    category = "InvalidEnvironment"
    http_status = 400


class AuthenticationFailedError(GatewayError):
    """Raised when the Teleport login command exits non-zero."""

    category = "AuthenticationFailed"


class StatusQueryFailedError(GatewayError):
    """Raised when the Teleport status command exits non-zero."""

    category = "StatusQueryFailed"


class NoPortAvailableError(GatewayError):
    """Raised when no local port in the scan range can be bound."""

    category = "NoPortAvailable"
    http_status = 503


class TunnelLaunchFailedError(GatewayError):
    """Raised when the tunnel subprocess fails inside the confirmation window."""

    category = "TunnelLaunchFailed"


class BadRequestError(GatewayError):
    """Raised for missing or malformed request input."""

    category = "BadRequest"
    http_status = 400


class QueryRejectedError(GatewayError):
    """Raised when a query is not a single read-only SELECT."""

    category = "QueryRejected"
    http_status = 400


class TunnelUnreachableError(GatewayError):
    """Raised when the database endpoint does not accept TCP connections."""

    category = "TunnelUnreachable"
    http_status = 502


class QueryExecutionFailedError(GatewayError):
    """Raised when the database driver reports an error."""

    category = "QueryExecutionFailed"
