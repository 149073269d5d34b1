"""Common utilities and shared functionality."""

from .exceptions import (
    AuthenticationFailedError,
    BadRequestError,
    GatewayError,
    InvalidEnvironmentError,
    NoPortAvailableError,
    QueryExecutionFailedError,
    QueryRejectedError,
    StatusQueryFailedError,
    TunnelLaunchFailedError,
    TunnelUnreachableError,
)
from .logging import get_logger, setup_logging
from .utils import (
    LOOPBACK_HOST,
    MAX_PORT,
    MIN_PORT,
    mask_sensitive_data,
    normalize_db_host,
    sanitize_log_data,
    validate_port,
)

__all__ = [
    # Exceptions
    "GatewayError",
    "InvalidEnvironmentError",
    "AuthenticationFailedError",
    "StatusQueryFailedError",
    "NoPortAvailableError",
    "TunnelLaunchFailedError",
    "BadRequestError",
    "QueryRejectedError",
    "TunnelUnreachableError",
    "QueryExecutionFailedError",
    # Logging
    "get_logger",
    "setup_logging",
    # Utils
    "validate_port",
    "normalize_db_host",
    "mask_sensitive_data",
    "sanitize_log_data",
    "LOOPBACK_HOST",
    "MIN_PORT",
    "MAX_PORT",
]
