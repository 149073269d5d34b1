"""tsh-gateway - local control API for a Teleport database tunnel."""

from .api import create_app
from .common.exceptions import (
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
from .common.logging import get_logger, setup_logging
from .config import EnvironmentProfile, GatewaySettings
from .sql import DatabaseConfig, SQLGateway, is_safe_select
from .tunnel import (
    StatusBroadcaster,
    StatusSnapshot,
    TeleportClient,
    TunnelManager,
    TunnelState,
    allocate_port,
    is_port_free,
)

# Setup logging on package initialization
setup_logging(level="INFO")

__version__ = "0.1.0"


__all__ = [
    # Application
    "create_app",
    # Configuration
    "GatewaySettings",
    "EnvironmentProfile",
    # Tunnel management
    "TunnelManager",
    "TunnelState",
    "StatusSnapshot",
    "StatusBroadcaster",
    "TeleportClient",
    "allocate_port",
    "is_port_free",
    # SQL
    "SQLGateway",
    "DatabaseConfig",
    "is_safe_select",
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
]
