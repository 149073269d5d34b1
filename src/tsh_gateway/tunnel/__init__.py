"""Tunnel lifecycle: port allocation, tsh subprocesses and status broadcasting."""

from .broadcaster import ObserverClosedError, QueueObserver, StatusBroadcaster
from .manager import ConnectResult, TunnelManager
from .models import StatusSnapshot, TunnelSession, TunnelState
from .ports import allocate_port, is_port_free
from .process import TunnelProcess
from .teleport import CommandResult, TeleportClient, run_command

__all__ = [
    # Models
    "TunnelState",
    "TunnelSession",
    "StatusSnapshot",
    # Manager
    "TunnelManager",
    "ConnectResult",
    "TunnelProcess",
    # Broadcasting
    "StatusBroadcaster",
    "QueueObserver",
    "ObserverClosedError",
    # Ports
    "is_port_free",
    "allocate_port",
    # Teleport
    "TeleportClient",
    "CommandResult",
    "run_command",
]
