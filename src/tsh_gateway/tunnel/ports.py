"""Local port probing and allocation."""

import socket
from collections.abc import Callable

from ..common.logging import get_logger
from ..common.utils import MAX_PORT, validate_port

logger = get_logger(__name__)

PortProbe = Callable[[int], bool]


def is_port_free(port: int, host: str = "0.0.0.0") -> bool:
    """Check whether a TCP listener could be bound to ``host:port`` right now.

    The throwaway socket is always closed before returning.

    Args:
        port: Port to test
        host: Interface to bind (all IPv4 interfaces by default)

    Returns:
        True if bind and close both succeed, False on any bind error
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind((host, port))
        sock.listen(1)
    except OSError as e:
        logger.debug("Port is busy", port=port, error=str(e))
        return False
    finally:
        sock.close()
    return True


def allocate_port(
    preferred: int,
    scan_count: int = 50,
    probe: PortProbe = is_port_free,
) -> int | None:
    """Pick the first free port in ``[preferred, preferred + scan_count]``.

    Ports are probed in ascending order and probing stops at the first free
    one. There is no silent fallback to ``preferred``.

    Args:
        preferred: First port to try
        scan_count: How many ports after ``preferred`` may be tried
        probe: Callable deciding whether a port is free

    Returns:
        The chosen port, or None if every candidate is busy
    """
    validate_port(preferred, "Preferred port")
    if scan_count < 0:
        raise ValueError("Scan count cannot be negative")

    last = min(preferred + scan_count, MAX_PORT)
    for port in range(preferred, last + 1):
        if probe(port):
            if port != preferred:
                logger.info("Preferred port busy, using fallback", preferred=preferred, port=port)
            return port

    logger.warning("No free port in range", first=preferred, last=last)
    return None
