"""TCP reachability probe used to tell a closed tunnel from a failing query."""

import asyncio
from dataclasses import dataclass

from ..common.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    reachable: bool
    detail: str | None = None


async def probe(host: str, port: int, timeout: float = 1.5) -> ProbeResult:
    """Open and immediately close a TCP connection to ``host:port``.

    Args:
        host: Host to connect to
        port: Port to connect to
        timeout: Seconds to wait for the connection

    Returns:
        ProbeResult, with the underlying error text when unreachable
    """
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=timeout
        )
    except TimeoutError:
        logger.debug("Reachability probe timed out", host=host, port=port)
        return ProbeResult(False, "Connection timed out")
    except OSError as e:
        logger.debug("Reachability probe failed", host=host, port=port, error=str(e))
        return ProbeResult(False, e.strerror or str(e))

    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return ProbeResult(True)
