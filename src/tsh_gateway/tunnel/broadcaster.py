"""StatusBroadcaster - pushes tunnel snapshots to live subscribers."""

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Protocol

from ..common.logging import get_logger
from .models import StatusSnapshot

logger = get_logger(__name__)

KEEPALIVE_FRAME = ": ping\n\n"


class ObserverClosedError(Exception):
    """Raised when writing to an observer that can no longer receive."""


class StatusSink(Protocol):
    """Anything that accepts encoded status events."""

    def send(self, message: str) -> None: ...


class QueueObserver:
    """Sink backed by a bounded queue, drained by one SSE response."""

    def __init__(self, max_pending: int = 16):
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max_pending)
        self.closed = False

    def send(self, message: str) -> None:
        if self.closed:
            raise ObserverClosedError("Observer is closed")
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull as e:
            self.closed = True
            raise ObserverClosedError("Observer is not draining its queue") from e

    async def receive(self) -> str:
        return await self._queue.get()

    def close(self) -> None:
        self.closed = True


def encode_event(snapshot: StatusSnapshot) -> str:
    """Encode a snapshot as one server-sent event frame."""
    payload = json.dumps({"type": "status", **snapshot.to_payload()})
    return f"data: {payload}\n\n"


class StatusBroadcaster:
    """Registry of status observers with best-effort delivery.

    A sink whose ``send`` raises is dropped; the remaining sinks still
    receive the message and the publisher never sees the error.
    """

    def __init__(self, keepalive_interval: float = 25.0):
        self.keepalive_interval = keepalive_interval
        self._sinks: dict[int, StatusSink] = {}

    @property
    def observer_count(self) -> int:
        return len(self._sinks)

    def add(self, sink: StatusSink) -> None:
        self._sinks[id(sink)] = sink
        logger.debug("Status observer added", observers=len(self._sinks))

    def remove(self, sink: StatusSink) -> None:
        if self._sinks.pop(id(sink), None) is not None:
            logger.debug("Status observer removed", observers=len(self._sinks))

    def publish(self, snapshot: StatusSnapshot) -> int:
        """Deliver a snapshot to every sink.

        Returns:
            Number of sinks the snapshot was delivered to
        """
        message = encode_event(snapshot)
        delivered = 0
        for key, sink in list(self._sinks.items()):
            try:
                sink.send(message)
                delivered += 1
            except Exception as e:
                logger.debug("Dropping status observer", error=str(e))
                self._sinks.pop(key, None)
        return delivered

    async def stream(
        self, current: Callable[[], StatusSnapshot]
    ) -> AsyncIterator[str]:
        """Yield SSE frames for one subscriber until the consumer goes away.

        The current status is sent first, then every published snapshot, with
        a comment frame whenever ``keepalive_interval`` passes quietly.
        """
        observer = QueueObserver()
        self.add(observer)
        try:
            yield encode_event(current())
            while not observer.closed:
                try:
                    message = await asyncio.wait_for(
                        observer.receive(), timeout=self.keepalive_interval
                    )
                except TimeoutError:
                    yield KEEPALIVE_FRAME
                    continue
                yield message
            # Dropped for falling behind; the client reconnects for a fresh status.
            logger.info("Closing lagging status stream")
        finally:
            observer.close()
            self.remove(observer)
