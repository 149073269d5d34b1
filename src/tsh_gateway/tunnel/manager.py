"""Tunnel lifecycle manager.

Owns the one tunnel slot of the process and drives it through
authenticate, allocate, launch and confirm. Teardown is the only way out of
a non-disconnected state and is shared by disconnect requests, replacement
by a newer connect and failure events from the tunnel process.
"""

import asyncio
from dataclasses import dataclass

from ..common.exceptions import (
    AuthenticationFailedError,
    InvalidEnvironmentError,
    NoPortAvailableError,
    StatusQueryFailedError,
    TunnelLaunchFailedError,
)
from ..common.logging import get_logger
from ..config import GatewaySettings
from .broadcaster import StatusBroadcaster
from .models import StatusSnapshot, TunnelSession, TunnelState
from .ports import PortProbe, allocate_port, is_port_free
from .process import TunnelProcess
from .teleport import TeleportClient

logger = get_logger(__name__)

SUPERSEDED_MESSAGE = "Connect request was superseded before the tunnel came up."


@dataclass(frozen=True)
class ConnectResult:
    """Successful connect outcome."""

    environment: str
    tunnel_port: int
    message: str
    status_output: str


class TunnelManager:
    """Single-slot tunnel state machine.

    A connect request replaces whatever the slot holds instead of queueing
    behind it. Every attempt takes a generation number and re-checks it after
    each suspension point, so an attempt that has been replaced or torn down
    never touches the slot again.
    """

    def __init__(
        self,
        settings: GatewaySettings,
        teleport: TeleportClient | None = None,
        broadcaster: StatusBroadcaster | None = None,
        port_probe: PortProbe = is_port_free,
    ):
        """Initialize tunnel manager.

        Args:
            settings: Gateway settings with environment profiles and timings
            teleport: tsh adapter (built from settings if None)
            broadcaster: Status broadcaster (created if None)
            port_probe: Callable deciding whether a local port is free
        """
        self.settings = settings
        self.teleport = teleport or TeleportClient(settings)
        self.broadcaster = broadcaster or StatusBroadcaster(settings.keepalive_interval)
        self._port_probe = port_probe
        self._session = TunnelSession()
        self._generation = 0
        self._pending: asyncio.Future[None] | None = None
        self._retired: set[TunnelProcess] = set()
        self._last_teardown_reason: str | None = None

    @property
    def state(self) -> TunnelState:
        return self._session.state

    def current_status(self) -> StatusSnapshot:
        return self._session.snapshot()

    async def connect(self, environment: str) -> ConnectResult:
        """Open a tunnel to ``environment``, replacing any existing one.

        Raises:
            InvalidEnvironmentError: Unknown environment; nothing is changed
            AuthenticationFailedError: ``tsh login`` failed
            StatusQueryFailedError: ``tsh status`` failed
            NoPortAvailableError: No local port in the scan range is free
            TunnelLaunchFailedError: The tunnel failed, or was replaced or
                disconnected, before the confirmation delay elapsed
        """
        profile = self.settings.get_profile(environment) if environment else None
        if profile is None:
            raise InvalidEnvironmentError("Invalid or missing environment specified.")

        if self._session.state != TunnelState.DISCONNECTED:
            logger.info("Terminating existing tunnel before starting a new one")
            self._teardown("Replaced by a newer connect request")

        self._generation += 1
        generation = self._generation

        try:
            self._transition(TunnelState.AUTHENTICATING)
            login = await self.teleport.login()
            self._ensure_current(generation)
            if not login.ok:
                logger.error("Login failed", error=login.diagnostic)
                self._abort(generation)
                raise AuthenticationFailedError(
                    "Login failed. Please check credentials and Teleport setup.\n\n"
                    f"Error: {login.diagnostic}"
                )

            status = await self.teleport.status()
            self._ensure_current(generation)
            if not status.ok:
                logger.error("Error executing tsh status", error=status.diagnostic)
                self._abort(generation)
                raise StatusQueryFailedError(f"Failed to get TSH status: {status.diagnostic}")

            self._transition(TunnelState.ALLOCATING)
            port = allocate_port(
                profile.default_local_port,
                self.settings.port_scan_count,
                self._port_probe,
            )
            if port is None:
                self._abort(generation)
                raise NoPortAvailableError(
                    f"No free local port between {profile.default_local_port} and "
                    f"{profile.default_local_port + self.settings.port_scan_count}."
                )
            self._session.bind(environment, port)

            self._transition(TunnelState.LAUNCHING)
            process = TunnelProcess(
                self.teleport.tunnel_argv(port, profile.remote_host),
                on_failure=self._on_process_failure,
            )
            try:
                await process.start()
            except TunnelLaunchFailedError:
                self._abort(generation)
                raise
            if generation != self._generation:
                process.terminate()
                self._retired.add(process)
                raise TunnelLaunchFailedError(SUPERSEDED_MESSAGE)

            self._session.process = process
            self._broadcast()
            await self._await_confirmation()
            if generation != self._generation or self._session.process is not process:
                # Torn down after the timer fired but before this attempt resumed
                raise TunnelLaunchFailedError(self._last_teardown_reason or SUPERSEDED_MESSAGE)
        except asyncio.CancelledError:
            if generation == self._generation:
                self._teardown("Connect request cancelled")
            raise

        self._session.state = TunnelState.CONNECTED
        logger.info(
            "SSH tunnel assumed active",
            environment=environment,
            port=port,
            pid=process.pid,
        )
        self._broadcast()
        return ConnectResult(
            environment=environment,
            tunnel_port=port,
            message=(
                f"SSH tunnel for {environment.upper()} environment initiated on port {port}."
            ),
            status_output=status.stdout,
        )

    async def _await_confirmation(self) -> None:
        """Wait out the confirmation delay unless a teardown settles it first.

        The timer and ``_teardown`` race to settle one future; whichever is
        first decides the outcome of the attempt.
        """
        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[None] = loop.create_future()
        self._pending = outcome

        def confirm() -> None:
            if not outcome.done():
                outcome.set_result(None)

        timer = loop.call_later(self.settings.confirm_delay, confirm)
        try:
            await outcome
        finally:
            timer.cancel()
            if self._pending is outcome:
                self._pending = None

    async def disconnect(self) -> str:
        """Tear down the tunnel, if any, and log out of Teleport.

        Always succeeds once local teardown is done; a failing logout is only
        logged.
        """
        if self._teardown("Disconnect requested"):
            logger.info("Killed existing SSH tunnel")

        result = await self.teleport.logout()
        if result.ok:
            logger.info("Logout successful")
        else:
            logger.warning("Logout failed", error=result.diagnostic)

        self._broadcast()
        return "Tunnel terminated and successfully logged out."

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Tear down and wait for every tunnel process this manager started."""
        self._teardown("Gateway shutting down")
        retired, self._retired = self._retired, set()
        if retired:
            await asyncio.gather(*(process.stop(timeout=timeout) for process in retired))

    def _on_process_failure(self, process: TunnelProcess, diagnostic: str) -> None:
        if process is not self._session.process:
            self._retired.discard(process)
            logger.debug("Ignoring event from a retired tunnel process", pid=process.pid)
            return
        self._teardown(diagnostic)

    def _teardown(self, reason: str) -> bool:
        """Return the slot to disconnected. Idempotent.

        Returns:
            True if there was anything to tear down
        """
        self._generation += 1
        self._retired = {process for process in self._retired if process.is_running()}
        session = self._session
        if session.state == TunnelState.DISCONNECTED and session.process is None:
            return False

        self._last_teardown_reason = reason
        previous = session.state
        session.state = TunnelState.TEARING_DOWN
        if session.process is not None:
            session.process.terminate()
            if session.process.is_running():
                self._retired.add(session.process)

        pending, self._pending = self._pending, None
        if pending is not None and not pending.done():
            pending.set_exception(TunnelLaunchFailedError(reason))

        session.reset()
        logger.info("Tunnel torn down", reason=reason, previous_state=previous.value)
        self._broadcast()
        return True

    def _abort(self, generation: int) -> None:
        if generation == self._generation:
            self._teardown("Connect attempt aborted")

    def _ensure_current(self, generation: int) -> None:
        if generation != self._generation:
            raise TunnelLaunchFailedError(SUPERSEDED_MESSAGE)

    def _transition(self, state: TunnelState) -> None:
        self._session.state = state
        logger.info("Tunnel state changed", state=state.value)
        self._broadcast()

    def _broadcast(self) -> None:
        self.broadcaster.publish(self._session.snapshot())
