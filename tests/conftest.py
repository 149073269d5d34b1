"""Shared pytest fixtures for tsh-gateway tests."""

import asyncio
import json
import sys

import pytest
import pytest_asyncio

from tsh_gateway.config import GatewaySettings
from tsh_gateway.tunnel.broadcaster import StatusBroadcaster
from tsh_gateway.tunnel.manager import TunnelManager
from tsh_gateway.tunnel.teleport import CommandResult, TeleportClient

STAY_ALIVE = "import time; time.sleep(30)"
WRITE_STDERR = (
    "import sys, time; sys.stderr.write('channel 0: open failed: connect refused\\n'); "
    "sys.stderr.flush(); time.sleep(30)"
)


def exit_with(code: int, after: float = 0.0) -> str:
    return f"import sys, time; time.sleep({after}); sys.exit({code})"


class FakeTeleport(TeleportClient):
    """tsh stand-in: canned command results and a Python child as the tunnel."""

    def __init__(self, settings: GatewaySettings, tunnel_script: str = STAY_ALIVE):
        super().__init__(settings)
        self.tunnel_script = tunnel_script
        self.tunnel_command: list[str] | None = None
        self.login_result = CommandResult(0, "Logged in", "")
        self.status_result = CommandResult(0, "> Profile URL: https://proxy:443", "")
        self.logout_result = CommandResult(0, "Logged out", "")
        self.delay = 0.0
        self.calls: list[str] = []
        self.tunnel_requests: list[tuple[int, str]] = []

    async def login(self) -> CommandResult:
        self.calls.append("login")
        await asyncio.sleep(self.delay)
        return self.login_result

    async def status(self) -> CommandResult:
        self.calls.append("status")
        await asyncio.sleep(self.delay)
        return self.status_result

    async def logout(self) -> CommandResult:
        self.calls.append("logout")
        return self.logout_result

    def tunnel_argv(self, local_port: int, remote_host: str) -> list[str]:
        self.tunnel_requests.append((local_port, remote_host))
        if self.tunnel_command is not None:
            return self.tunnel_command
        return [sys.executable, "-c", self.tunnel_script]

    def launch_sso_login(self) -> None:
        self.calls.append("sso-login")


class RecordingSink:
    """Status sink that keeps every decoded event."""

    def __init__(self) -> None:
        self.events: list[dict] = []

    def send(self, message: str) -> None:
        assert message.startswith("data: ") and message.endswith("\n\n")
        self.events.append(json.loads(message[len("data: ") :]))

    @property
    def last(self) -> dict:
        return self.events[-1]


class BrokenSink:
    """Status sink whose channel has gone away."""

    def __init__(self) -> None:
        self.attempts = 0

    def send(self, message: str) -> None:
        self.attempts += 1
        raise ConnectionResetError("client went away")


@pytest.fixture
def settings():
    """Settings with short timings for fast lifecycle tests."""
    return GatewaySettings(confirm_delay=1.0, keepalive_interval=0.2, probe_timeout=0.5)


@pytest.fixture
def teleport(settings):
    return FakeTeleport(settings)


@pytest.fixture
def broadcaster():
    return StatusBroadcaster(keepalive_interval=0.2)


@pytest.fixture
def recorder(broadcaster):
    sink = RecordingSink()
    broadcaster.add(sink)
    return sink


@pytest_asyncio.fixture
async def manager(settings, teleport, broadcaster):
    """TunnelManager with every port reported free; tunnel stopped on teardown."""
    tunnel_manager = TunnelManager(
        settings,
        teleport=teleport,
        broadcaster=broadcaster,
        port_probe=lambda port: True,
    )
    yield tunnel_manager
    await tunnel_manager.shutdown(timeout=2.0)


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.05) -> bool:
    """Poll ``predicate`` until it holds or ``timeout`` passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()
