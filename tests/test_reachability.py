"""Tests for the TCP reachability probe."""

import asyncio
import socket

import pytest

from tsh_gateway.sql.reachability import ProbeResult, probe


def closed_port() -> int:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class TestProbe:
    """Test reachability against real loopback endpoints."""

    @pytest.mark.asyncio
    async def test_listening_endpoint_is_reachable(self):
        async def handle(reader, writer):
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            assert await probe("127.0.0.1", port, timeout=1.0) == ProbeResult(True)
        finally:
            server.close()
            await server.wait_closed()

    @pytest.mark.asyncio
    async def test_closed_port_is_unreachable(self):
        result = await probe("127.0.0.1", closed_port(), timeout=1.0)

        assert result.reachable is False
        assert result.detail
