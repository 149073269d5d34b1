"""Tests for the FastAPI control surface."""

from decimal import Decimal

import pytest
from conftest import FakeTeleport
from fastapi.testclient import TestClient

from tsh_gateway.api import create_app
from tsh_gateway.sql.gateway import SQLGateway
from tsh_gateway.sql.reachability import ProbeResult
from tsh_gateway.tunnel.broadcaster import StatusBroadcaster
from tsh_gateway.tunnel.manager import TunnelManager
from tsh_gateway.tunnel.teleport import CommandResult

DB_CONFIG = {"host": "localhost", "port": 4085, "user": "reader", "password": "pw"}


class FakeConnection:
    open = True

    def __init__(self, rows):
        self.rows = rows
        self.closed = False

    def cursor(self):
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def execute(self, query):
        self.query = query

    def fetchall(self):
        return self.rows

    def close(self):
        self.closed = True


@pytest.fixture
def api_teleport(settings):
    return FakeTeleport(settings)


@pytest.fixture
def reachable_ports():
    return {4085}


@pytest.fixture
def client(settings, api_teleport, reachable_ports):
    """TestClient over a manager with fake tsh and a gateway with fake DB."""

    async def prober(host: str, port: int, timeout: float) -> ProbeResult:
        if port in reachable_ports:
            return ProbeResult(True)
        return ProbeResult(False, "Connection refused")

    manager = TunnelManager(
        settings,
        teleport=api_teleport,
        broadcaster=StatusBroadcaster(settings.keepalive_interval),
        port_probe=lambda port: True,
    )
    gateway = SQLGateway(
        connector=lambda **kwargs: FakeConnection([{"id": 1, "amount": Decimal("12.50")}]),
        prober=prober,
    )
    app = create_app(settings, manager=manager, gateway=gateway)
    app.state.control_port = 3100
    with TestClient(app) as test_client:
        yield test_client


class TestServerEndpoints:
    def test_root_banner(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert "ready to receive requests" in response.text

    def test_server_info(self, client):
        assert client.get("/server-info").json() == {"success": True, "port": 3100}

    def test_cors_headers(self, client):
        response = client.get("/status", headers={"Origin": "http://localhost:5173"})
        assert response.headers["access-control-allow-origin"] == "*"


class TestTunnelEndpoints:
    """Test connect, status and disconnect over HTTP."""

    def test_status_when_disconnected(self, client):
        assert client.get("/status").json() == {
            "success": True,
            "connected": False,
            "state": "disconnected",
            "environment": None,
            "processId": None,
            "localPort": None,
        }

    def test_connect_status_disconnect(self, client, api_teleport):
        response = client.post("/connect", json={"environment": "sit"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["tunnelPort"] == 4085
        assert body["message"] == "SSH tunnel for SIT environment initiated on port 4085."
        assert body["data"].startswith("> Profile URL")

        status = client.get("/status").json()
        assert status["connected"] is True
        assert status["environment"] == "sit"
        assert status["localPort"] == 4085
        assert isinstance(status["processId"], int)

        response = client.post("/disconnect")
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Tunnel terminated and successfully logged out.",
        }
        assert client.get("/status").json()["connected"] is False
        assert api_teleport.calls == ["login", "status", "logout"]

    def test_connect_accepts_env_alias(self, client):
        response = client.post("/connect", json={"env": "uat2"})
        assert response.status_code == 200
        assert response.json()["tunnelPort"] == 4022

    def test_connect_invalid_environment(self, client, api_teleport):
        response = client.post("/connect", json={"environment": "prod"})

        assert response.status_code == 400
        assert response.json() == {
            "success": False,
            "error": "InvalidEnvironment",
            "message": "Invalid or missing environment specified.",
        }
        assert api_teleport.calls == []

    def test_connect_without_body(self, client):
        response = client.post("/connect")
        assert response.status_code == 400
        assert response.json()["error"] == "InvalidEnvironment"

    def test_connect_login_failure(self, client, api_teleport):
        api_teleport.login_result = CommandResult(1, "", "ERROR: access denied")

        response = client.post("/connect", json={"environment": "sit"})

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "AuthenticationFailed"
        assert "access denied" in body["message"]

    def test_disconnect_without_tunnel(self, client):
        """Disconnect succeeds even when nothing is connected"""
        assert client.post("/disconnect").status_code == 200
        assert client.post("/disconnect").status_code == 200

    def test_sso_login(self, client, api_teleport):
        response = client.post("/sso-login")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert api_teleport.calls == ["sso-login"]

    def test_sso_login_launch_failure(self, client, api_teleport, monkeypatch):
        def fail() -> None:
            raise FileNotFoundError("No such file or directory: 'tsh'")

        monkeypatch.setattr(api_teleport, "launch_sso_login", fail)

        response = client.post("/sso-login")

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert "tsh" in response.json()["message"]


class TestExecuteSql:
    """Test the SQL endpoint."""

    def test_rows_returned_as_json(self, client):
        response = client.post(
            "/execute-sql", json={"query": "SELECT id, amount FROM payments", "dbConfig": DB_CONFIG}
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "data": [{"id": 1, "amount": 12.5}]}

    def test_missing_fields(self, client):
        response = client.post("/execute-sql", json={"query": "SELECT * FROM t"})

        assert response.status_code == 400
        assert response.json()["error"] == "BadRequest"

    def test_missing_body(self, client):
        assert client.post("/execute-sql").status_code == 400

    def test_rejected_query(self, client):
        response = client.post(
            "/execute-sql", json={"query": "DROP TABLE payments", "dbConfig": DB_CONFIG}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "QueryRejected"

    def test_unreachable_tunnel(self, client):
        response = client.post(
            "/execute-sql",
            json={"query": "SELECT * FROM t", "dbConfig": {**DB_CONFIG, "port": 4023}},
        )

        assert response.status_code == 502
        body = response.json()
        assert body["error"] == "TunnelUnreachable"
        assert "127.0.0.1:4023" in body["message"]
