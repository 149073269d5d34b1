"""Tests for the command line interface."""

import socket
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from tsh_gateway.cli import (
    PREFERRED_CONTROL_PORTS,
    bind_control_socket,
    choose_control_port,
    main,
)
from tsh_gateway.common.logging import setup_logging


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    """serve reconfigures logging onto the runner's captured stdout."""
    yield
    setup_logging(level="INFO")


class TestChooseControlPort:
    """Test control server port selection."""

    def test_requested_port_used_when_free(self):
        with patch("tsh_gateway.cli.is_port_free", return_value=True):
            assert choose_control_port(8080) == 8080

    def test_port_3000_is_skipped(self):
        with patch("tsh_gateway.cli.is_port_free", return_value=True):
            assert choose_control_port(3000) == 3100

    def test_busy_requested_port_falls_back(self):
        with patch("tsh_gateway.cli.is_port_free", side_effect=lambda port, host: port == 3105):
            assert choose_control_port(8080) == 3105

    def test_second_preferred_range(self):
        with patch("tsh_gateway.cli.is_port_free", side_effect=lambda port, host: port == 3003):
            assert choose_control_port(None) == 3003

    def test_any_port_as_last_resort(self):
        with patch("tsh_gateway.cli.is_port_free", return_value=False) as probe:
            assert choose_control_port(None) == 0
        assert probe.call_count == len(PREFERRED_CONTROL_PORTS)


class TestBindControlSocket:
    def test_bind_ephemeral_port(self):
        sock = bind_control_socket("127.0.0.1", 0)
        try:
            assert sock.getsockname()[1] > 0
        finally:
            sock.close()

    def test_bind_busy_port_raises(self):
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)
        try:
            with pytest.raises(OSError):
                bind_control_socket("127.0.0.1", listener.getsockname()[1])
        finally:
            listener.close()


class TestServeCommand:
    """Test the serve command wiring."""

    def test_version(self, runner):
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "version" in result.output

    def test_serve_runs_uvicorn_on_bound_socket(self, runner):
        with (
            patch("tsh_gateway.cli.choose_control_port", return_value=0),
            patch("tsh_gateway.cli.uvicorn.Server") as server_cls,
            patch("tsh_gateway.cli.uvicorn.Config") as config_cls,
        ):
            result = runner.invoke(main, ["serve", "--host", "127.0.0.1"])

        assert result.exit_code == 0, result.output
        sockets = server_cls.return_value.run.call_args.kwargs["sockets"]
        try:
            assert len(sockets) == 1
            app = config_cls.call_args.args[0]
            assert app.state.control_port == sockets[0].getsockname()[1]
        finally:
            sockets[0].close()

    def test_serve_exits_when_port_busy(self, runner):
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        listener.bind(("127.0.0.1", 0))
        listener.listen(1)
        busy = listener.getsockname()[1]
        try:
            with (
                patch("tsh_gateway.cli.choose_control_port", return_value=busy),
                patch("tsh_gateway.cli.uvicorn.Server") as server_cls,
            ):
                result = runner.invoke(main, ["serve", "--host", "127.0.0.1"])
        finally:
            listener.close()

        assert result.exit_code == 1
        server_cls.assert_not_called()

    def test_serve_with_profiles_file(self, runner, tmp_path):
        profiles = tmp_path / "profiles.toml"
        profiles.write_text(
            '[environments.dev]\ndefault_local_port = 5000\nremote_host = "db.dev"\n'
        )

        with (
            patch("tsh_gateway.cli.choose_control_port", return_value=0),
            patch("tsh_gateway.cli.uvicorn.Server") as server_cls,
            patch("tsh_gateway.cli.uvicorn.Config") as config_cls,
        ):
            result = runner.invoke(main, ["serve", "--profiles", str(profiles)])

        assert result.exit_code == 0, result.output
        app = config_cls.call_args.args[0]
        assert set(app.state.settings.environments) == {"dev"}
        server_cls.return_value.run.call_args.kwargs["sockets"][0].close()

    def test_serve_rejects_bad_profiles_file(self, runner, tmp_path):
        profiles = tmp_path / "profiles.toml"
        profiles.write_text('proxy = "teleport.example.com:443"\n')

        with patch("tsh_gateway.cli.uvicorn.Server") as server_cls:
            result = runner.invoke(main, ["serve", "--profiles", str(profiles)])

        assert result.exit_code == 2
        assert "No [environments] table" in result.output
        server_cls.assert_not_called()
