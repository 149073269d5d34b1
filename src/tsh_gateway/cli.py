"""tsh-gateway command line interface."""

import socket
import sys
from pathlib import Path

import click
import uvicorn

from .api import create_app
from .common.logging import get_logger, setup_logging
from .config import GatewaySettings
from .tunnel.ports import is_port_free

logger = get_logger(__name__)

# Port 3000 is usually taken by the UI dev server.
AVOIDED_PORT = 3000
PREFERRED_CONTROL_PORTS = [*range(3100, 3111), *range(3001, 3010)]


def choose_control_port(requested: int | None, host: str = "0.0.0.0") -> int:
    """Pick the port the control server should listen on.

    An explicitly requested port other than 3000 wins when it is free;
    otherwise the first free preferred port is used, and 0 (any port) as a
    last resort.
    """
    if requested and requested != AVOIDED_PORT:
        if is_port_free(requested, host):
            return requested
        logger.error("Configured port not available", port=requested)

    for port in PREFERRED_CONTROL_PORTS:
        if is_port_free(port, host):
            return port
    return 0


def bind_control_socket(host: str, port: int) -> socket.socket:
    """Bind the listening socket for the control server.

    Raises:
        OSError: If the address cannot be bound
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    return sock


@click.group()
@click.version_option(package_name="tsh-gateway")
def main() -> None:
    """Local control server for a Teleport database tunnel."""


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to listen on")
@click.option("--port", "-p", type=int, envvar="PORT", help="Port to listen on")
@click.option(
    "--profiles",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="TOML file with [environments.<name>] tables",
)
@click.option("--log-level", default=None, help="Logging level (default from settings)")
@click.option("--json-logs/--no-json-logs", default=None, help="Emit JSON log lines")
def serve(
    host: str,
    port: int | None,
    profiles: Path | None,
    log_level: str | None,
    json_logs: bool | None,
) -> None:
    """Run the control API."""
    settings = GatewaySettings()
    if profiles is not None:
        try:
            settings = settings.with_profiles_file(profiles)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--profiles") from e

    setup_logging(
        level=log_level or settings.log_level,
        json_format=settings.json_logs if json_logs is None else json_logs,
    )

    selected = choose_control_port(port, host)
    try:
        sock = bind_control_socket(host, selected)
    except OSError as e:
        logger.error(
            "Selected port is already in use. Stop the existing process or set PORT "
            "to a different value.",
            port=selected,
            error=str(e),
        )
        sys.exit(1)

    bound_port = sock.getsockname()[1]
    app = create_app(settings)
    app.state.control_port = bound_port
    logger.info(
        "Teleport command server listening",
        url=f"http://localhost:{bound_port}",
        environments=sorted(settings.environments),
    )

    server = uvicorn.Server(uvicorn.Config(app, log_config=None))
    server.run(sockets=[sock])
