"""Adapter for the Teleport ``tsh`` command line client.

Login, status and logout are run to completion and reported as a
``CommandResult``; they never raise for a failing command. The tunnel itself
is long-running and is launched by ``TunnelProcess`` from the argv built here.
"""

import asyncio
import subprocess
import sys
from dataclasses import dataclass

from ..common.logging import get_logger
from ..config import GatewaySettings

logger = get_logger(__name__)

COMMAND_NOT_FOUND = 127


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a finished external command."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def diagnostic(self) -> str:
        """Best available explanation of a failure."""
        return self.stderr.strip() or self.stdout.strip() or f"exit code {self.returncode}"


async def run_command(argv: list[str]) -> CommandResult:
    """Run ``argv`` to completion and capture its output.

    A binary that cannot be started is reported as exit code 127 with the OS
    error text on stderr.
    """
    logger.info("Executing command", command=" ".join(argv))
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error("Failed to start command", command=argv[0], error=str(e))
        return CommandResult(COMMAND_NOT_FOUND, "", str(e))

    stdout, stderr = await process.communicate()
    result = CommandResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
    logger.debug("Command finished", command=argv[0], returncode=result.returncode)
    return result


class TeleportClient:
    """Builds and runs ``tsh`` invocations from gateway settings."""

    def __init__(self, settings: GatewaySettings):
        self.settings = settings

    def login_argv(self) -> list[str]:
        argv = [
            self.settings.tsh_binary,
            "login",
            f"--proxy={self.settings.teleport_proxy}",
            f"--auth={self.settings.login_auth}",
        ]
        if self.settings.teleport_user:
            argv.append(f"--user={self.settings.teleport_user}")
        return argv

    def status_argv(self) -> list[str]:
        return [self.settings.tsh_binary, "status"]

    def logout_argv(self) -> list[str]:
        return [self.settings.tsh_binary, "logout"]

    def sso_login_argv(self) -> list[str]:
        return [
            self.settings.tsh_binary,
            "login",
            "--proxy",
            self.settings.teleport_proxy,
            f"--auth={self.settings.sso_auth}",
        ]

    def tunnel_argv(self, local_port: int, remote_host: str) -> list[str]:
        """Command forwarding ``local_port`` to ``remote_host`` via the bastion."""
        forward = f"{local_port}:{remote_host}:{self.settings.remote_port}"
        return [self.settings.tsh_binary, "ssh", "-N", "-L", forward, self.settings.bastion]

    async def login(self) -> CommandResult:
        return await run_command(self.login_argv())

    async def status(self) -> CommandResult:
        return await run_command(self.status_argv())

    async def logout(self) -> CommandResult:
        return await run_command(self.logout_argv())

    def launch_sso_login(self) -> None:
        """Open an interactive terminal running the SSO login and return at once.

        Raises:
            OSError: If the terminal or ``tsh`` cannot be started
        """
        argv = self.sso_login_argv()
        if sys.platform == "win32":
            command = " ".join(argv)
            launcher = ["cmd.exe", "/c", "start", "", "powershell", "-NoExit", "-Command", command]
            subprocess.Popen(
                launcher,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                creationflags=subprocess.DETACHED_PROCESS,  # type: ignore[attr-defined]
            )
        else:
            subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        logger.info("Launched SSO login", command=" ".join(argv))
