"""Supervised tunnel subprocess."""

import asyncio
from collections.abc import Callable

from ..common.exceptions import TunnelLaunchFailedError
from ..common.logging import get_logger

logger = get_logger(__name__)

FailureCallback = Callable[["TunnelProcess", str], None]


class TunnelProcess:
    """Owns one ``tsh ssh -N -L`` child process and reports its failures.

    Output on stderr and process exit count as failure; ``on_failure`` is
    invoked at most once with a diagnostic. A spawn error is raised from
    ``start`` instead.
    """

    def __init__(self, argv: list[str], on_failure: FailureCallback):
        """Initialize TunnelProcess.

        Args:
            argv: Command line of the tunnel
            on_failure: Called with (process, diagnostic) on the first failure event
        """
        self.argv = argv
        self._on_failure = on_failure
        self._process: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._exit_task: asyncio.Task[None] | None = None
        self._failed = False
        self.returncode: int | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self) -> None:
        """Spawn the tunnel and begin watching its stderr and exit.

        Raises:
            TunnelLaunchFailedError: If the binary cannot be started
        """
        logger.info("Starting tunnel process", command=" ".join(self.argv))
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            logger.error("Failed to spawn tunnel process", error=str(e))
            self._failed = True
            raise TunnelLaunchFailedError(f"Failed to spawn SSH tunnel process: {e}") from e

        logger.info("Tunnel process started", pid=self._process.pid)
        self._stderr_task = asyncio.create_task(self._watch_stderr())
        self._exit_task = asyncio.create_task(self._watch_exit())

    async def _watch_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        while True:
            chunk = await self._process.stderr.read(4096)
            if not chunk:
                return
            text = chunk.decode("utf-8", errors="replace")
            logger.warning("Tunnel stderr", pid=self.pid, output=text.strip())
            self._fail(f"Failed to establish SSH tunnel: {text.strip()}")

    async def _watch_exit(self) -> None:
        assert self._process is not None
        self.returncode = await self._process.wait()
        logger.info("Tunnel process exited", pid=self.pid, returncode=self.returncode)
        self._fail(f"SSH tunnel process exited with code {self.returncode}")

    def _fail(self, diagnostic: str) -> None:
        if self._failed:
            return
        self._failed = True
        self._on_failure(self, diagnostic)

    def terminate(self) -> None:
        """Send SIGTERM without waiting for the process to exit."""
        if not self.is_running():
            return
        assert self._process is not None
        logger.info("Terminating tunnel process", pid=self._process.pid)
        try:
            self._process.terminate()
        except ProcessLookupError:
            logger.debug("Tunnel process already gone", pid=self._process.pid)

    async def stop(self, timeout: float = 5.0) -> None:
        """Terminate the process and wait for it, killing it after ``timeout``."""
        if self._process is None:
            return
        self.terminate()
        try:
            await asyncio.wait_for(self._process.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "Process did not terminate gracefully, force killing", pid=self._process.pid
            )
            self._process.kill()
            await self._process.wait()

        for task in (self._stderr_task, self._exit_task):
            if task is not None and not task.done():
                await asyncio.wait([task], timeout=timeout)
