"""Read-only SQL gateway.

Runs one validated SELECT against a database reached through the tunnel.
The endpoint is probed before any database handshake so that a closed tunnel
is reported as ``TunnelUnreachable`` rather than as a driver error.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import pymysql
import pymysql.cursors
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..common.exceptions import (
    BadRequestError,
    QueryExecutionFailedError,
    QueryRejectedError,
    TunnelUnreachableError,
)
from ..common.logging import get_logger
from ..common.utils import normalize_db_host, sanitize_log_data
from .reachability import ProbeResult, probe
from .validator import REJECTION_MESSAGE, validate_select

logger = get_logger(__name__)

Prober = Callable[[str, int, float], Awaitable[ProbeResult]]


class DatabaseConfig(BaseModel):
    """Connection parameters supplied with each query."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    host: str | None = None
    port: int | None = Field(default=None, ge=1, le=65535)
    user: str | None = None
    password: str | None = None
    database: str | None = None


def _driver_message(error: Exception) -> str:
    # pymysql errors carry (errno, message)
    if len(error.args) > 1 and isinstance(error.args[1], str):
        return error.args[1]
    return str(error) or "Query execution failed"


class SQLGateway:
    """Validates, probes and executes single read-only statements."""

    def __init__(
        self,
        connector: Callable[..., Any] = pymysql.connect,
        prober: Prober = probe,
        probe_timeout: float = 1.5,
        connect_timeout: int = 10,
    ):
        self._connector = connector
        self._prober = prober
        self.probe_timeout = probe_timeout
        self.connect_timeout = connect_timeout

    async def execute(
        self, query: str | None, db_config: DatabaseConfig | dict[str, Any] | None
    ) -> list[dict[str, Any]]:
        """Run ``query`` and return its rows.

        Raises:
            BadRequestError: Query or connection parameters missing or malformed
            QueryRejectedError: Query is not a single read-only SELECT
            TunnelUnreachableError: Nothing accepts connections at host:port
            QueryExecutionFailedError: The database reported an error
        """
        if not query or not db_config:
            raise BadRequestError("Missing query or dbConfig")

        valid, reason = validate_select(query)
        if not valid:
            logger.info("Rejected query", reason=reason)
            raise QueryRejectedError(f"{REJECTION_MESSAGE} ({reason})")

        config = self._resolve_config(db_config)
        assert config.host is not None and config.port is not None

        result = await self._prober(config.host, config.port, self.probe_timeout)
        if not result.reachable:
            raise TunnelUnreachableError(
                f"Cannot reach {config.host}:{config.port}. Ensure SSH tunnel is "
                "connected for the selected environment and the local port is open. "
                f"({result.detail})"
            )

        logger.info(
            "Executing query",
            **sanitize_log_data(config.model_dump(exclude_none=True, exclude={"password"})),
        )
        return await asyncio.to_thread(self._run, config, query)

    def _resolve_config(
        self, db_config: DatabaseConfig | dict[str, Any]
    ) -> DatabaseConfig:
        try:
            config = (
                db_config
                if isinstance(db_config, DatabaseConfig)
                else DatabaseConfig.model_validate(db_config)
            )
        except ValidationError as e:
            raise BadRequestError(f"Invalid DB configuration: {e.errors()[0]['msg']}") from e

        config = config.model_copy(update={"host": normalize_db_host(config.host)})
        if not config.host or not config.port or not config.user:
            raise BadRequestError("Incomplete DB configuration (host, port, user required)")
        return config

    def _run(self, config: DatabaseConfig, query: str) -> list[dict[str, Any]]:
        try:
            connection = self._connector(
                host=config.host,
                port=config.port,
                user=config.user,
                password=config.password or "",
                database=config.database or None,
                cursorclass=pymysql.cursors.DictCursor,
                # MULTI_STATEMENTS stays off
                client_flag=0,
                connect_timeout=self.connect_timeout,
            )
        except pymysql.MySQLError as e:
            logger.warning("Database connection failed", error=str(e))
            raise QueryExecutionFailedError(_driver_message(e)) from e

        try:
            with connection.cursor() as cursor:
                cursor.execute(query)
                rows = list(cursor.fetchall())
        except pymysql.MySQLError as e:
            logger.warning("Query execution failed", error=str(e))
            raise QueryExecutionFailedError(_driver_message(e)) from e
        finally:
            if connection.open:
                connection.close()

        logger.info("Query returned rows", rows=len(rows))
        return rows
