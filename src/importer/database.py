"""Async SQLite access used by the importer and by read paths."""

from pathlib import Path
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Union

import aiosqlite

from src.monitoring.logger import StructuredLogger
from src.resilience.retry import retry_database_operation


class DatabaseHandle(Protocol):
    """Minimal database interface the importer depends on."""

    async def run(self, sql: str, params: Sequence[Any] = ()) -> None:
        """Execute a single statement."""
        ...


class SQLiteDatabase:
    """
    aiosqlite connection wrapper.

    The connection runs in autocommit mode so callers control transactions
    with explicit BEGIN/COMMIT/ROLLBACK statements. busy_timeout bounds how
    long a write waits on a locked database before SQLite raises
    SQLITE_BUSY, which execute() and fetch_all() retry.
    """

    def __init__(
        self,
        path: Union[str, Path],
        busy_timeout: float = 5.0,
        retry_options: Optional[Dict[str, Any]] = None,
        logger: Optional[StructuredLogger] = None,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """
        Args:
            path: Database file path, or ":memory:"
            busy_timeout: Seconds to wait on a locked database
            retry_options: RetryPolicy overrides for execute/fetch_all
            logger: Optional structured logger
            sleeper: Async sleep used between retries (default: asyncio.sleep)
        """
        self.path = str(path)
        self.busy_timeout = busy_timeout
        self.retry_options = retry_options or {}
        self.logger = logger or StructuredLogger()
        self._sleep = sleeper
        self._connection: Optional[aiosqlite.Connection] = None

    async def open(self) -> "SQLiteDatabase":
        if self._connection is None:
            self._connection = await aiosqlite.connect(
                self.path,
                timeout=self.busy_timeout,
                isolation_level=None,
            )
            self.logger.debug("database_open", path=self.path, busy_timeout=self.busy_timeout)
        return self

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self.logger.debug("database_closed", path=self.path)

    async def __aenter__(self) -> "SQLiteDatabase":
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Database is not open")
        return self._connection

    async def run(self, sql: str, params: Sequence[Any] = ()) -> None:
        """Execute one statement without retry (safe inside a transaction)."""
        async with self.connection.execute(sql, tuple(params)):
            pass

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute one statement with retry on transient errors; returns rowcount."""
        async def execute_statement() -> int:
            async with self.connection.execute(sql, tuple(params)) as cursor:
                return cursor.rowcount

        return await retry_database_operation(
            execute_statement, logger=self.logger, sleeper=self._sleep, **self.retry_options
        )

    async def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> List[tuple]:
        """Run a query with retry on transient errors and return every row."""
        async def fetch_rows() -> List[tuple]:
            rows = await self.connection.execute_fetchall(sql, tuple(params))
            return [tuple(row) for row in rows]

        return await retry_database_operation(
            fetch_rows, logger=self.logger, sleeper=self._sleep, **self.retry_options
        )

    async def table_exists(self, table_name: str) -> bool:
        rows = await self.fetch_all(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table_name,),
        )
        return bool(rows)
