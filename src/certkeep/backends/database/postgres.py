"""PostgreSQL database backend (psycopg 3, async)."""

import asyncio
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any

import psycopg
from psycopg.rows import dict_row

from certkeep.exceptions import BackendUnavailableError
from certkeep.protocols.database import Dialect, Row

POSTGRES_DIALECT = Dialect(
    name="postgres",
    # clock_timestamp() advances within a transaction, now() does not
    clock_sql="CAST(EXTRACT(EPOCH FROM clock_timestamp()) * 1000000 AS BIGINT)",
    blob_type="BYTEA",
    integer_type="BIGINT",
)

# Skip "::type" casts
PARAM_RE = re.compile(r"(?<!:):(\w+)")

# Database whose transaction() the current task is inside
_active_transaction: ContextVar["PostgresDatabase | None"] = ContextVar(
    "certkeep_postgres_transaction", default=None
)


class PostgresDatabase:
    """PostgreSQL database backend.

    Intended for deployments where several certificate manager instances
    share one database. The connection runs in autocommit mode so every
    statement outside ``transaction()`` is atomic on its own.
    """

    dialect = POSTGRES_DIALECT

    def __init__(
        self,
        dsn: str | None = None,
        connection: psycopg.AsyncConnection | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize PostgreSQL database.

        Args:
            dsn: libpq connection string, e.g. "postgresql://user@host/db"
            connection: An already open async connection. It is used as-is
                  and is not closed by close().
            **kwargs: Ignored (for compatibility with other backends)
        """
        if not dsn and connection is None:
            raise ValueError("PostgresDatabase requires a dsn or a connection")

        self.dsn = dsn
        self._conn = connection
        self._owns_connection = connection is None
        self._lock = asyncio.Lock()

    async def _get_connection(self) -> psycopg.AsyncConnection:
        """Get or create the database connection. Caller holds the lock."""
        if self._conn is None:
            try:
                self._conn = await psycopg.AsyncConnection.connect(
                    self.dsn,
                    autocommit=True,
                )
            except psycopg.Error as e:
                raise BackendUnavailableError(f"Cannot connect to PostgreSQL: {e}") from e
        return self._conn

    @staticmethod
    def _convert_query(query: str) -> str:
        """Replace :name placeholders with psycopg's %(name)s."""
        return PARAM_RE.sub(r"%(\1)s", query)

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        """Hold the connection unless this task's transaction already does."""
        if _active_transaction.get() is self:
            yield
            return
        async with self._lock:
            yield

    async def execute(
        self,
        query: str,
        params: dict[str, Any] | None = None,
    ) -> list[Row]:
        """Execute a query and return results."""
        if params:
            query = self._convert_query(query)

        async with self._exclusive():
            conn = await self._get_connection()
            try:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(query, params or None)
                    rows = await cur.fetchall() if cur.description else []
            except psycopg.Error as e:
                raise BackendUnavailableError(f"PostgreSQL query failed: {e}") from e

        return [Row(_data=dict(row)) for row in rows]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["PostgresDatabase"]:
        """Start a transaction.

        The connection is held for the whole block, so statements from other
        tasks wait instead of joining it. Nested calls join the outer
        transaction.
        """
        if _active_transaction.get() is self:
            yield self
            return

        async with self._lock:
            conn = await self._get_connection()
            token = _active_transaction.set(self)
            try:
                async with conn.transaction():
                    yield self
            except psycopg.Error as e:
                raise BackendUnavailableError(f"PostgreSQL transaction failed: {e}") from e
            finally:
                _active_transaction.reset(token)

    async def close(self) -> None:
        """Close the database connection if it was opened here."""
        if self._conn is None or not self._owns_connection:
            return
        async with self._lock:
            if self._conn is not None:
                await self._conn.close()
                self._conn = None
