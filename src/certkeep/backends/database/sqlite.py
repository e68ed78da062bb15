"""SQLite database backend."""

import asyncio
import atexit
import os
import re
import sqlite3
import threading
from collections.abc import AsyncIterator, Callable
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Any, TypeVar

from certkeep.exceptions import BackendUnavailableError
from certkeep.protocols.database import Dialect, Row

T = TypeVar("T")

SQLITE_DIALECT = Dialect(
    name="sqlite",
    # julianday() has millisecond resolution in SQLite
    clock_sql="CAST((julianday('now') - 2440587.5) * 86400000000 AS INTEGER)",
    blob_type="BLOB",
    integer_type="INTEGER",
)

PARAM_RE = re.compile(r":(\w+)")

# Thread pool for blocking sqlite3 calls - configurable via environment
_max_workers = int(os.environ.get("CERTKEEP_SQLITE_WORKERS", "4"))
_executor = ThreadPoolExecutor(max_workers=_max_workers, thread_name_prefix="certkeep-sqlite")

# Ensure executor is cleaned up on process exit
atexit.register(_executor.shutdown, wait=False)

# Database whose transaction() the current task is inside
_active_transaction: ContextVar["SQLiteDatabase | None"] = ContextVar(
    "certkeep_sqlite_transaction", default=None
)


def _commit(conn: sqlite3.Connection) -> None:
    try:
        conn.commit()
    except sqlite3.Error as e:
        raise BackendUnavailableError(f"SQLite commit failed: {e}") from e


class SQLiteDatabase:
    """SQLite database backend.

    Suitable for development, tests and single-host deployments. Several
    processes may share one database file; SQLite serializes their writes
    and ``busy_timeout`` controls how long a writer waits for the file lock.

    sqlite3 calls run on a worker thread so a statement waiting on the file
    lock never blocks the event loop. A statement abandoned by its caller
    (for example on a query timeout) finishes on its thread before the
    connection is used again.
    """

    dialect = SQLITE_DIALECT

    def __init__(
        self,
        path: str | None = None,
        connection: sqlite3.Connection | None = None,
        busy_timeout: float = 5.0,
        **kwargs: Any,
    ) -> None:
        """Initialize SQLite database.

        Args:
            path: Path to SQLite database file. Defaults to ./data/certkeep.db
                  Use ":memory:" for in-memory database.
            connection: An already open connection. It is used as-is and
                  is not closed by close(). It must have been opened with
                  check_same_thread=False.
            busy_timeout: Seconds to wait for another process's write lock
            **kwargs: Ignored (for compatibility with other backends)
        """
        if path == ":memory:" or connection is not None:
            self.path: str | Path = path or ":memory:"
        else:
            self.path = Path(path) if path else Path("./data/certkeep.db")
            self.path.parent.mkdir(parents=True, exist_ok=True)

        self.busy_timeout = busy_timeout
        self._conn = connection
        self._owns_connection = connection is None
        if self._conn is not None:
            self._conn.row_factory = sqlite3.Row
        # Serializes tasks on the loop
        self._lock = asyncio.Lock()
        # Serializes worker threads on the connection
        self._conn_lock = threading.Lock()

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create the database connection. Called on a worker thread."""
        if self._conn is None:
            db_path = str(self.path) if isinstance(self.path, Path) else self.path
            try:
                self._conn = sqlite3.connect(
                    db_path,
                    timeout=self.busy_timeout,
                    check_same_thread=False,
                )
            except sqlite3.Error as e:
                raise BackendUnavailableError(f"Cannot open SQLite database {db_path}: {e}") from e
            self._conn.row_factory = sqlite3.Row
        return self._conn

    @staticmethod
    def _convert_query(query: str, params: dict[str, Any]) -> tuple[str, tuple[Any, ...]]:
        """Replace :name placeholders with ? and build the params tuple."""
        param_names: list[str] = []

        def replace_param(match: re.Match[str]) -> str:
            param_names.append(match.group(1))
            return "?"

        query = PARAM_RE.sub(replace_param, query)
        return query, tuple(params[name] for name in param_names)

    async def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run fn(connection) on a worker thread, one call at a time."""

        def _call() -> T:
            with self._conn_lock:
                return fn(self._get_connection())

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(_executor, _call)

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
            query, param_values = self._convert_query(query, params)
        else:
            param_values = ()
        autocommit = _active_transaction.get() is not self

        def _execute(conn: sqlite3.Connection) -> list[sqlite3.Row]:
            try:
                rows = conn.execute(query, param_values).fetchall()
                if autocommit:
                    conn.commit()
            except sqlite3.Error as e:
                if autocommit and conn.in_transaction:
                    conn.rollback()
                raise BackendUnavailableError(f"SQLite query failed: {e}") from e
            return rows

        async with self._exclusive():
            rows = await self._run(_execute)

        return [Row(_data=dict(row)) for row in rows]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SQLiteDatabase"]:
        """Start a transaction.

        The connection is held for the whole block, so statements from other
        tasks wait instead of joining it. Nested calls join the outer
        transaction (SQLite has no nested transactions).
        """
        if _active_transaction.get() is self:
            yield self
            return

        async with self._lock:
            token = _active_transaction.set(self)
            try:
                yield self
                await self._run(_commit)
            except BaseException:
                await self._run(lambda conn: conn.rollback())
                raise
            finally:
                _active_transaction.reset(token)

    async def close(self) -> None:
        """Close the database connection if it was opened here."""
        if self._conn is None or not self._owns_connection:
            return

        def _close() -> None:
            with self._conn_lock:
                if self._conn is not None:
                    self._conn.close()
                    self._conn = None

        async with self._lock:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(_executor, _close)
