"""Record store: named byte blobs with modification time and size."""

from datetime import datetime, timedelta, timezone

from certkeep.config import DEFAULT_QUERY_TIMEOUT_SECONDS
from certkeep.exceptions import BackendUnavailableError, NotFoundError
from certkeep.observability import get_logger
from certkeep.protocols.database import Database
from certkeep.protocols.storage import KeyInfo
from certkeep.sql import execute
from certkeep.utils.validation import validate_identifier, validate_key

logger = get_logger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def from_backend_micros(value: int) -> datetime:
    """Convert backend-clock microseconds since the epoch to a UTC datetime."""
    return EPOCH + timedelta(microseconds=int(value))


def is_direct_child(key: str, prefix: str) -> bool:
    """Whether key sits at most one path segment below prefix.

    One leading "/" after the prefix is ignored, so both "certs" and
    "certs/" list "certs/example.com" but not "certs/example.com/key".
    """
    remainder = key[len(prefix):]
    if remainder.startswith("/"):
        remainder = remainder[1:]
    return "/" not in remainder


class RecordStore:
    """CRUD and prefix listing over a flat key namespace.

    Every operation is a single statement. ``modified`` comes from the
    backend clock and strictly increases on each write to a key, even when
    two writes land within the clock's resolution.
    """

    def __init__(
        self,
        db: Database,
        table: str = "certkeep_data",
        query_timeout: float | None = DEFAULT_QUERY_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the record store.

        Args:
            db: Database holding the data table
            table: Name of the data table
            query_timeout: Seconds allowed per statement (None for no limit)
        """
        self.db = db
        self.table = validate_identifier(table, name="data table")
        self.query_timeout = query_timeout

        clock = db.dialect.clock_sql
        self._store_sql = f"""
            INSERT INTO {self.table} (key, value, modified)
            VALUES (:key, :value, {clock})
            ON CONFLICT (key) DO UPDATE SET
                value = excluded.value,
                modified = CASE
                    WHEN excluded.modified > {self.table}.modified THEN excluded.modified
                    ELSE {self.table}.modified + 1
                END
        """

    async def store(self, key: str, value: bytes) -> None:
        """Insert key or fully replace its value, refreshing modified."""
        validate_key(key)
        await execute(
            self.db,
            self._store_sql,
            {"key": key, "value": bytes(value)},
            timeout=self.query_timeout,
        )

    async def load(self, key: str) -> bytes:
        """Return the stored value.

        Raises:
            NotFoundError: If key does not exist
        """
        validate_key(key)
        rows = await execute(
            self.db,
            f"SELECT value FROM {self.table} WHERE key = :key",
            {"key": key},
            timeout=self.query_timeout,
        )
        if not rows:
            raise NotFoundError(key)
        return bytes(rows[0].value)

    async def exists(self, key: str) -> bool:
        """Check whether key exists.

        Never raises: an invalid key is reported as False, and a backend
        failure is logged and reported as False.
        """
        try:
            validate_key(key)
        except ValueError:
            return False
        try:
            rows = await execute(
                self.db,
                f"SELECT 1 AS found FROM {self.table} WHERE key = :key",
                {"key": key},
                timeout=self.query_timeout,
            )
        except BackendUnavailableError as e:
            logger.warning("Exists check failed, reporting key as absent", context={"key": key}, error=e)
            return False
        return bool(rows)

    async def delete(self, key: str) -> None:
        """Delete key.

        Raises:
            NotFoundError: If key did not exist
        """
        validate_key(key)
        rows = await execute(
            self.db,
            f"DELETE FROM {self.table} WHERE key = :key RETURNING key",
            {"key": key},
            timeout=self.query_timeout,
        )
        if not rows:
            raise NotFoundError(key)

    async def stat(self, key: str) -> KeyInfo:
        """Return key, modified time and size read from one row.

        Raises:
            NotFoundError: If key does not exist
        """
        validate_key(key)
        rows = await execute(
            self.db,
            f"SELECT key, modified, length(value) AS size FROM {self.table} WHERE key = :key",
            {"key": key},
            timeout=self.query_timeout,
        )
        if not rows:
            raise NotFoundError(key)
        row = rows[0]
        return KeyInfo(
            key=row.key,
            modified=from_backend_micros(row.modified),
            size=int(row.size),
            is_terminal=True,
        )

    async def list(self, prefix: str, recursive: bool = False) -> list[str]:
        """List keys that start with prefix.

        Matching is an exact, case-sensitive prefix comparison. Without
        recursive, only keys at most one path segment below prefix are
        returned. The order of the result is unspecified.
        """
        rows = await execute(
            self.db,
            f"SELECT key FROM {self.table} WHERE substr(key, 1, :prefix_len) = :prefix",
            {"prefix_len": len(prefix), "prefix": prefix},
            timeout=self.query_timeout,
        )
        keys = [row.key for row in rows]
        if recursive:
            return keys
        return [key for key in keys if is_direct_child(key, prefix)]
