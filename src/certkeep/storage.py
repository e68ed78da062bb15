"""SQL-backed CertStorage combining the record store and the lock manager."""

from certkeep.config import StorageOptions
from certkeep.locks import LockManager
from certkeep.protocols.database import Database
from certkeep.protocols.storage import KeyInfo
from certkeep.records import RecordStore
from certkeep.schema import ensure_schema


class SQLStorage:
    """CertStorage implementation over a single Database.

    Records and locks live in separate tables of the same database and use
    the same backend clock. Several SQLStorage instances, in one process or
    many, may share a database; all coordination goes through it.

    Example:
        db = SQLiteDatabase(path="/var/lib/certs/certkeep.db")
        storage = await SQLStorage.open(db)
        await storage.lock("issue_cert_example.com")
        try:
            await storage.store("certificates/example.com.crt", pem)
        finally:
            await storage.unlock("issue_cert_example.com")
    """

    def __init__(self, db: Database, options: StorageOptions | None = None) -> None:
        """Initialize storage without touching the database.

        Use :meth:`open` to also create the tables.

        Args:
            db: Open database backend
            options: Table names, lease and timeouts
        """
        self.db = db
        self.options = options or StorageOptions()
        self.records = RecordStore(
            db,
            table=self.options.data_table,
            query_timeout=self.options.query_timeout_seconds,
        )
        self.locks = LockManager(
            db,
            table=self.options.lock_table,
            lease=self.options.lock_lease_seconds,
            poll_interval=self.options.lock_poll_interval_seconds,
            query_timeout=self.options.query_timeout_seconds,
        )

    @classmethod
    async def open(cls, db: Database, options: StorageOptions | None = None) -> "SQLStorage":
        """Create storage and make sure its tables exist."""
        storage = cls(db, options)
        await storage.setup()
        return storage

    async def setup(self) -> None:
        """Create the data and lock tables if needed."""
        await ensure_schema(
            self.db,
            self.options.data_table,
            self.options.lock_table,
            timeout=self.options.query_timeout_seconds,
        )

    async def store(self, key: str, value: bytes) -> None:
        await self.records.store(key, value)

    async def load(self, key: str) -> bytes:
        return await self.records.load(key)

    async def delete(self, key: str) -> None:
        await self.records.delete(key)

    async def exists(self, key: str) -> bool:
        return await self.records.exists(key)

    async def stat(self, key: str) -> KeyInfo:
        return await self.records.stat(key)

    async def list(self, prefix: str, recursive: bool = False) -> list[str]:
        return await self.records.list(prefix, recursive)

    async def lock(self, key: str, timeout: float | None = None) -> None:
        await self.locks.lock(key, timeout=timeout)

    async def unlock(self, key: str) -> None:
        await self.locks.unlock(key)

    async def is_locked(self, key: str) -> bool:
        return await self.locks.is_locked(key)

    async def ensure_unlocked(self, key: str) -> None:
        await self.locks.ensure_unlocked(key)

    async def close(self) -> None:
        """Close the underlying database."""
        await self.db.close()
