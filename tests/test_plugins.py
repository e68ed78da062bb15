"""Tests for backend discovery and the storage factory."""

import pytest

from certkeep.backends.database.postgres import PostgresDatabase
from certkeep.backends.database.sqlite import SQLiteDatabase
from certkeep.config import Config
from certkeep.exceptions import BackendUnavailableError, ConfigError
from certkeep.plugins import create_database, create_storage, discover_backends
from certkeep.storage import SQLStorage


class TestDiscovery:
    """Tests for entry-point discovery."""

    def test_discovers_builtin_backends(self):
        """sqlite and postgres are registered."""
        backends = discover_backends("database")

        assert backends["sqlite"] is SQLiteDatabase
        assert backends["postgres"] is PostgresDatabase

    def test_unknown_backend_raises_config_error(self):
        """Unknown backend names are reported with the available ones."""
        with pytest.raises(ConfigError, match="sqlite"):
            create_database("mysql")


class TestCreateDatabase:
    """Tests for create_database."""

    def test_creates_sqlite(self):
        """Keyword arguments reach the backend."""
        db = create_database("sqlite", path=":memory:")

        assert isinstance(db, SQLiteDatabase)
        assert db.path == ":memory:"

    def test_postgres_without_dsn_is_config_error(self):
        """Missing backend settings become ConfigError."""
        with pytest.raises(ConfigError, match="dsn"):
            create_database("postgres")


class TestCreateStorage:
    """Tests for create_storage."""

    @pytest.mark.asyncio
    async def test_creates_working_storage(self, sample_config_dict):
        """A configured storage can store and lock."""
        config = Config.from_dict(sample_config_dict)

        storage = await create_storage(config)
        try:
            assert isinstance(storage, SQLStorage)
            assert storage.options.data_table == "acme_data"
            assert storage.locks.lease == 30

            await storage.store("k", b"v")
            assert await storage.load("k") == b"v"
            assert await storage.locks.try_lock("k")
        finally:
            await storage.close()

    @pytest.mark.asyncio
    async def test_closes_database_when_setup_fails(self, monkeypatch, sample_config_dict):
        """A database whose schema setup fails is closed before the error propagates."""
        closed = []

        class BrokenDatabase(SQLiteDatabase):
            async def execute(self, query, params=None):
                raise BackendUnavailableError("connection refused")

            async def close(self):
                closed.append(True)
                await super().close()

        monkeypatch.setattr(
            "certkeep.plugins.create_database",
            lambda backend, **kwargs: BrokenDatabase(**kwargs),
        )
        config = Config.from_dict(sample_config_dict)

        with pytest.raises(BackendUnavailableError):
            await create_storage(config)

        assert closed == [True]
