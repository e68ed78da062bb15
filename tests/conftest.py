"""Pytest configuration and fixtures."""

import pytest

from certkeep.backends.database.sqlite import SQLiteDatabase
from certkeep.config import StorageOptions
from certkeep.schema import ensure_schema
from certkeep.storage import SQLStorage


@pytest.fixture
async def db():
    """In-memory SQLite database with the certkeep tables."""
    database = SQLiteDatabase(path=":memory:")
    await ensure_schema(database, "certkeep_data", "certkeep_locks")
    yield database
    await database.close()


@pytest.fixture
def storage_options():
    """Storage options with a fast lock poll interval."""
    return StorageOptions(lock_poll_interval_seconds=0.02)


@pytest.fixture
async def storage(storage_options):
    """SQLStorage over an in-memory SQLite database."""
    store = await SQLStorage.open(SQLiteDatabase(path=":memory:"), storage_options)
    yield store
    await store.close()


@pytest.fixture
def sample_config_dict():
    """Sample configuration dictionary for testing."""
    return {
        "database": {"backend": "sqlite", "path": ":memory:"},
        "storage": {
            "data_table": "acme_data",
            "lock_table": "acme_locks",
            "lock_lease_seconds": 30,
            "lock_poll_interval_seconds": 0.5,
        },
        "logging": {"level": "DEBUG", "format": "text"},
    }
