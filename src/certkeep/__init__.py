"""certkeep - SQL storage and distributed locks for certificate managers."""

from certkeep.config import Config, StorageOptions
from certkeep.exceptions import (
    BackendUnavailableError,
    CertKeepError,
    ConfigError,
    LockContendedError,
    LockError,
    LockTimeoutError,
    NotFoundError,
)
from certkeep.locks import LockManager
from certkeep.observability import (
    LogLevel,
    StructuredLogger,
    Timer,
    configure_logging,
    get_logger,
)
from certkeep.plugins import create_database, create_storage
from certkeep.protocols import CertStorage, Database, KeyInfo
from certkeep.records import RecordStore
from certkeep.schema import ensure_schema
from certkeep.storage import SQLStorage

__version__ = "0.1.0"
__all__ = [
    # Core
    "CertStorage",
    "Config",
    "Database",
    "KeyInfo",
    "LockManager",
    "RecordStore",
    "SQLStorage",
    "StorageOptions",
    "create_database",
    "create_storage",
    "ensure_schema",
    # Errors
    "BackendUnavailableError",
    "CertKeepError",
    "ConfigError",
    "LockContendedError",
    "LockError",
    "LockTimeoutError",
    "NotFoundError",
    # Observability
    "LogLevel",
    "StructuredLogger",
    "Timer",
    "configure_logging",
    "get_logger",
]
