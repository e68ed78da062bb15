"""Protocol interfaces for pluggable backends."""

from certkeep.protocols.database import Database, Dialect, Row
from certkeep.protocols.storage import CertStorage, KeyInfo

__all__ = [
    "CertStorage",
    "Database",
    "Dialect",
    "KeyInfo",
    "Row",
]
