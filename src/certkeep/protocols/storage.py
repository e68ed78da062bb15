"""CertStorage protocol expected by the certificate manager."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class KeyInfo:
    """Metadata about a stored key.

    Every key is a leaf, so ``is_terminal`` is always True.
    """

    key: str
    modified: datetime
    size: int
    is_terminal: bool = True


@runtime_checkable
class CertStorage(Protocol):
    """Storage and locking contract for certificates, keys and metadata."""

    async def store(self, key: str, value: bytes) -> None:
        """Insert or fully replace the value at key."""
        ...

    async def load(self, key: str) -> bytes:
        """Return the value at key. Raises NotFoundError if absent."""
        ...

    async def delete(self, key: str) -> None:
        """Delete key. Raises NotFoundError if absent."""
        ...

    async def exists(self, key: str) -> bool:
        """Return True if key exists. Never raises for backend failures."""
        ...

    async def stat(self, key: str) -> KeyInfo:
        """Return metadata for key. Raises NotFoundError if absent."""
        ...

    async def list(self, prefix: str, recursive: bool) -> list[str]:
        """List keys starting with prefix."""
        ...

    async def lock(self, key: str, timeout: float | None = None) -> None:
        """Block until the lock for key is acquired."""
        ...

    async def unlock(self, key: str) -> None:
        """Release the lock for key. No-op if not held."""
        ...
