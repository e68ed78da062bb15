"""Backend discovery via Python entry points."""

from importlib.metadata import entry_points
from typing import Any

from certkeep.config import Config
from certkeep.exceptions import ConfigError
from certkeep.observability import configure_logging
from certkeep.protocols import Database
from certkeep.storage import SQLStorage

BACKEND_GROUPS = {
    "database": "certkeep.backends.database",
}


def discover_backends(group: str) -> dict[str, Any]:
    """Discover all registered backends for a given group.

    Args:
        group: The backend group name (database)

    Returns:
        Dictionary mapping backend names to their classes
    """
    full_group = BACKEND_GROUPS.get(group, group)
    eps = entry_points(group=full_group)
    return {ep.name: ep.load() for ep in eps}


def get_backend(group: str, name: str) -> Any:
    """Get a specific backend class by group and name.

    Args:
        group: The backend group name (database)
        name: The backend name (e.g., "sqlite", "postgres")

    Returns:
        The backend class

    Raises:
        ConfigError: If the backend is not found
    """
    backends = discover_backends(group)
    if name not in backends:
        available = ", ".join(sorted(backends.keys())) or "(none)"
        raise ConfigError(
            f"Backend '{name}' not found in group '{group}'. Available: {available}"
        )
    return backends[name]


def create_database(backend: str, **kwargs: Any) -> Database:
    """Create a Database instance.

    Args:
        backend: The backend name (e.g., "sqlite", "postgres")
        **kwargs: Backend-specific configuration

    Returns:
        A Database implementation

    Raises:
        ConfigError: If the backend is unknown or rejects its settings
    """
    cls = get_backend("database", backend)
    try:
        return cls(**kwargs)
    except ValueError as e:
        raise ConfigError(f"Invalid settings for backend '{backend}': {e}") from e


async def create_storage(config: Config) -> SQLStorage:
    """Configure logging, build the database backend and open storage."""
    configure_logging(level=config.logging.level, format=config.logging.format)
    db = create_database(config.database.backend, **config.database.backend_kwargs())
    try:
        return await SQLStorage.open(db, config.storage)
    except BaseException:
        await db.close()
        raise
