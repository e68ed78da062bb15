"""Idempotent creation of the data and lock tables."""

import asyncio

from certkeep.exceptions import BackendUnavailableError
from certkeep.observability import get_logger
from certkeep.protocols.database import Database
from certkeep.utils.validation import validate_identifier

logger = get_logger(__name__)


def schema_statements(db: Database, data_table: str, lock_table: str) -> list[str]:
    """Return the CREATE TABLE statements for db's dialect."""
    validate_identifier(data_table, name="data table")
    validate_identifier(lock_table, name="lock table")
    dialect = db.dialect
    return [
        f"""
        CREATE TABLE IF NOT EXISTS {data_table} (
            key      TEXT PRIMARY KEY,
            value    {dialect.blob_type} NOT NULL,
            modified {dialect.integer_type} NOT NULL
        )
        """,
        f"""
        CREATE TABLE IF NOT EXISTS {lock_table} (
            key     TEXT PRIMARY KEY,
            expires {dialect.integer_type} NOT NULL
        )
        """,
    ]


async def ensure_schema(
    db: Database,
    data_table: str,
    lock_table: str,
    timeout: float | None = None,
) -> None:
    """Create the data and lock tables if they do not exist.

    Safe to run on every startup and from several processes at once.

    Raises:
        BackendUnavailableError: The backend failed or the timeout expired
    """
    statements = schema_statements(db, data_table, lock_table)

    async def create() -> None:
        async with db.transaction():
            for statement in statements:
                await db.execute(statement)

    try:
        await asyncio.wait_for(create(), timeout)
    except asyncio.TimeoutError as e:
        raise BackendUnavailableError(f"Schema setup timed out after {timeout}s") from e

    logger.debug(
        "Schema ready",
        context={"data_table": data_table, "lock_table": lock_table, "dialect": db.dialect.name},
    )
