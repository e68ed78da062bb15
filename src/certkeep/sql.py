"""Shared helpers for issuing statements against a Database."""

import asyncio
from typing import Any

from certkeep.exceptions import BackendUnavailableError
from certkeep.protocols.database import Database, Row


async def execute(
    db: Database,
    query: str,
    params: dict[str, Any] | None = None,
    timeout: float | None = None,
) -> list[Row]:
    """Execute one statement, bounded by timeout seconds.

    Raises:
        BackendUnavailableError: The backend failed or the timeout expired
    """
    try:
        return await asyncio.wait_for(db.execute(query, params), timeout)
    except asyncio.TimeoutError as e:
        raise BackendUnavailableError(f"Query timed out after {timeout}s") from e
