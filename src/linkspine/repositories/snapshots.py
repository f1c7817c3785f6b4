"""Whole-table reads shared by every run.

A run works on snapshots: each table is read once, up front.  A store
error during that read means the run cannot produce meaningful output, so
it is turned into :class:`RunAbortedError` before any write is issued.
"""

from __future__ import annotations

from typing import Any

from linkspine.core.errors import LinkSpineError, RunAbortedError
from linkspine.core.logging import get_logger
from linkspine.core.models import Record
from linkspine.core.protocols import RecordRepository

logger = get_logger(__name__)


async def read_snapshot(repository: RecordRepository, table: str, **kwargs: Any) -> list[Record]:
    """``repository.select(table, **kwargs)``, aborting the run on failure."""
    try:
        return await repository.select(table, **kwargs)
    except LinkSpineError as e:
        logger.error("repository.read_failed", table=table, error=str(e))
        raise RunAbortedError(f"Cannot read table {table!r}: {e}", cause=e).with_context(
            table=table, operation="select"
        ) from e
