"""
Protocol definitions for the record store.

The reconciliation core never talks to a concrete store.  It receives a
:class:`RecordRepository` explicitly, so production runs use the REST
adapter and tests use the in-memory fake without any module-level handle.

Architecture:
    ::

        RecordRepository Protocol (async):
        ┌──────────────────────────────────────────────────────────────┐
        │ select(table, fields=, where=, view=) → list[Record]         │
        │ update_many(table, [UpdateRequest])    → list[Record]        │
        │ create_many(table, [CreateRequest])    → list[Record]        │
        │ delete_many(table, [id])               → list[str]           │
        │ field_choices(table, field)            → frozenset[str]      │
        │ max_batch_size                         → int                 │
        └──────────────────────────────────────────────────────────────┘

        Implementations:
        ┌──────────────────────────────────────────────────────────────┐
        │ InMemoryRepository   → dict-backed fake, failure injection   │
        │ AirtableRepository   → httpx.AsyncClient over REST           │
        └──────────────────────────────────────────────────────────────┘

    Mutating calls accept at most ``max_batch_size`` requests; splitting is
    the dispatcher's job.  Rate limiting surfaces as ``RateLimitError`` and
    timeouts as ``TimeoutError`` (both retryable).

Tags:
    protocol, repository, async, linkspine, contracts
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Protocol, runtime_checkable

from linkspine.core.models import CreateRequest, Record, UpdateRequest

RecordPredicate = Callable[[Record], bool]


@runtime_checkable
class RecordRepository(Protocol):
    """Async record store consumed by the reconciliation core."""

    max_batch_size: int

    async def select(
        self,
        table: str,
        *,
        fields: Sequence[str] | None = None,
        where: RecordPredicate | None = None,
        view: str | None = None,
    ) -> list[Record]:
        """Snapshot read of a table (optionally projected and filtered)."""
        ...

    async def update_many(
        self, table: str, requests: Sequence[UpdateRequest]
    ) -> list[Record]:
        """Apply at most ``max_batch_size`` partial updates."""
        ...

    async def create_many(
        self, table: str, requests: Sequence[CreateRequest]
    ) -> list[Record]:
        """Create at most ``max_batch_size`` records."""
        ...

    async def delete_many(self, table: str, ids: Sequence[str]) -> list[str]:
        """Delete at most ``max_batch_size`` records; returns deleted ids."""
        ...

    async def field_choices(self, table: str, field: str) -> frozenset[str]:
        """Choice names of a single-select field."""
        ...
