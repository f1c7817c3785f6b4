"""In-memory record store.

Dict-backed implementation of :class:`~linkspine.core.protocols.RecordRepository`
for tests and dry runs.  It enforces the batch limit like the real store,
records every call, and can be told to fail the next N calls so retry and
partial-failure paths are testable without a network.

Example::

    repo = InMemoryRepository(max_batch_size=50)
    repo.add("Builds", {"Build Version (Unified)": "36.10"}, id="recA")
    repo.fail_next(RateLimitError(retry_after=1), operation="update_many")
    records = await repo.select("Builds")
"""

from __future__ import annotations

import itertools
from collections.abc import Iterable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from linkspine.core.errors import SourceNotFoundError, ValidationError
from linkspine.core.models import CreateRequest, Record, UpdateRequest
from linkspine.core.protocols import RecordPredicate


class InMemoryRepository:
    """Dict-backed record store with failure injection."""

    def __init__(
        self,
        tables: Mapping[str, Iterable[Record]] | None = None,
        *,
        max_batch_size: int = 50,
    ) -> None:
        self.max_batch_size = max_batch_size
        self._tables: dict[str, dict[str, Record]] = {}
        self._views: dict[tuple[str, str], RecordPredicate] = {}
        self._choices: dict[tuple[str, str], frozenset[str]] = {}
        self._failures: list[tuple[str | None, Exception]] = []
        self._ids = itertools.count(1)
        self.calls: list[tuple[str, str, int]] = []

        for table, records in (tables or {}).items():
            self.create_table(table)
            for record in records:
                self._tables[table][record.id] = record

    # ── Fixture helpers ─────────────────────────────────────────────

    def create_table(self, table: str) -> None:
        self._tables.setdefault(table, {})

    def add(
        self,
        table: str,
        fields: Mapping[str, Any] | None = None,
        *,
        id: str | None = None,
        created_time: datetime | None = None,
    ) -> Record:
        """Insert a record directly, bypassing batch limits and call log."""
        self.create_table(table)
        record = Record(
            id=id or self._next_id(),
            fields=dict(fields or {}),
            created_time=created_time or datetime.now(UTC),
        )
        self._tables[table][record.id] = record
        return record

    def records(self, table: str) -> list[Record]:
        return list(self._table(table).values())

    def get(self, table: str, record_id: str) -> Record:
        return self._table(table)[record_id]

    def register_view(self, table: str, view: str, predicate: RecordPredicate) -> None:
        self._views[(table, view)] = predicate

    def set_choices(self, table: str, field: str, choices: Iterable[str]) -> None:
        self._choices[(table, field)] = frozenset(choices)

    def fail_next(
        self, error: Exception, *, times: int = 1, operation: str | None = None
    ) -> None:
        """Raise ``error`` on the next ``times`` matching calls."""
        for _ in range(times):
            self._failures.append((operation, error))

    def calls_for(self, operation: str) -> list[tuple[str, str, int]]:
        return [call for call in self.calls if call[0] == operation]

    # ── RecordRepository ────────────────────────────────────────────

    async def select(
        self,
        table: str,
        *,
        fields: Sequence[str] | None = None,
        where: RecordPredicate | None = None,
        view: str | None = None,
    ) -> list[Record]:
        self._record_call("select", table, 0)
        records = self.records(table)
        if view is not None:
            predicate = self._views.get((table, view))
            if predicate is None:
                raise SourceNotFoundError(f"View {view!r} not found").with_context(table=table)
            records = [r for r in records if predicate(r)]
        if fields is not None:
            wanted = set(fields)
            records = [
                Record(r.id, {k: v for k, v in r.fields.items() if k in wanted}, r.created_time)
                for r in records
            ]
        if where is not None:
            records = [r for r in records if where(r)]
        return records

    async def update_many(
        self, table: str, requests: Sequence[UpdateRequest]
    ) -> list[Record]:
        self._record_call("update_many", table, len(requests))
        rows = self._table(table)
        missing = [req.id for req in requests if req.id not in rows]
        if missing:
            raise SourceNotFoundError(f"Records not found: {', '.join(missing)}").with_context(
                table=table, operation="update_many"
            )
        updated = []
        for req in requests:
            current = rows[req.id]
            record = Record(current.id, {**current.fields, **req.fields}, current.created_time)
            rows[req.id] = record
            updated.append(record)
        return updated

    async def create_many(
        self, table: str, requests: Sequence[CreateRequest]
    ) -> list[Record]:
        self._record_call("create_many", table, len(requests))
        self.create_table(table)
        return [self.add(table, req.fields) for req in requests]

    async def delete_many(self, table: str, ids: Sequence[str]) -> list[str]:
        self._record_call("delete_many", table, len(ids))
        rows = self._table(table)
        missing = [record_id for record_id in ids if record_id not in rows]
        if missing:
            raise SourceNotFoundError(f"Records not found: {', '.join(missing)}").with_context(
                table=table, operation="delete_many"
            )
        for record_id in ids:
            del rows[record_id]
        return list(ids)

    async def field_choices(self, table: str, field: str) -> frozenset[str]:
        self._table(table)
        return self._choices.get((table, field), frozenset())

    # ── Internals ───────────────────────────────────────────────────

    def _next_id(self) -> str:
        return f"rec{next(self._ids):05d}"

    def _table(self, table: str) -> dict[str, Record]:
        try:
            return self._tables[table]
        except KeyError:
            raise SourceNotFoundError(f"Table {table!r} not found").with_context(
                table=table
            ) from None

    def _record_call(self, operation: str, table: str, size: int) -> None:
        self.calls.append((operation, table, size))
        if operation != "select" and size > self.max_batch_size:
            raise ValidationError(
                f"{operation} accepts at most {self.max_batch_size} records, got {size}",
                constraint="max_batch_size",
            ).with_context(table=table, operation=operation)
        for index, (wanted, error) in enumerate(self._failures):
            if wanted is None or wanted == operation:
                del self._failures[index]
                raise error
