"""Batch Update Dispatcher: sequential, size-bounded writes with backoff.

WHY
───
The record store caps every mutating call (50 records in the scripting
runtime, 10 over REST) and rate-limits per minute.  Every synchronizer ends
the same way: a list of write requests that must be chunked, sent one chunk
at a time, and retried when the store pushes back.  Rather than each caller
looping ``for i in range(0, n, 50)``, they hand the list to the dispatcher.

ARCHITECTURE
────────────
::

    BatchUpdateDispatcher
      ├── .update(table, [UpdateRequest])   ─ update_many per chunk
      ├── .create(table, [CreateRequest])   ─ create_many per chunk
      ├── .delete(table, [id])              ─ delete_many per chunk
      └── DispatchResult                    ─ per-batch BatchOutcome

    Per-batch state machine:

      IDLE ──► SENDING ──ok──────────────────────────► DONE
                  ▲  │
                  │  └─retryable & budget left─► BACKOFF_WAIT
                  └────────── sleep(delay) ◄──────────┘
                     │
                     └─not retryable / budget spent──► FAILED

      after a fatal failure (auth, config) remaining batches ► SKIPPED

GUARANTEES
──────────
- N requests with batch size B issue exactly ceil(N/B) chunks, each ≤ B.
- Chunks go out strictly in order, never concurrently.
- A failed chunk does not stop later chunks (except after a fatal error).
- No rollback: chunks that succeeded stay applied.

Example::

    dispatcher = BatchUpdateDispatcher(repo, retry=ConstantBackoff(max_retries=3))
    result = await dispatcher.update("Builds", updates)
    print(result.succeeded, result.failed)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TypeVar

from linkspine.core.errors import InvalidConfigError, is_fatal
from linkspine.core.logging import get_logger
from linkspine.core.models import CreateRequest, UpdateRequest
from linkspine.core.protocols import RecordRepository
from linkspine.execution.retry import ConstantBackoff, RetryStrategy, Sleep

logger = get_logger(__name__)

T = TypeVar("T")


class DispatchState(str, Enum):
    """Lifecycle of one batch."""

    IDLE = "idle"
    SENDING = "sending"
    BACKOFF_WAIT = "backoff_wait"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class BatchOutcome:
    """What happened to a single chunk."""

    index: int
    size: int
    state: DispatchState = DispatchState.IDLE
    attempts: int = 0
    error: str | None = None
    exception: Exception | None = field(default=None, repr=False)
    items: list[Any] = field(default_factory=list, repr=False)
    transitions: list[DispatchState] = field(default_factory=lambda: [DispatchState.IDLE])

    def transition(self, state: DispatchState) -> None:
        self.state = state
        self.transitions.append(state)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "size": self.size,
            "state": self.state.value,
            "attempts": self.attempts,
            "error": self.error,
        }


@dataclass
class DispatchResult:
    """Aggregate result of dispatching one request list."""

    operation: str
    table: str
    batches: list[BatchOutcome]
    started_at: datetime
    completed_at: datetime
    aborted: bool = False

    def _count(self, state: DispatchState) -> int:
        return sum(1 for b in self.batches if b.state == state)

    def _records(self, state: DispatchState) -> int:
        return sum(b.size for b in self.batches if b.state == state)

    @property
    def succeeded(self) -> int:
        """Number of batches written."""
        return self._count(DispatchState.DONE)

    @property
    def failed(self) -> int:
        return self._count(DispatchState.FAILED)

    @property
    def not_attempted(self) -> int:
        return self._count(DispatchState.SKIPPED)

    @property
    def written(self) -> int:
        """Number of records in successful batches."""
        return self._records(DispatchState.DONE)

    @property
    def written_items(self) -> list[Any]:
        """Requests from successful batches, in dispatch order."""
        return [item for b in self.batches if b.state == DispatchState.DONE for item in b.items]

    @property
    def failed_records(self) -> int:
        return self._records(DispatchState.FAILED)

    @property
    def not_attempted_records(self) -> int:
        return self._records(DispatchState.SKIPPED)

    @property
    def calls(self) -> int:
        """Repository calls made, retries included."""
        return sum(b.attempts for b in self.batches)

    @property
    def ok(self) -> bool:
        return all(b.state == DispatchState.DONE for b in self.batches)

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Serialise for logging / CLI output."""
        return {
            "operation": self.operation,
            "table": self.table,
            "batches": len(self.batches),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "not_attempted": self.not_attempted,
            "written": self.written,
            "aborted": self.aborted,
            "duration_seconds": self.duration_seconds,
            "items": [b.to_dict() for b in self.batches],
        }


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class BatchUpdateDispatcher:
    """Sequential batch writer with retry/backoff.

    Parameters
    ----------
    repository : RecordRepository
        Store receiving the writes.
    max_batch_size : int | None
        Chunk size; defaults to the repository's own limit and may not
        exceed it.
    retry : RetryStrategy | None
        Backoff policy for retryable failures (default: 3 retries, 30 s).
    sleep : callable
        Awaitable sleep, injectable for tests.
    halt_on_fatal : bool
        Stop issuing further batches after an auth/config failure.
    """

    def __init__(
        self,
        repository: RecordRepository,
        *,
        max_batch_size: int | None = None,
        retry: RetryStrategy | None = None,
        sleep: Sleep = asyncio.sleep,
        halt_on_fatal: bool = True,
    ) -> None:
        limit = repository.max_batch_size
        size = max_batch_size or limit
        if size < 1 or size > limit:
            raise InvalidConfigError(
                "batch_size",
                size,
                f"Batch size must be between 1 and the store limit {limit}, got {size}",
            )
        self._repository = repository
        self._batch_size = size
        self._retry = retry or ConstantBackoff()
        self._sleep = sleep
        self._halt_on_fatal = halt_on_fatal

    @property
    def batch_size(self) -> int:
        return self._batch_size

    # ── Operations ──────────────────────────────────────────────────

    async def update(self, table: str, requests: Sequence[UpdateRequest]) -> DispatchResult:
        """Apply partial updates in batches."""
        return await self._dispatch("update", table, requests, self._repository.update_many)

    async def create(self, table: str, requests: Sequence[CreateRequest]) -> DispatchResult:
        """Create records in batches."""
        return await self._dispatch("create", table, requests, self._repository.create_many)

    async def delete(self, table: str, ids: Sequence[str]) -> DispatchResult:
        """Delete records in batches."""
        return await self._dispatch("delete", table, ids, self._repository.delete_many)

    # ── Internals ───────────────────────────────────────────────────

    async def _dispatch(
        self,
        operation: str,
        table: str,
        items: Sequence[Any],
        call: Callable[[str, list[Any]], Awaitable[Any]],
    ) -> DispatchResult:
        chunks = chunked(items, self._batch_size)
        started_at = datetime.now(UTC)
        outcomes: list[BatchOutcome] = []
        aborted = False

        if chunks:
            logger.info(
                "dispatch.start",
                operation=operation,
                table=table,
                records=len(items),
                batches=len(chunks),
                batch_size=self._batch_size,
            )

        for index, chunk in enumerate(chunks):
            outcome = BatchOutcome(index=index, size=len(chunk), items=chunk)
            outcomes.append(outcome)

            if aborted:
                outcome.transition(DispatchState.SKIPPED)
                continue

            await self._send(operation, table, chunk, call, outcome, total=len(chunks))

            if (
                outcome.state == DispatchState.FAILED
                and self._halt_on_fatal
                and outcome.exception is not None
                and is_fatal(outcome.exception)
            ):
                aborted = True
                logger.error(
                    "dispatch.aborted",
                    operation=operation,
                    table=table,
                    batch=index + 1,
                    remaining=len(chunks) - index - 1,
                )

        result = DispatchResult(
            operation=operation,
            table=table,
            batches=outcomes,
            started_at=started_at,
            completed_at=datetime.now(UTC),
            aborted=aborted,
        )
        if chunks:
            logger.info(
                "dispatch.complete",
                operation=operation,
                table=table,
                succeeded=result.succeeded,
                failed=result.failed,
                not_attempted=result.not_attempted,
                written=result.written,
            )
        return result

    async def _send(
        self,
        operation: str,
        table: str,
        chunk: list[Any],
        call: Callable[[str, list[Any]], Awaitable[Any]],
        outcome: BatchOutcome,
        *,
        total: int,
    ) -> None:
        retries = 0
        while True:
            outcome.transition(DispatchState.SENDING)
            outcome.attempts += 1
            try:
                await call(table, chunk)
            except Exception as exc:
                if self._retry.should_retry(retries, exc):
                    delay = self._retry.delay_for(retries, exc)
                    outcome.transition(DispatchState.BACKOFF_WAIT)
                    logger.warning(
                        "dispatch.backoff",
                        operation=operation,
                        table=table,
                        batch=outcome.index + 1,
                        attempt=outcome.attempts,
                        delay=delay,
                        error=str(exc),
                    )
                    await self._sleep(delay)
                    retries += 1
                    continue

                outcome.transition(DispatchState.FAILED)
                outcome.error = f"{type(exc).__name__}: {exc}"
                outcome.exception = exc
                logger.error(
                    "dispatch.batch_failed",
                    operation=operation,
                    table=table,
                    batch=outcome.index + 1,
                    of=total,
                    attempts=outcome.attempts,
                    error=outcome.error,
                )
                return

            outcome.transition(DispatchState.DONE)
            logger.debug(
                "dispatch.batch_done",
                operation=operation,
                table=table,
                batch=outcome.index + 1,
                of=total,
                size=outcome.size,
            )
            return
