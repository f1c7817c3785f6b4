"""Run reports: what was evaluated, updated and skipped, and why.

A run never succeeds silently.  Each synchronizer fills a :class:`RunReport`
with per-category counts plus one :class:`SkipReason` for every record it
left alone, and folds in write failures from the dispatcher.

Example::

    report = RunReport("builds-deploys")
    report.evaluated("records")
    report.skip("records", "recA", "missing_key")
    report.summary()
    # {'records': {'evaluated': 1, 'updated': 0, 'skipped': 1}}
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from linkspine.execution.dispatcher import DispatchResult


@dataclass
class CategoryCounts:
    evaluated: int = 0
    updated: int = 0
    skipped: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"evaluated": self.evaluated, "updated": self.updated, "skipped": self.skipped}


@dataclass(frozen=True)
class SkipReason:
    category: str
    record_id: str | None
    reason: str
    detail: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "record_id": self.record_id,
            "reason": self.reason,
            "detail": self.detail,
        }


@dataclass
class RunReport:
    """Aggregate outcome of one reconciliation or aggregation run."""

    name: str
    categories: dict[str, CategoryCounts] = field(default_factory=dict)
    skips: list[SkipReason] = field(default_factory=list)
    failed_writes: int = 0
    write_errors: list[str] = field(default_factory=list)
    not_attempted_writes: int = 0

    def _counts(self, category: str) -> CategoryCounts:
        return self.categories.setdefault(category, CategoryCounts())

    def evaluated(self, category: str, count: int = 1) -> None:
        self._counts(category).evaluated += count

    def updated(self, category: str, count: int = 1) -> None:
        self._counts(category).updated += count

    def skip(
        self,
        category: str,
        record_id: str | None,
        reason: str,
        detail: str | None = None,
    ) -> None:
        self._counts(category).skipped += 1
        self.skips.append(SkipReason(category, record_id, reason, detail))

    def absorb(self, result: DispatchResult) -> RunReport:
        """Record the write failures of a dispatch."""
        self.failed_writes += result.failed_records
        self.not_attempted_writes += result.not_attempted_records
        self.write_errors.extend(
            outcome.error for outcome in result.batches if outcome.error
        )
        return self

    @property
    def total_updated(self) -> int:
        return sum(c.updated for c in self.categories.values())

    @property
    def total_skipped(self) -> int:
        return sum(c.skipped for c in self.categories.values())

    @property
    def ok(self) -> bool:
        """True when every planned write landed."""
        return self.failed_writes == 0 and self.not_attempted_writes == 0

    def skip_reason_counts(self) -> dict[str, int]:
        return dict(Counter(s.reason for s in self.skips))

    def summary(self) -> dict[str, dict[str, int]]:
        return {name: counts.to_dict() for name, counts in self.categories.items()}

    def to_dict(self) -> dict[str, Any]:
        """Serialise for logging / CLI output."""
        return {
            "name": self.name,
            "categories": self.summary(),
            "skip_reasons": self.skip_reason_counts(),
            "skips": [s.to_dict() for s in self.skips],
            "failed_writes": self.failed_writes,
            "not_attempted_writes": self.not_attempted_writes,
            "write_errors": list(self.write_errors),
        }
