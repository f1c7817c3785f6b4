"""
Metric aggregation: fold a per-event metric feed into per-version,
per-category sums and write them onto the version's record.

Architecture:
    ::

        "Grafana Data" rows                    Builds rows
        (Stream, Capture Point, Value)         (Build Version (Unified), Commits: ...)
              │ samples_from_records()               │
              ▼                                      │
        MetricSample("Release-36.10",                │
                     "Hard Lock -> Pencils Down", 12)│
              │ aggregate()                          │
              ▼                                      ▼
        {"36.10": {"Hard Lock -> Pencils Down": 200, ...}}
              │ plan_updates()  ◄────────────────────┘
              ▼
        UpdateRequest(recB1, {"Commits: Hard Lock → Pencils Down": 200,
                              "Commits: Pre-Hard Lock": 0, ...})

Rules:
    - The version key is the trailing ``major.minor`` of the source key
      ("//Fortnite/Release-36.10" -> "36.10").  Keys without one are skipped
      with a warning.
    - Categories without a destination field are aggregated but never
      written (warned once per category).
    - Every mapped field is written for a version that has samples; a
      category with none is written as an explicit 0.
    - Versions without samples are left untouched, and a destination whose
      fields already hold the totals produces no write.

Tags:
    metrics, aggregation, commits, windows, linkspine
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from linkspine.core.errors import MalformedKeyError
from linkspine.core.logging import get_logger
from linkspine.core.models import MetricSample, Record, UpdateRequest, normalize_key
from linkspine.core.protocols import RecordRepository
from linkspine.core.report import RunReport
from linkspine.core.settings import DEFAULT_METRIC_FIELD_MAP
from linkspine.execution.dispatcher import BatchUpdateDispatcher, DispatchResult
from linkspine.repositories.snapshots import read_snapshot

logger = get_logger(__name__)

VERSION_SUFFIX = re.compile(r"(\d+\.\d+)$")

Totals = dict[str, dict[str, float]]


def extract_version_key(source_key: str, pattern: re.Pattern[str] = VERSION_SUFFIX) -> str | None:
    """``"//Fortnite/Release-36.10"`` -> ``"36.10"``; ``None`` when absent."""
    match = pattern.search(source_key.strip())
    return match.group(1) if match else None


@dataclass
class MetricSyncResult:
    """Outcome of one aggregation run."""

    report: RunReport
    totals: Totals = field(default_factory=dict)
    dispatches: list[DispatchResult] = field(default_factory=list)
    planned: int = 0
    dry_run: bool = False

    @property
    def written(self) -> int:
        return sum(d.written for d in self.dispatches)

    @property
    def ok(self) -> bool:
        return self.report.ok

    def to_dict(self) -> dict[str, Any]:
        return {
            "report": self.report.to_dict(),
            "versions": len(self.totals),
            "planned": self.planned,
            "written": self.written,
            "dry_run": self.dry_run,
            "dispatches": [d.to_dict() for d in self.dispatches],
        }


class MetricAggregator:
    """Sums metric samples per (version, category) and maps them onto fields."""

    def __init__(
        self,
        field_map: Mapping[str, str] | None = None,
        *,
        version_pattern: re.Pattern[str] = VERSION_SUFFIX,
    ) -> None:
        self.field_map = dict(field_map if field_map is not None else DEFAULT_METRIC_FIELD_MAP)
        self.version_pattern = version_pattern

    def samples_from_records(
        self,
        records: Sequence[Record],
        source_field: str,
        category_field: str,
        value_field: str,
        *,
        report: RunReport | None = None,
    ) -> list[MetricSample]:
        """Read samples from feed rows; rows without a numeric value are skipped."""
        report = report or RunReport("metrics")
        samples = []
        for record in records:
            report.evaluated("rows")
            source = record.get_string(source_field).strip()
            category = record.get_string(category_field).strip()
            value = record.get(value_field)
            if not source:
                report.skip("rows", record.id, "missing_source")
                continue
            if not category:
                report.skip("rows", record.id, "missing_category")
                continue
            if isinstance(value, bool) or not isinstance(value, int | float):
                logger.warning("metrics.invalid_value", record_id=record.id, value=repr(value))
                report.skip("rows", record.id, "non_numeric_value", repr(value))
                continue
            samples.append(MetricSample(source, category, value, record.created_time))
        return samples

    def aggregate(
        self,
        samples: Sequence[MetricSample],
        *,
        report: RunReport | None = None,
    ) -> Totals:
        """``{version: {category: sum}}`` over every sample with a version key."""
        report = report or RunReport("metrics")
        totals: Totals = {}
        unmapped: set[str] = set()
        for sample in samples:
            report.evaluated("samples")
            version = extract_version_key(sample.source_key, self.version_pattern)
            if version is None:
                logger.warning("metrics.unparsed_source_key", source_key=sample.source_key)
                report.skip("samples", None, "unparsed_key", sample.source_key)
                continue
            if sample.category not in self.field_map and sample.category not in unmapped:
                unmapped.add(sample.category)
                logger.warning("metrics.unmapped_category", category=sample.category)
            per_version = totals.setdefault(version, {})
            per_version[sample.category] = per_version.get(sample.category, 0) + sample.value

        logger.info("metrics.aggregated", samples=len(samples), versions=len(totals))
        return totals

    def plan_updates(
        self,
        destinations: Sequence[Record],
        key_field: str,
        totals: Mapping[str, Mapping[str, float]],
        *,
        report: RunReport | None = None,
    ) -> tuple[list[UpdateRequest], RunReport]:
        """One update per destination whose mapped fields differ from the totals."""
        report = report or RunReport("metrics")
        updates = []
        for record in destinations:
            report.evaluated("destinations")
            try:
                version = normalize_key(record.get(key_field), key_field)
            except MalformedKeyError as e:
                report.skip("destinations", record.id, "malformed_key", repr(e.value))
                continue
            if version is None:
                report.skip("destinations", record.id, "missing_key")
                continue
            observed = totals.get(version)
            if observed is None:
                continue

            wanted = {
                dest_field: observed.get(category, 0)
                for category, dest_field in self.field_map.items()
            }
            if all(record.get(name) == value for name, value in wanted.items()):
                continue
            updates.append(UpdateRequest(record.id, wanted))
            report.updated("destinations")

        logger.info("metrics.planned", destinations=len(destinations), updates=len(updates))
        return updates, report

    async def run(
        self,
        repository: RecordRepository,
        *,
        source_table: str = "Grafana Data",
        source_field: str = "Stream",
        category_field: str = "Capture Point",
        value_field: str = "Value",
        destination_table: str = "Builds",
        key_field: str = "Build Version (Unified)",
        dispatcher: BatchUpdateDispatcher | None = None,
        dry_run: bool = False,
    ) -> MetricSyncResult:
        """Read the feed table, aggregate, and write totals onto destinations."""
        report = RunReport("metrics")
        feed = await read_snapshot(
            repository, source_table, fields=[source_field, category_field, value_field]
        )
        samples = self.samples_from_records(
            feed, source_field, category_field, value_field, report=report
        )
        totals = self.aggregate(samples, report=report)

        destinations = await read_snapshot(
            repository, destination_table, fields=[key_field, *self.field_map.values()]
        )
        updates, report = self.plan_updates(destinations, key_field, totals, report=report)

        result = MetricSyncResult(report, totals=totals, planned=len(updates), dry_run=dry_run)
        if updates and not dry_run:
            dispatch = await (dispatcher or BatchUpdateDispatcher(repository)).update(
                destination_table, updates
            )
            report.absorb(dispatch)
            result.dispatches.append(dispatch)

        logger.info(
            "metrics.complete",
            versions=len(totals),
            planned=result.planned,
            written=result.written,
            skipped=report.total_skipped,
            dry_run=dry_run,
        )
        return result
