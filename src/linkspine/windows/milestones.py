"""
Milestone windows: turn a version's sparse milestone dates into contiguous
periods used to scope metric aggregation.

Architecture:
    ::

        Builds rows (version, milestone type, due date)
              │  collect_milestones()      hotfix versions dropped,
              ▼                            unknown types / undated rows skipped
        {"36.10": {HARD_LOCK: d1, PENCILS_DOWN: d2, LIVE: d3}, ...}
              │  MilestoneWindowBuilder.build_all()
              ▼
        {"36.10": [Period("Hard Lock -> Pencils Down", d1, d2),
                   Period("Pencils Down -> Live",      d2, d3),
                   Period("Live+",                     d3, next_live)]}

Timeline:
    ::

        Branch    Hard      Pencils    Cert      Live          next
        Create    Lock      Down       Sub                     version Live
          │─────────│─────────│─────────│──────────│──────────────│
          Before     HL -> PD   PD -> CS  CS -> Live    Live+
          Hard Lock

Rules:
    - Events are ordered by date, not by vocabulary; out-of-sequence data
      shows up as an unusual pair name rather than an error.
    - "Branch Create" only contributes the leading "Before Hard Lock" period
      and only when a Hard Lock date exists.
    - "Live+" needs both this version's Live date and the Live date of the
      next non-hotfix version in ``major.minor`` order.
    - A window whose end precedes its start is dropped with a warning.
    - Duplicate (version, type) rows: the last row seen wins (warned).

Tags:
    temporal, milestones, periods, windows, linkspine
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date

from linkspine.core.errors import MalformedKeyError
from linkspine.core.logging import get_logger
from linkspine.core.models import MilestoneEvent, MilestoneType, Period, Record, normalize_key, parse_date
from linkspine.core.protocols import RecordRepository
from linkspine.core.report import RunReport
from linkspine.repositories.snapshots import read_snapshot
from linkspine.windows.versions import is_hotfix, sort_versions, successor

logger = get_logger(__name__)

MilestoneSet = dict[MilestoneType, date]

PERIOD_SEQUENCE = (
    MilestoneType.HARD_LOCK,
    MilestoneType.PENCILS_DOWN,
    MilestoneType.CERT_SUB,
    MilestoneType.LIVE,
)
BEFORE_HARD_LOCK = "Before Hard Lock"
LIVE_PLUS = "Live+"


def collect_milestones(
    records: Sequence[Record],
    version_field: str,
    type_field: str,
    date_field: str,
    *,
    hotfix_marker: str = "HF",
    report: RunReport | None = None,
) -> tuple[dict[str, MilestoneSet], RunReport]:
    """Index milestone rows as ``{version: {MilestoneType: date}}``.

    Every non-hotfix version seen gets an entry, possibly empty, so that
    successor lookups see the full version list.
    """
    report = report or RunReport("milestones")
    milestones: dict[str, MilestoneSet] = {}

    for record in records:
        report.evaluated("milestones")
        try:
            version = normalize_key(record.get(version_field), version_field)
        except MalformedKeyError as e:
            report.skip("milestones", record.id, "malformed_key", repr(e.value))
            continue
        if version is None:
            report.skip("milestones", record.id, "missing_key")
            continue
        if is_hotfix(version, hotfix_marker):
            report.skip("milestones", record.id, "hotfix_version", version)
            continue
        version_set = milestones.setdefault(version, {})

        kind = MilestoneType.parse(record.get(type_field))
        if kind is None:
            report.skip("milestones", record.id, "unknown_milestone", record.get_string(type_field))
            continue

        try:
            when = parse_date(record.get(date_field))
        except ValueError:
            report.skip("milestones", record.id, "invalid_date", record.get_string(date_field))
            continue
        if when is None:
            report.skip("milestones", record.id, "missing_date")
            continue

        event = MilestoneEvent(version, kind, when)
        if event.type in version_set and version_set[event.type] != event.date:
            logger.warning(
                "windows.duplicate_milestone",
                version=event.version,
                milestone=event.type.value,
                kept=event.date.isoformat(),
                replaced=version_set[event.type].isoformat(),
            )
        version_set[event.type] = event.date

    return milestones, report


def _append(periods: list[Period], name: str, start: date, end: date, version: str | None) -> None:
    if start > end:
        logger.warning(
            "windows.period_skipped",
            version=version,
            period=name,
            start=start.isoformat(),
            end=end.isoformat(),
        )
        return
    periods.append(Period(name, start, end))


def build_periods(
    milestones: Mapping[MilestoneType, date],
    next_live: date | None = None,
    *,
    version: str | None = None,
) -> list[Period]:
    """Periods for one version's milestones; empty when none qualify."""
    events = sorted(
        ((kind, milestones[kind]) for kind in PERIOD_SEQUENCE if kind in milestones),
        key=lambda event: event[1],
    )

    periods: list[Period] = []
    branch = milestones.get(MilestoneType.BRANCH_CREATE)
    hard_lock = milestones.get(MilestoneType.HARD_LOCK)
    if branch is not None and hard_lock is not None:
        _append(periods, BEFORE_HARD_LOCK, branch, hard_lock, version)

    for (prev, start), (nxt, end) in zip(events, events[1:]):
        _append(periods, f"{prev.value} -> {nxt.value}", start, end, version)

    live = milestones.get(MilestoneType.LIVE)
    if live is not None and next_live is not None:
        _append(periods, LIVE_PLUS, live, next_live, version)

    return periods


class MilestoneWindowBuilder:
    """Builds period lists for every non-hotfix version."""

    def __init__(self, hotfix_marker: str = "HF") -> None:
        self.hotfix_marker = hotfix_marker

    def versions(self, milestones: Mapping[str, MilestoneSet]) -> list[str]:
        """Non-hotfix versions in ``major.minor`` order."""
        return sort_versions(v for v in milestones if not is_hotfix(v, self.hotfix_marker))

    def next_live(self, version: str, milestones: Mapping[str, MilestoneSet]) -> date | None:
        """Live date of the version immediately after ``version``."""
        nxt = successor(version, self.versions(milestones))
        if nxt is None:
            return None
        return milestones[nxt].get(MilestoneType.LIVE)

    def windows_for(self, version: str, milestones: Mapping[str, MilestoneSet]) -> list[Period]:
        if is_hotfix(version, self.hotfix_marker):
            return []
        version_set = milestones.get(version)
        if not version_set:
            return []
        return build_periods(version_set, self.next_live(version, milestones), version=version)

    def build_all(self, milestones: Mapping[str, MilestoneSet]) -> dict[str, list[Period]]:
        windows = {version: self.windows_for(version, milestones) for version in self.versions(milestones)}
        logger.info(
            "windows.built",
            versions=len(windows),
            periods=sum(len(p) for p in windows.values()),
        )
        return windows


MILESTONE_TABLE = "Builds"
MILESTONE_VIEW = "Build Milestones"
MILESTONE_FIELDS = ("Build Version (Milestones)", "Milestone Type", "Due Date")


async def read_milestones(
    repository: RecordRepository,
    *,
    table: str = MILESTONE_TABLE,
    view: str | None = MILESTONE_VIEW,
    fields: tuple[str, str, str] = MILESTONE_FIELDS,
    hotfix_marker: str = "HF",
) -> tuple[dict[str, MilestoneSet], RunReport]:
    """Read milestone rows from the store and index them by version."""
    version_field, type_field, date_field = fields
    records = await read_snapshot(repository, table, fields=list(fields), view=view)
    return collect_milestones(
        records, version_field, type_field, date_field, hotfix_marker=hotfix_marker
    )
