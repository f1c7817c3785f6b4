"""
Link synchronization: converge link fields to a relationship derived from a
shared natural key.

Four relationships are supported, each a pure planner over record snapshots
plus an async runner that reads, plans and dispatches:

Architecture:
    ::

        sync_peer_links            every record ↔ every other record with its key
                                   (symmetric, replace, idempotent)
        sync_parent_child_links    parent.children ⊇ children with parent's key
                                   (additive, never removes)
        sync_forward_lookup_links  source.link = targets with source's key
                                   (one-shot: linked sources are never revisited)
        sync_back_references       target.back ⊇ sources linking to target
                                   (additive two-way completion)
        sync_next_version_links    record.next = earliest later-live candidate

        planner(records...) ──► LinkPlan(updates, report)
                                     │
        LinkSynchronizer.run_*  ─────┴──► BatchUpdateDispatcher ──► repository

Guarantees:
    - Link sets are compared as unordered id sets; reordering never writes.
    - Keys are trimmed and case-sensitive; blank keys never group or match.
    - A missing or malformed key skips that record (logged, reported) and
      never aborts the run.
    - Planners never mutate the snapshots they receive.

Policy notes:
    Forward lookup is one-shot: a source that already holds any link is
    skipped even if its key has since changed.  Callers that need
    re-linking must clear the link field first.

Tags:
    reconciliation, links, idempotent-diff, linkspine
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Any

from linkspine.core.errors import MalformedKeyError
from linkspine.core.logging import get_logger, log_context
from linkspine.core.models import (
    Record,
    UpdateRequest,
    link_value,
    normalize_key,
    ordered_link_ids,
    parse_date,
)
from linkspine.core.protocols import RecordPredicate, RecordRepository
from linkspine.core.report import RunReport
from linkspine.execution.dispatcher import BatchUpdateDispatcher, DispatchResult
from linkspine.reconcile.filters import is_not_empty
from linkspine.repositories.snapshots import read_snapshot
from linkspine.windows.versions import is_clean_version

if TYPE_CHECKING:
    from linkspine.reconcile.presets import LinkPreset

logger = get_logger(__name__)


@dataclass
class LinkPlan:
    """Writes needed to converge one table, and how each record was judged."""

    updates: list[UpdateRequest]
    report: RunReport

    def __len__(self) -> int:
        return len(self.updates)


def _key_of(
    record: Record,
    key_field: str,
    report: RunReport,
    category: str,
) -> str | None:
    """Normalized key, or ``None`` after recording why the record is skipped."""
    try:
        key = normalize_key(record.get(key_field), key_field)
    except MalformedKeyError as e:
        logger.warning(
            "link.malformed_key",
            record_id=record.id,
            field=key_field,
            value=repr(e.value),
        )
        report.skip(category, record.id, "malformed_key", repr(e.value))
        return None
    if key is None:
        report.skip(category, record.id, "missing_key")
    return key


def group_by_key(
    records: Iterable[Record],
    key_field: str,
    report: RunReport,
    category: str,
) -> dict[str, list[Record]]:
    """Group records by normalized key, preserving input order."""
    groups: dict[str, list[Record]] = {}
    for record in records:
        report.evaluated(category)
        key = _key_of(record, key_field, report, category)
        if key is not None:
            groups.setdefault(key, []).append(record)
    return groups


# ── Planners ─────────────────────────────────────────────────────────────


def sync_peer_links(
    records: Sequence[Record],
    key_field: str,
    link_field: str,
    *,
    report: RunReport | None = None,
) -> LinkPlan:
    """Link every record to every other record sharing its key.

    The target set for a record is its group minus itself, so a singleton
    group converges to an empty link set.  Records whose stored set already
    equals the target produce no update.
    """
    report = report or RunReport("peer_links")
    groups = group_by_key(records, key_field, report, "records")

    updates = []
    for group in groups.values():
        for record in group:
            peers = [peer.id for peer in group if peer.id != record.id]
            if record.link_ids(link_field) == frozenset(peers):
                continue
            updates.append(UpdateRequest(record.id, {link_field: link_value(peers)}))
            report.updated("records")

    logger.info(
        "link.peer.planned",
        groups=len(groups),
        records=len(records),
        updates=len(updates),
    )
    return LinkPlan(updates, report)


def _additive_updates(
    record: Record,
    link_field: str,
    wanted: Sequence[str],
) -> UpdateRequest | None:
    existing = ordered_link_ids(record.get(link_field))
    present = set(existing)
    missing = [record_id for record_id in wanted if record_id not in present]
    if not missing:
        return None
    return UpdateRequest(record.id, {link_field: link_value(existing + missing)})


def sync_parent_child_links(
    child_records: Sequence[Record],
    parent_records: Sequence[Record],
    key_field: str,
    child_link_field: str,
    *,
    child_marker_field: str | None = None,
    report: RunReport | None = None,
) -> LinkPlan:
    """Add children to the link field of the parent sharing their key.

    A record whose ``child_marker_field`` is non-empty is itself a child and
    never acts as a parent, which lets one table supply both collections.
    Existing links are kept: the written value is the stored list followed by
    the missing child ids, and nothing is written when none is missing.
    """
    report = report or RunReport("parent_child_links")
    children = group_by_key(child_records, key_field, report, "children")

    updates = []
    for parent in parent_records:
        report.evaluated("parents")
        if child_marker_field and not parent.is_empty(child_marker_field):
            report.skip("parents", parent.id, "child_record")
            continue
        key = _key_of(parent, key_field, report, "parents")
        if key is None:
            continue
        wanted = [child.id for child in children.get(key, ()) if child.id != parent.id]
        if not wanted:
            continue
        update = _additive_updates(parent, child_link_field, wanted)
        if update is not None:
            updates.append(update)
            report.updated("parents")

    logger.info(
        "link.parent_child.planned",
        child_groups=len(children),
        parents=len(parent_records),
        updates=len(updates),
    )
    return LinkPlan(updates, report)


def sync_forward_lookup_links(
    source_records: Sequence[Record],
    target_records: Sequence[Record],
    key_field: str,
    link_field: str,
    *,
    target_key_field: str | None = None,
    target_filter: RecordPredicate | None = None,
    at_most_one: bool = False,
    report: RunReport | None = None,
) -> LinkPlan:
    """Link unlinked sources to the targets that share their key.

    Sources that already hold any link are skipped without re-evaluation.
    All matching targets are linked unless ``at_most_one`` is set, in which
    case the first match in target order wins.
    """
    report = report or RunReport("forward_lookup_links")
    eligible = [t for t in target_records if target_filter is None or target_filter(t)]
    targets = group_by_key(eligible, target_key_field or key_field, report, "targets")

    updates = []
    for source in source_records:
        report.evaluated("sources")
        key = _key_of(source, key_field, report, "sources")
        if key is None:
            continue
        if not source.is_empty(link_field):
            report.skip("sources", source.id, "already_linked")
            continue
        matches = [t.id for t in targets.get(key, ())]
        if not matches:
            report.skip("sources", source.id, "no_match", key)
            continue
        if at_most_one:
            matches = matches[:1]
        updates.append(UpdateRequest(source.id, {link_field: link_value(matches)}))
        report.updated("sources")

    logger.info(
        "link.forward.planned",
        sources=len(source_records),
        target_keys=len(targets),
        updates=len(updates),
    )
    return LinkPlan(updates, report)


def sync_back_references(
    source_records: Sequence[Record],
    target_records: Sequence[Record],
    source_link_field: str,
    back_link_field: str,
    *,
    report: RunReport | None = None,
) -> LinkPlan:
    """Add each source to the back-link field of every target it links to."""
    report = report or RunReport("back_references")
    linked_from: dict[str, list[str]] = {}
    for source in source_records:
        for target_id in ordered_link_ids(source.get(source_link_field)):
            linked_from.setdefault(target_id, []).append(source.id)

    updates = []
    for target in target_records:
        report.evaluated("targets")
        wanted = linked_from.get(target.id)
        if not wanted:
            continue
        update = _additive_updates(target, back_link_field, wanted)
        if update is not None:
            updates.append(update)
            report.updated("targets")

    logger.info("link.back.planned", targets=len(target_records), updates=len(updates))
    return LinkPlan(updates, report)


def sync_next_version_links(
    records: Sequence[Record],
    version_field: str,
    live_date_field: str,
    link_field: str,
    *,
    candidate: RecordPredicate | None = None,
    report: RunReport | None = None,
) -> LinkPlan:
    """Link each clean ``major.minor`` record to the next release to go live.

    The next release is the candidate with the earliest live date strictly
    after the record's own; ties keep the first candidate in input order.
    Records with no later candidate are left untouched.
    """
    report = report or RunReport("next_version_links")

    dated: list[tuple[Record, date]] = []
    for record in records:
        report.evaluated("records")
        version = _key_of(record, version_field, report, "records")
        if version is None:
            continue
        if not is_clean_version(version):
            report.skip("records", record.id, "unclean_version", version)
            continue
        try:
            live = parse_date(record.get(live_date_field))
        except ValueError:
            report.skip("records", record.id, "invalid_date", record.get_string(live_date_field))
            continue
        if live is None:
            report.skip("records", record.id, "missing_date")
            continue
        dated.append((record, live))

    candidates = [(r, live) for r, live in dated if candidate is None or candidate(r)]

    updates = []
    for record, live in dated:
        later = [(c_live, c) for c, c_live in candidates if c_live > live]
        if not later:
            continue
        _, nxt = min(later, key=lambda pair: pair[0])
        if record.link_ids(link_field) == frozenset({nxt.id}):
            continue
        updates.append(UpdateRequest(record.id, {link_field: link_value([nxt.id])}))
        report.updated("records")

    logger.info(
        "link.next_version.planned",
        dated=len(dated),
        candidates=len(candidates),
        updates=len(updates),
    )
    return LinkPlan(updates, report)


# ── Runner ───────────────────────────────────────────────────────────────


@dataclass
class SyncResult:
    """Outcome of a reconciliation run."""

    report: RunReport
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
            "planned": self.planned,
            "written": self.written,
            "dry_run": self.dry_run,
            "dispatches": [d.to_dict() for d in self.dispatches],
        }


def _with_updates(records: Sequence[Record], updates: Sequence[UpdateRequest]) -> list[Record]:
    """Snapshot as it will look once ``updates`` land."""
    changes: Mapping[str, UpdateRequest] = {u.id: u for u in updates}
    result = []
    for record in records:
        change = changes.get(record.id)
        if change is None:
            result.append(record)
        else:
            result.append(Record(record.id, {**record.fields, **change.fields}, record.created_time))
    return result


class LinkSynchronizer:
    """Reads snapshots, plans link changes and dispatches them.

    A failure to read a source table raises :class:`RunAbortedError` before
    any write is issued.  Write failures are folded into the report; they do
    not raise.
    """

    def __init__(
        self,
        repository: RecordRepository,
        dispatcher: BatchUpdateDispatcher | None = None,
        *,
        dry_run: bool = False,
    ) -> None:
        self._repository = repository
        self._dispatcher = dispatcher or BatchUpdateDispatcher(repository)
        self._dry_run = dry_run

    async def _read(self, table: str, **kwargs: Any) -> list[Record]:
        return await read_snapshot(self._repository, table, **kwargs)

    async def _apply(self, table: str, plan: LinkPlan, result: SyncResult) -> DispatchResult | None:
        """Dispatch ``plan``; ``None`` when nothing was sent (empty plan or dry run)."""
        result.planned += len(plan.updates)
        if not plan.updates or self._dry_run:
            return None
        dispatch = await self._dispatcher.update(table, plan.updates)
        plan.report.absorb(dispatch)
        result.dispatches.append(dispatch)
        return dispatch

    def _finish(self, result: SyncResult) -> SyncResult:
        report = result.report
        logger.info(
            "link.complete",
            planned=result.planned,
            written=result.written,
            skipped=report.total_skipped,
            skip_reasons=report.skip_reason_counts(),
            failed_writes=report.failed_writes,
            dry_run=self._dry_run,
        )
        return result

    async def run_peer_links(
        self,
        table: str,
        key_field: str,
        link_field: str,
        *,
        where: RecordPredicate | None = None,
        view: str | None = None,
        name: str | None = None,
    ) -> SyncResult:
        with log_context(run=name or f"{table}.{link_field}"):
            records = await self._read(table, where=where, view=view)
            plan = sync_peer_links(records, key_field, link_field, report=RunReport(name or "peer_links"))
            result = SyncResult(plan.report, dry_run=self._dry_run)
            await self._apply(table, plan, result)
            return self._finish(result)

    async def run_parent_child_links(
        self,
        table: str,
        key_field: str,
        child_link_field: str,
        *,
        child_table: str | None = None,
        child_marker_field: str | None = None,
        child_where: RecordPredicate | None = None,
        parent_where: RecordPredicate | None = None,
        name: str | None = None,
    ) -> SyncResult:
        """Parents live in ``table``; children in ``child_table`` (default: same).

        With a single table and a ``child_marker_field``, children are the
        records whose marker is set and parents are the rest.
        """
        with log_context(run=name or f"{table}.{child_link_field}"):
            parents = await self._read(table, where=parent_where)
            if child_table is None or child_table == table:
                children = list(parents)
            else:
                children = await self._read(child_table)
            if child_where is None and child_marker_field:
                child_where = is_not_empty(child_marker_field)
            if child_where is not None:
                children = [c for c in children if child_where(c)]

            plan = sync_parent_child_links(
                children,
                parents,
                key_field,
                child_link_field,
                child_marker_field=child_marker_field,
                report=RunReport(name or "parent_child_links"),
            )
            result = SyncResult(plan.report, dry_run=self._dry_run)
            await self._apply(table, plan, result)
            return self._finish(result)

    async def run_forward_lookup_links(
        self,
        source_table: str,
        target_table: str,
        key_field: str,
        link_field: str,
        *,
        target_key_field: str | None = None,
        target_filter: RecordPredicate | None = None,
        target_view: str | None = None,
        at_most_one: bool = False,
        back_link_field: str | None = None,
        source_where: RecordPredicate | None = None,
        name: str | None = None,
    ) -> SyncResult:
        """Forward-link sources, then optionally add back references on targets.

        Back references are planned only from forward links that were
        written (or, in a dry run, would be written).
        """
        with log_context(run=name or f"{source_table}.{link_field}"):
            targets = await self._read(target_table, view=target_view)
            sources = await self._read(source_table, where=source_where)

            plan = sync_forward_lookup_links(
                sources,
                targets,
                key_field,
                link_field,
                target_key_field=target_key_field,
                target_filter=target_filter,
                at_most_one=at_most_one,
                report=RunReport(name or "forward_lookup_links"),
            )
            result = SyncResult(plan.report, dry_run=self._dry_run)
            dispatch = await self._apply(source_table, plan, result)

            if back_link_field:
                landed = plan.updates if dispatch is None else dispatch.written_items
                back = sync_back_references(
                    _with_updates(sources, landed), targets, link_field, back_link_field,
                    report=plan.report,
                )
                await self._apply(target_table, back, result)
            return self._finish(result)

    async def run_back_references(
        self,
        source_table: str,
        target_table: str,
        source_link_field: str,
        back_link_field: str,
        *,
        name: str | None = None,
    ) -> SyncResult:
        with log_context(run=name or f"{target_table}.{back_link_field}"):
            sources = await self._read(source_table, fields=[source_link_field])
            targets = await self._read(target_table, fields=[back_link_field])
            plan = sync_back_references(
                sources, targets, source_link_field, back_link_field,
                report=RunReport(name or "back_references"),
            )
            result = SyncResult(plan.report, dry_run=self._dry_run)
            await self._apply(target_table, plan, result)
            return self._finish(result)

    async def run_next_version_links(
        self,
        table: str,
        version_field: str,
        live_date_field: str,
        link_field: str,
        *,
        candidate: RecordPredicate | None = None,
        name: str | None = None,
    ) -> SyncResult:
        with log_context(run=name or f"{table}.{link_field}"):
            records = await self._read(table)
            plan = sync_next_version_links(
                records,
                version_field,
                live_date_field,
                link_field,
                candidate=candidate,
                report=RunReport(name or "next_version_links"),
            )
            result = SyncResult(plan.report, dry_run=self._dry_run)
            await self._apply(table, plan, result)
            return self._finish(result)

    async def run_preset(self, preset: LinkPreset) -> SyncResult:
        """Run one of the named configurations in :mod:`linkspine.reconcile.presets`."""
        return await preset.run(self)
