"""Delete records superseded by a newer record with the same key.

Generated reports are recreated on every run; the previous reports for the
same version only clutter the table.  Keeps one record per key (an explicit
id, else the most recently created) and deletes the rest through the
dispatcher.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from linkspine.core.logging import get_logger
from linkspine.core.models import Record
from linkspine.core.protocols import RecordRepository
from linkspine.core.report import RunReport
from linkspine.execution.dispatcher import BatchUpdateDispatcher
from linkspine.reconcile.links import SyncResult, group_by_key
from linkspine.repositories.snapshots import read_snapshot

logger = get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _created(record: Record) -> datetime:
    created = record.created_time
    if created is None:
        return _EPOCH
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


def plan_superseded_deletions(
    records: Sequence[Record],
    key_field: str,
    *,
    key: str | None = None,
    keep_id: str | None = None,
    report: RunReport | None = None,
) -> tuple[list[str], RunReport]:
    """Ids to delete so each key (or only ``key``) keeps a single record."""
    report = report or RunReport("prune_superseded")
    groups = group_by_key(records, key_field, report, "records")
    if key is None and keep_id is not None:
        key = next(
            (k for k, group in groups.items() if any(r.id == keep_id for r in group)),
            None,
        )
        if key is None:
            logger.warning("prune.keep_not_found", keep_id=keep_id)
            return [], report
    if key is not None:
        key = key.strip()
        groups = {key: groups.get(key, [])}

    doomed: list[str] = []
    for group_key, group in groups.items():
        if not group:
            continue
        if keep_id is not None:
            keeper_id = keep_id
            if keeper_id not in {r.id for r in group}:
                logger.warning("prune.keep_not_in_group", key=group_key, keep_id=keep_id)
        else:
            keeper_id = max(group, key=_created).id
        for record in group:
            if record.id != keeper_id:
                doomed.append(record.id)
                report.updated("records")

    logger.info("prune.planned", groups=len(groups), deletions=len(doomed))
    return doomed, report


async def prune_superseded(
    repository: RecordRepository,
    table: str,
    key_field: str,
    *,
    key: str | None = None,
    keep_id: str | None = None,
    dispatcher: BatchUpdateDispatcher | None = None,
    dry_run: bool = False,
) -> SyncResult:
    records = await read_snapshot(repository, table, fields=[key_field])
    doomed, report = plan_superseded_deletions(records, key_field, key=key, keep_id=keep_id)
    result = SyncResult(report, planned=len(doomed), dry_run=dry_run)
    if doomed and not dry_run:
        dispatch = await (dispatcher or BatchUpdateDispatcher(repository)).delete(table, doomed)
        report.absorb(dispatch)
        result.dispatches.append(dispatch)
    return result
