"""Mirror text fields into single-select fields.

Views filter on single-select fields, but the unified version, season and
chapter values are computed text.  This copies each text value into its
select twin, but only when the value is already one of the select's
choices: unknown values are dropped and reported, never sent, so the store
never grows stray options.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence

from linkspine.core.logging import get_logger
from linkspine.core.models import Record, UpdateRequest
from linkspine.core.protocols import RecordRepository
from linkspine.core.report import RunReport
from linkspine.execution.dispatcher import BatchUpdateDispatcher
from linkspine.reconcile.links import LinkPlan, SyncResult
from linkspine.repositories.snapshots import read_snapshot

logger = get_logger(__name__)

DEFAULT_MIRRORS: dict[str, str] = {
    "Build Version (Unified)": "Version Filter",
    "Season (Unified)": "Season Filter",
    "BR Chapter (Unified)": "Chapter Filter",
}


def sync_select_mirrors(
    records: Sequence[Record],
    mirrors: Mapping[str, str],
    choices: Mapping[str, Collection[str]],
    *,
    report: RunReport | None = None,
) -> LinkPlan:
    """Plan select-field writes for ``{text_field: select_field}`` pairs."""
    report = report or RunReport("select_mirrors")
    updates = []
    for record in records:
        report.evaluated("records")
        fields = {}
        for text_field, select_field in mirrors.items():
            value = record.get_string(text_field).strip()
            if not value:
                continue
            if value not in choices.get(select_field, ()):
                logger.warning(
                    "select.invalid_choice",
                    record_id=record.id,
                    field=select_field,
                    value=value,
                )
                report.skip("records", record.id, "invalid_choice", f"{select_field}={value}")
                continue
            if record.get_string(select_field) == value:
                continue
            fields[select_field] = value
        if fields:
            updates.append(UpdateRequest(record.id, fields))
            report.updated("records")

    logger.info("select.planned", records=len(records), updates=len(updates))
    return LinkPlan(updates, report)


async def run_select_mirrors(
    repository: RecordRepository,
    table: str,
    mirrors: Mapping[str, str] | None = None,
    *,
    dispatcher: BatchUpdateDispatcher | None = None,
    dry_run: bool = False,
) -> SyncResult:
    mirrors = mirrors or DEFAULT_MIRRORS
    choices = {
        select_field: await repository.field_choices(table, select_field)
        for select_field in mirrors.values()
    }
    records = await read_snapshot(
        repository, table, fields=list(mirrors) + list(mirrors.values())
    )
    plan = sync_select_mirrors(records, mirrors, choices)
    result = SyncResult(plan.report, planned=len(plan.updates), dry_run=dry_run)
    if plan.updates and not dry_run:
        dispatch = await (dispatcher or BatchUpdateDispatcher(repository)).update(table, plan.updates)
        plan.report.absorb(dispatch)
        result.dispatches.append(dispatch)
    return result
