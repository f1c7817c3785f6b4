"""
CLI: ``linkspine reports``: housekeeping for generated report records.

Usage::

    linkspine reports prune "Version Covered" 36.10 --keep-id recNEW
"""

from __future__ import annotations

import typer

from linkspine.cli.utils import load_settings, make_dispatcher, output_report, repository_session, run_async
from linkspine.reconcile.links import SyncResult
from linkspine.reconcile.pruning import prune_superseded

app = typer.Typer(no_args_is_help=True)


@app.command("prune")
def prune(
    key_field: str = typer.Argument(..., help="Field identifying the report subject"),
    value: str = typer.Argument(..., help="Subject whose older reports are removed"),
    table: str = typer.Option("Generated Reports", "--table", "-t"),
    keep_id: str | None = typer.Option(None, "--keep-id", help="Record to keep (default: newest)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Plan without deleting"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Delete every report for VALUE except the kept one."""
    settings = load_settings()

    async def _run() -> SyncResult:
        async with repository_session(settings) as repository:
            return await prune_superseded(
                repository,
                table,
                key_field,
                key=value,
                keep_id=keep_id,
                dispatcher=make_dispatcher(repository, settings),
                dry_run=dry_run,
            )

    result = run_async(_run)
    output_report(
        result.report,
        as_json=json_out,
        extra={"planned": result.planned, "written": result.written, "dry_run": result.dry_run},
    )
