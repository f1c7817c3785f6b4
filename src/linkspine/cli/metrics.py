"""
CLI: ``linkspine metrics``: aggregate the commit feed onto Builds.

Usage::

    linkspine metrics sync --dry-run
"""

from __future__ import annotations

import typer

from linkspine.cli.utils import load_settings, make_dispatcher, output_report, repository_session, run_async
from linkspine.windows.metrics import MetricAggregator, MetricSyncResult

app = typer.Typer(no_args_is_help=True)


@app.command("sync")
def sync(
    source_table: str = typer.Option("Grafana Data", "--source", help="Feed table"),
    destination_table: str = typer.Option("Builds", "--destination", help="Table receiving totals"),
    key_field: str = typer.Option("Build Version (Unified)", "--key-field", help="Version field on destinations"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Plan without writing"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Sum feed values per version and category and write them onto destinations."""
    settings = load_settings()
    aggregator = MetricAggregator(settings.metric_field_map)

    async def _run() -> MetricSyncResult:
        async with repository_session(settings) as repository:
            return await aggregator.run(
                repository,
                source_table=source_table,
                destination_table=destination_table,
                key_field=key_field,
                dispatcher=make_dispatcher(repository, settings),
                dry_run=dry_run,
            )

    result = run_async(_run)
    output_report(
        result.report,
        as_json=json_out,
        extra={
            "versions": len(result.totals),
            "planned": result.planned,
            "written": result.written,
            "dry_run": result.dry_run,
        },
    )
