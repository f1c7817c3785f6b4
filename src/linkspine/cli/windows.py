"""
CLI: ``linkspine windows``: milestone periods.

Usage::

    linkspine windows show 36.10
    linkspine windows publish --start 36.30 --limit 5
"""

from __future__ import annotations

from typing import Any

import typer
from rich.table import Table

from linkspine.cli.utils import (
    console,
    err_console,
    load_settings,
    output_json,
    output_report,
    repository_session,
    run_async,
)
from linkspine.core.models import Period
from linkspine.core.report import RunReport
from linkspine.windows.milestones import MilestoneWindowBuilder, read_milestones
from linkspine.windows.publisher import PeriodPublisher, PublishReport, period_payload, select_versions

app = typer.Typer(no_args_is_help=True)


def _period_rows(version: str, periods: list[Period], stream_template: str) -> list[dict[str, Any]]:
    return [period_payload(version, period, stream_template) for period in periods]


@app.command("show")
def show(
    version: str = typer.Argument(..., help="Version key, e.g. 36.10"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the milestone periods of one version."""
    settings = load_settings()
    builder = MilestoneWindowBuilder(settings.hotfix_marker)

    async def _run() -> tuple[list[Period], RunReport]:
        async with repository_session(settings) as repository:
            milestones, rows = await read_milestones(repository, hotfix_marker=settings.hotfix_marker)
        return builder.windows_for(version, milestones), rows

    periods, rows = run_async(_run)
    if json_out:
        output_json(
            {
                "version": version,
                "periods": _period_rows(version, periods, settings.stream_template),
                "milestones": rows.to_dict(),
            }
        )
        return

    output_report(rows, title="Milestone rows")
    if not periods:
        console.print(f"[dim]No periods for {version}.[/dim]")
        return

    table = Table(title=f"Periods: {version}", pad_edge=False)
    table.add_column("period")
    table.add_column("start")
    table.add_column("end")
    table.add_column("days", justify="right")
    for period in periods:
        table.add_row(period.name, period.start.isoformat(), period.end.isoformat(), str(period.days))
    console.print(table)


@app.command("publish")
def publish(
    start: str | None = typer.Option(None, "--start", "-s", help="First version to publish"),
    limit: int = typer.Option(5, "--limit", "-n", min=1, help="Versions per run"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show payloads without sending"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Send milestone periods to the metrics webhook, a page of versions at a time."""
    settings = load_settings()
    builder = MilestoneWindowBuilder(settings.hotfix_marker)

    async def _run() -> tuple[list[str], str | None, PublishReport, dict[str, list[Period]], RunReport]:
        async with repository_session(settings) as repository:
            milestones, rows = await read_milestones(repository, hotfix_marker=settings.hotfix_marker)
        try:
            page, resume = select_versions(builder.versions(milestones), start, limit)
        except ValueError as e:
            err_console.print(f"[bold red]Error[/bold red]: {e}")
            raise typer.Exit(code=1) from e
        windows = {version: builder.windows_for(version, milestones) for version in page}
        if dry_run:
            return page, resume, PublishReport(versions=list(page)), windows, rows
        async with PeriodPublisher.from_settings(settings) as publisher:
            report = await publisher.publish(windows)
        return page, resume, report, windows, rows

    page, resume, report, windows, rows = run_async(_run)

    if json_out:
        payload = report.to_dict()
        payload["resume_from"] = resume
        payload["dry_run"] = dry_run
        payload["milestones"] = rows.to_dict()
        if dry_run:
            payload["payloads"] = [
                row
                for version, periods in windows.items()
                for row in _period_rows(version, periods, settings.stream_template)
            ]
        output_json(payload)
    else:
        output_report(rows, title="Milestone rows")
        for version, periods in windows.items():
            names = ", ".join(p.name for p in periods) or "no periods"
            console.print(f"[bold]{version}[/bold]: {names}")
        verb = "would send" if dry_run else "sent"
        console.print(
            f"{len(page)} versions, {verb} "
            f"{sum(len(p) for p in windows.values()) if dry_run else report.sent}, "
            f"{report.failed} failed"
        )
        if resume:
            console.print(f"Next run: [cyan]--start {resume}[/cyan]")
        else:
            console.print("[green]All versions published.[/green]")

    if report.failed:
        raise typer.Exit(code=1)
