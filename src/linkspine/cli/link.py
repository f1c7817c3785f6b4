"""
CLI: ``linkspine link``: converge link fields.

Usage::

    linkspine link list
    linkspine link preset builds-deploys --dry-run
    linkspine link peer Builds "Build Version (Unified)" "Linked Deploys"
    linkspine link select Builds
"""

from __future__ import annotations

import typer

from linkspine.cli.utils import (
    console,
    load_settings,
    make_dispatcher,
    output_json,
    output_report,
    repository_session,
    run_async,
)
from linkspine.reconcile.links import LinkSynchronizer, SyncResult
from linkspine.reconcile.presets import PRESETS, get_preset
from linkspine.reconcile.select import run_select_mirrors

app = typer.Typer(no_args_is_help=True)


def _output(result: SyncResult, *, as_json: bool) -> None:
    output_report(
        result.report,
        as_json=as_json,
        extra={"planned": result.planned, "written": result.written, "dry_run": result.dry_run},
    )


@app.command("list")
def list_presets(
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List the named link presets."""
    if json_out:
        output_json([
            {"name": p.name, "mode": p.mode.value, "table": p.table, "link_field": p.link_field,
             "description": p.description}
            for p in PRESETS.values()
        ])
        return
    for preset in PRESETS.values():
        console.print(
            f"[bold]{preset.name:<24}[/bold] {preset.mode.value:<15} "
            f"{preset.table}.{preset.link_field}  [dim]{preset.description}[/dim]"
        )


@app.command("preset")
def run_preset(
    name: str = typer.Argument(..., help="Preset name (see `link list`)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Plan without writing"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Run a named link preset."""
    settings = load_settings()

    async def _run() -> SyncResult:
        preset = get_preset(name)
        async with repository_session(settings) as repository:
            sync = LinkSynchronizer(
                repository, make_dispatcher(repository, settings), dry_run=dry_run
            )
            return await sync.run_preset(preset)

    _output(run_async(_run), as_json=json_out)


@app.command("peer")
def peer(
    table: str = typer.Argument(..., help="Table to link"),
    key_field: str = typer.Argument(..., help="Field holding the shared key"),
    link_field: str = typer.Argument(..., help="Link field to converge"),
    view: str | None = typer.Option(None, "--view", "-v", help="Restrict to a view"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Plan without writing"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Link every record to the others sharing its key."""
    settings = load_settings()

    async def _run() -> SyncResult:
        async with repository_session(settings) as repository:
            sync = LinkSynchronizer(
                repository, make_dispatcher(repository, settings), dry_run=dry_run
            )
            return await sync.run_peer_links(table, key_field, link_field, view=view)

    _output(run_async(_run), as_json=json_out)


@app.command("select")
def select(
    table: str = typer.Argument("Builds", help="Table holding the text/select pairs"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Plan without writing"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Copy unified text fields into their single-select filter fields."""
    settings = load_settings()

    async def _run() -> SyncResult:
        async with repository_session(settings) as repository:
            return await run_select_mirrors(
                repository,
                table,
                dispatcher=make_dispatcher(repository, settings),
                dry_run=dry_run,
            )

    _output(run_async(_run), as_json=json_out)
