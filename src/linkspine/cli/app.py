"""
Root Typer application for the linkspine CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="linkspine",
    help="linkspine: link reconciliation and milestone windows for the release base.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from linkspine import __version__

        typer.echo(f"linkspine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """linkspine CLI: converge links, publish milestone periods, sync metrics."""


# ── Sub-command registration ─────────────────────────────────────────────

from linkspine.cli.link import app as link_app  # noqa: E402
from linkspine.cli.metrics import app as metrics_app  # noqa: E402
from linkspine.cli.reports import app as reports_app  # noqa: E402
from linkspine.cli.windows import app as windows_app  # noqa: E402

app.add_typer(link_app, name="link", help="Link reconciliation.")
app.add_typer(windows_app, name="windows", help="Milestone periods.")
app.add_typer(metrics_app, name="metrics", help="Metric aggregation.")
app.add_typer(reports_app, name="reports", help="Generated report housekeeping.")
