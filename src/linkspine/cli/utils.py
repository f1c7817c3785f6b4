"""
CLI utility helpers: settings, repository sessions and report output.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from linkspine.core.errors import LinkSpineError, is_fatal
from linkspine.core.logging import configure_logging
from linkspine.core.protocols import RecordRepository
from linkspine.core.report import RunReport
from linkspine.core.settings import LinkSpineSettings, get_settings
from linkspine.execution.dispatcher import BatchUpdateDispatcher
from linkspine.execution.retry import ConstantBackoff
from linkspine.repositories.airtable import AirtableRepository

T = TypeVar("T")

console = Console()
err_console = Console(stderr=True)


# ── Settings / repository helpers ────────────────────────────────────────


def load_settings() -> LinkSpineSettings:
    """Read settings and configure logging from them."""
    settings = get_settings()
    configure_logging(settings.log_level, json_format=settings.log_format == "json")
    return settings


def open_repository(settings: LinkSpineSettings) -> RecordRepository:
    """Build the record store named by settings."""
    settings.require("airtable_api_key", "airtable_base_id")
    return AirtableRepository.from_settings(settings)


@asynccontextmanager
async def repository_session(settings: LinkSpineSettings) -> AsyncIterator[RecordRepository]:
    repository = open_repository(settings)
    try:
        yield repository
    finally:
        aclose = getattr(repository, "aclose", None)
        if aclose is not None:
            await aclose()


def make_dispatcher(
    repository: RecordRepository, settings: LinkSpineSettings
) -> BatchUpdateDispatcher:
    return BatchUpdateDispatcher(
        repository,
        max_batch_size=settings.batch_size,
        retry=ConstantBackoff(
            max_retries=settings.max_retries, delay=settings.default_retry_after
        ),
    )


def run_async(factory: Callable[[], Awaitable[T]]) -> T:
    """Run a coroutine; typed errors become a red message and exit code 1."""
    try:
        return asyncio.run(factory())
    except LinkSpineError as e:
        label = "Fatal" if is_fatal(e) else "Error"
        err_console.print(f"[bold red]{label}[/bold red] ({type(e).__name__}): {e.message}")
        raise typer.Exit(code=1) from e


# ── Output helpers ───────────────────────────────────────────────────────


def output_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def output_report(
    report: RunReport,
    *,
    as_json: bool = False,
    extra: dict[str, Any] | None = None,
    title: str = "",
) -> None:
    """Render a ``RunReport`` as Rich tables (or JSON)."""
    if as_json:
        payload = report.to_dict()
        if extra:
            payload.update(extra)
        output_json(payload)
        return

    table = Table(title=title or report.name, show_lines=False, pad_edge=False)
    table.add_column("category")
    table.add_column("evaluated", justify="right")
    table.add_column("updated", justify="right")
    table.add_column("skipped", justify="right")
    for category, counts in report.categories.items():
        table.add_row(
            category, str(counts.evaluated), str(counts.updated), str(counts.skipped)
        )
    console.print(table)

    reasons = report.skip_reason_counts()
    if reasons:
        console.print("[bold]Skip reasons[/bold]")
        for reason, count in sorted(reasons.items()):
            console.print(f"  [cyan]{reason}[/cyan]: {count}")

    for key, value in (extra or {}).items():
        console.print(f"  [cyan]{key}[/cyan]: {value}")

    if report.failed_writes or report.not_attempted_writes:
        err_console.print(
            f"[bold red]{report.failed_writes} writes failed, "
            f"{report.not_attempted_writes} not attempted[/bold red]"
        )
        for error in report.write_errors:
            err_console.print(f"  [red]{error}[/red]")
