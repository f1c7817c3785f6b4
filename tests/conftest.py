"""
Shared pytest fixtures for linkspine tests.

This module provides:
- An in-memory repository and a record factory
- A recording no-op sleep so backoff tests never wait
- Quiet structlog configuration for every test
- CLI settings wired to the in-memory repository

Usage:
    async def test_something(repo, no_sleep):
        repo.add("Builds", {"Build Version (Unified)": "36.10"}, id="recA")
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from typing import Any

import pytest
import structlog

from linkspine.core.models import Record
from linkspine.core.settings import LinkSpineSettings
from linkspine.repositories.memory import InMemoryRepository


@pytest.fixture(autouse=True)
def _quiet_logging() -> Iterator[None]:
    """Route log events nowhere; ``capture_logs`` still works inside tests."""
    structlog.configure(
        processors=[structlog.processors.KeyValueRenderer()],
        logger_factory=structlog.ReturnLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def make_record() -> Callable[..., Record]:
    """Build a ``Record`` snapshot: ``make_record("recA", {"Version": "36.10"})``."""

    def _make(
        record_id: str,
        fields: dict[str, Any] | None = None,
        created: datetime | None = None,
    ) -> Record:
        return Record(record_id, dict(fields or {}), created or datetime(2024, 1, 1, tzinfo=UTC))

    return _make


class RecordingSleep:
    """Awaitable stand-in for ``asyncio.sleep`` that records each delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def cli_settings(monkeypatch: pytest.MonkeyPatch, repo: InMemoryRepository) -> LinkSpineSettings:
    """Point the CLI at ``repo`` with fixed settings and no logging setup."""
    settings = LinkSpineSettings(
        _env_file=None,
        airtable_api_key="pat",
        airtable_base_id="appTEST",
        metrics_webhook_url="https://hooks.example.test/periods",
    )
    monkeypatch.setattr("linkspine.cli.utils.get_settings", lambda: settings)
    monkeypatch.setattr("linkspine.cli.utils.configure_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr("linkspine.cli.utils.open_repository", lambda _settings: repo)
    return settings
