"""Tests for ``linkspine windows``."""

from __future__ import annotations

import json

import httpx
import pytest
from typer.testing import CliRunner

from linkspine.cli.app import app
from linkspine.windows.milestones import MILESTONE_TABLE, MILESTONE_VIEW
from linkspine.windows.publisher import PeriodPublisher

runner = CliRunner()

VERSION, TYPE, DUE = "Build Version (Milestones)", "Milestone Type", "Due Date"

ROWS = [
    ("36.10", "Hard Lock", "2024-01-10"),
    ("36.10", "Pencils Down", "2024-01-20"),
    ("36.10", "Live", "2024-02-01"),
    ("36.10 HF1", "Live", "2024-02-10"),
    ("36.20", "Hard Lock", "2024-02-05"),
    ("36.20", "Live", "2024-03-01"),
    ("36.30", "Live", "2024-04-01"),
]


@pytest.fixture
def milestones(repo, cli_settings):
    for i, (version, kind, due) in enumerate(ROWS):
        repo.add(MILESTONE_TABLE, {VERSION: version, TYPE: kind, DUE: due}, id=f"m{i}")
    repo.register_view(MILESTONE_TABLE, MILESTONE_VIEW, lambda r: not r.is_empty(TYPE))
    return repo


@pytest.fixture
def webhook(monkeypatch, no_sleep):
    """Route publisher requests to a mock transport; returns the posted bodies."""
    bodies: list[dict] = []
    status = {"code": 200}

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(status["code"])

    def from_settings(cls, settings, **kwargs):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return cls(settings.metrics_webhook_url, client=client, sleep=no_sleep)

    monkeypatch.setattr(PeriodPublisher, "from_settings", classmethod(from_settings))
    return bodies, status


class TestShow:
    def test_show_json(self, milestones):
        result = runner.invoke(app, ["windows", "show", "36.10", "--json"])
        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        rows = payload["periods"]
        assert [r["periodName"] for r in rows] == [
            "Hard Lock -> Pencils Down",
            "Pencils Down -> Live",
            "Live+",
        ]
        assert rows[-1]["endDate"] == "2024-03-01T00:00:00Z"
        assert payload["milestones"]["skip_reasons"] == {"hotfix_version": 1}

    def test_show_table(self, milestones):
        result = runner.invoke(app, ["windows", "show", "36.20"])
        assert result.exit_code == 0, result.output
        assert "Hard Lock -> Live" in result.output
        assert "hotfix_version" in result.output

    def test_show_unknown_version(self, milestones):
        result = runner.invoke(app, ["windows", "show", "99.99"])
        assert result.exit_code == 0
        assert "No periods" in result.output


class TestPublish:
    def test_dry_run_pages_versions(self, milestones, webhook):
        bodies, _ = webhook
        result = runner.invoke(app, ["windows", "publish", "--limit", "2", "--dry-run", "--json"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["versions"] == ["36.10", "36.20"]
        assert payload["resume_from"] == "36.30"
        assert len(payload["payloads"]) == 5
        assert payload["milestones"]["categories"]["milestones"]["evaluated"] == 7
        assert payload["milestones"]["skip_reasons"] == {"hotfix_version": 1}
        assert bodies == []

    def test_publish_from_start(self, milestones, webhook):
        bodies, _ = webhook
        result = runner.invoke(app, ["windows", "publish", "--start", "36.20", "--json"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["sent"] == 2
        assert payload["resume_from"] is None
        assert {b["versionKey"] for b in bodies} == {"36.20"}

    def test_failed_periods_exit_1(self, milestones, webhook):
        _, status = webhook
        status["code"] = 400
        result = runner.invoke(app, ["windows", "publish", "--start", "36.20"])
        assert result.exit_code == 1
        assert "2 failed" in result.output

    def test_unknown_start(self, milestones, webhook):
        result = runner.invoke(app, ["windows", "publish", "--start", "99.99"])
        assert result.exit_code == 1
        assert "not found" in result.output
