"""Tests for superseded-record pruning."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from linkspine.core.errors import RunAbortedError, SourceNotFoundError
from linkspine.reconcile.pruning import plan_superseded_deletions, prune_superseded

KEY = "Version"


def _at(day: int) -> datetime:
    return datetime(2024, 1, day, tzinfo=UTC)


class TestPlan:
    def test_keeps_newest_per_key(self, make_record):
        records = [
            make_record("old", {KEY: "36.10"}, _at(1)),
            make_record("new", {KEY: "36.10"}, _at(5)),
            make_record("mid", {KEY: "36.10"}, _at(3)),
            make_record("solo", {KEY: "36.20"}, _at(2)),
        ]
        doomed, report = plan_superseded_deletions(records, KEY)
        assert doomed == ["old", "mid"]
        assert report.summary()["records"]["updated"] == 2

    def test_restricted_to_one_key(self, make_record):
        records = [
            make_record("a", {KEY: "36.10"}, _at(1)),
            make_record("b", {KEY: "36.10"}, _at(2)),
            make_record("c", {KEY: "36.20"}, _at(1)),
            make_record("d", {KEY: "36.20"}, _at(2)),
        ]
        doomed, _ = plan_superseded_deletions(records, KEY, key=" 36.20 ")
        assert doomed == ["c"]

    def test_explicit_keeper(self, make_record):
        records = [
            make_record("a", {KEY: "36.10"}, _at(9)),
            make_record("b", {KEY: "36.10"}, _at(1)),
            make_record("c", {KEY: "36.20"}, _at(1)),
        ]
        doomed, _ = plan_superseded_deletions(records, KEY, keep_id="b")
        assert doomed == ["a"]

    def test_unknown_keeper_deletes_nothing(self, make_record):
        records = [make_record("a", {KEY: "36.10"}), make_record("b", {KEY: "36.10"})]
        doomed, _ = plan_superseded_deletions(records, KEY, keep_id="zzz")
        assert doomed == []


class TestRun:
    @pytest.mark.asyncio
    async def test_deletes_through_repository(self, repo):
        repo.add("Generated Reports", {KEY: "36.10"}, id="a")
        repo.add("Generated Reports", {KEY: "36.10"}, id="b")
        result = await prune_superseded(repo, "Generated Reports", KEY, keep_id="b")
        assert result.written == 1
        assert [r.id for r in repo.records("Generated Reports")] == ["b"]

    @pytest.mark.asyncio
    async def test_dry_run(self, repo):
        repo.add("Generated Reports", {KEY: "36.10"}, id="a")
        repo.add("Generated Reports", {KEY: "36.10"}, id="b")
        result = await prune_superseded(repo, "Generated Reports", KEY, keep_id="b", dry_run=True)
        assert result.planned == 1
        assert len(repo.records("Generated Reports")) == 2

    @pytest.mark.asyncio
    async def test_read_failure_aborts(self, repo):
        repo.add("Generated Reports", {KEY: "36.10"}, id="a")
        repo.fail_next(SourceNotFoundError("gone"), operation="select")
        with pytest.raises(RunAbortedError) as exc_info:
            await prune_superseded(repo, "Generated Reports", KEY)
        assert exc_info.value.context.table == "Generated Reports"
        assert repo.calls_for("delete_many") == []
