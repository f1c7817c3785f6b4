"""Tests for linkspine.core.report: RunReport bookkeeping."""

from __future__ import annotations

from datetime import UTC, datetime

from linkspine.core.report import RunReport
from linkspine.execution.dispatcher import BatchOutcome, DispatchResult, DispatchState


def _dispatch(*states: DispatchState, size: int = 10) -> DispatchResult:
    now = datetime.now(UTC)
    batches = []
    for index, state in enumerate(states):
        outcome = BatchOutcome(index=index, size=size)
        outcome.transition(state)
        if state == DispatchState.FAILED:
            outcome.error = "RateLimitError: Rate limit exceeded"
        batches.append(outcome)
    return DispatchResult("update", "Builds", batches, now, now)


class TestRunReport:
    def test_counts_per_category(self):
        report = RunReport("peer")
        report.evaluated("records", 3)
        report.updated("records")
        report.skip("records", "recC", "missing_key")
        assert report.summary() == {"records": {"evaluated": 3, "updated": 1, "skipped": 1}}
        assert report.total_updated == 1
        assert report.total_skipped == 1

    def test_skip_reason_counts(self):
        report = RunReport("peer")
        report.skip("records", "recA", "missing_key")
        report.skip("records", "recB", "missing_key")
        report.skip("sources", "recC", "no_match", "36.10")
        assert report.skip_reason_counts() == {"missing_key": 2, "no_match": 1}
        assert report.skips[2].detail == "36.10"

    def test_ok_until_writes_fail(self):
        report = RunReport("peer")
        assert report.ok
        report.absorb(_dispatch(DispatchState.DONE, DispatchState.FAILED, DispatchState.SKIPPED))
        assert report.failed_writes == 10
        assert report.not_attempted_writes == 10
        assert report.write_errors == ["RateLimitError: Rate limit exceeded"]
        assert not report.ok

    def test_to_dict(self):
        report = RunReport("peer")
        report.skip("records", "recA", "missing_key")
        data = report.to_dict()
        assert data["name"] == "peer"
        assert data["skip_reasons"] == {"missing_key": 1}
        assert data["skips"][0] == {
            "category": "records",
            "record_id": "recA",
            "reason": "missing_key",
            "detail": None,
        }
