"""Tests for structlog configuration."""

from __future__ import annotations

import json

import pytest
from structlog.contextvars import get_contextvars

from linkspine.core.logging import configure_logging, get_logger, log_context


class TestConfigureLogging:
    def test_json_events_on_stderr(self, capsys):
        configure_logging("INFO", json_format=True, service="linkspine-test")
        with log_context(run="builds-deploys"):
            get_logger("linkspine.tests").info("link.peer.planned", updates=3)

        captured = capsys.readouterr()
        assert captured.out == ""
        event = json.loads(captured.err.strip().splitlines()[-1])
        assert event["event"] == "link.peer.planned"
        assert event["updates"] == 3
        assert event["run"] == "builds-deploys"
        assert event["service"] == "linkspine-test"
        assert event["logger"] == "linkspine.tests"
        assert event["level"] == "info"
        assert "timestamp" in event

    def test_level_filters_debug(self, capsys):
        configure_logging("WARNING", json_format=True)
        logger = get_logger("linkspine.tests")
        logger.info("quiet.event")
        logger.warning("loud.event")
        lines = capsys.readouterr().err.strip().splitlines()
        assert [json.loads(line)["event"] for line in lines] == ["loud.event"]

    def test_unknown_level(self):
        with pytest.raises(ValueError):
            configure_logging("CHATTY")


class TestLogContext:
    def test_unbound_when_block_raises(self):
        with pytest.raises(RuntimeError):
            with log_context(run="builds-deploys"):
                assert get_contextvars() == {"run": "builds-deploys"}
                raise RuntimeError("boom")
        assert "run" not in get_contextvars()

    def test_restores_outer_value(self):
        with log_context(run="outer"):
            with log_context(run="inner"):
                assert get_contextvars()["run"] == "inner"
            assert get_contextvars()["run"] == "outer"
