"""Tests for linkspine.core.models: cell helpers, records, periods."""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from linkspine.core.errors import MalformedKeyError
from linkspine.core.models import (
    CreateRequest,
    MilestoneType,
    Period,
    Record,
    UpdateRequest,
    cell_as_string,
    link_ids,
    link_value,
    normalize_key,
    ordered_link_ids,
    parse_date,
)


# ── normalize_key ────────────────────────────────────────────────────────


class TestNormalizeKey:
    def test_trims_whitespace(self):
        assert normalize_key("  36.10 ") == "36.10"

    def test_missing_and_blank_are_none(self):
        assert normalize_key(None) is None
        assert normalize_key("") is None
        assert normalize_key("   ") is None
        assert normalize_key([]) is None

    def test_case_sensitive(self):
        assert normalize_key("Release") != normalize_key("release")

    def test_unwraps_select_object(self):
        assert normalize_key({"id": "sel1", "name": "36.10"}) == "36.10"

    def test_unwraps_single_lookup(self):
        assert normalize_key([{"id": "sel1", "name": " 36.10"}]) == "36.10"
        assert normalize_key(["36.10"]) == "36.10"

    def test_number_is_malformed(self):
        with pytest.raises(MalformedKeyError) as exc_info:
            normalize_key(36.1, "Build Version")
        assert exc_info.value.field == "Build Version"
        assert exc_info.value.value == 36.1

    def test_boolean_is_malformed(self):
        with pytest.raises(MalformedKeyError):
            normalize_key(True)

    def test_multi_valued_list_is_malformed(self):
        with pytest.raises(MalformedKeyError):
            normalize_key(["36.10", "36.20"])


# ── Link cells ───────────────────────────────────────────────────────────


class TestLinkCells:
    def test_link_ids_from_dicts(self):
        assert link_ids([{"id": "recA"}, {"id": "recB"}]) == frozenset({"recA", "recB"})

    def test_link_ids_from_strings(self):
        assert link_ids(["recA", "recB"]) == frozenset({"recA", "recB"})

    def test_link_ids_empty(self):
        assert link_ids(None) == frozenset()
        assert link_ids([]) == frozenset()

    def test_ordered_link_ids_keeps_order(self):
        assert ordered_link_ids([{"id": "recB"}, "recA"]) == ["recB", "recA"]

    def test_link_value(self):
        assert link_value(["recA", "recB"]) == [{"id": "recA"}, {"id": "recB"}]


class TestCellAsString:
    def test_select_object_renders_name(self):
        assert cell_as_string({"id": "sel1", "name": "Hard Lock"}) == "Hard Lock"

    def test_list_joins(self):
        assert cell_as_string(["a", {"name": "b"}]) == "a, b"

    def test_none_is_empty(self):
        assert cell_as_string(None) == ""

    def test_number(self):
        assert cell_as_string(12) == "12"


# ── parse_date ───────────────────────────────────────────────────────────


class TestParseDate:
    def test_iso_date(self):
        assert parse_date("2024-03-01") == date(2024, 3, 1)

    def test_iso_datetime_with_z(self):
        assert parse_date("2024-03-01T08:00:00.000Z") == date(2024, 3, 1)

    def test_datetime_and_date(self):
        assert parse_date(datetime(2024, 3, 1, 12, tzinfo=UTC)) == date(2024, 3, 1)
        assert parse_date(date(2024, 3, 1)) == date(2024, 3, 1)

    def test_empty_is_none(self):
        assert parse_date(None) is None
        assert parse_date("") is None

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_date("not a date")
        with pytest.raises(ValueError):
            parse_date(42)


# ── Record ───────────────────────────────────────────────────────────────


class TestRecord:
    def test_accessors(self):
        record = Record("recA", {"Version": " 36.10 ", "Links": [{"id": "recB"}]})
        assert record.key("Version") == "36.10"
        assert record.link_ids("Links") == frozenset({"recB"})
        assert record.get("Missing") is None
        assert record.get_string("Missing") == ""

    def test_is_empty(self):
        record = Record("recA", {"a": "", "b": [], "c": None, "d": "x", "e": False})
        assert record.is_empty("a")
        assert record.is_empty("b")
        assert record.is_empty("c")
        assert record.is_empty("missing")
        assert record.is_empty("e")
        assert not record.is_empty("d")

    def test_from_api(self):
        record = Record.from_api(
            {"id": "recA", "createdTime": "2024-01-02T03:04:05.000Z", "fields": {"Name": "x"}}
        )
        assert record.id == "recA"
        assert record.fields == {"Name": "x"}
        assert record.created_time == datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)

    def test_from_api_without_fields(self):
        assert Record.from_api({"id": "recA"}).fields == {}

    def test_frozen(self):
        record = Record("recA")
        with pytest.raises(AttributeError):
            record.id = "recB"  # type: ignore[misc]


class TestWriteRequests:
    def test_update_payload(self):
        assert UpdateRequest("recA", {"f": 1}).to_payload() == {"id": "recA", "fields": {"f": 1}}

    def test_create_payload(self):
        assert CreateRequest({"f": 1}).to_payload() == {"fields": {"f": 1}}


# ── MilestoneType / Period ───────────────────────────────────────────────


class TestMilestoneType:
    def test_parse_plain(self):
        assert MilestoneType.parse("Hard Lock") is MilestoneType.HARD_LOCK

    def test_parse_select_object(self):
        assert MilestoneType.parse({"name": "Live"}) is MilestoneType.LIVE

    def test_parse_alias(self):
        assert MilestoneType.parse("Pencil's Down") is MilestoneType.PENCILS_DOWN

    def test_parse_unknown(self):
        assert MilestoneType.parse("Kickoff") is None
        assert MilestoneType.parse(None) is None
        assert MilestoneType.parse(3) is None


class TestPeriod:
    def test_days(self):
        assert Period("x", date(2024, 1, 1), date(2024, 1, 11)).days == 10

    def test_zero_length_allowed(self):
        assert Period("x", date(2024, 1, 1), date(2024, 1, 1)).days == 0

    def test_inverted_raises(self):
        with pytest.raises(ValueError):
            Period("x", date(2024, 1, 2), date(2024, 1, 1))
