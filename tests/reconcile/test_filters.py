"""Tests for record predicates."""

from __future__ import annotations

from linkspine.core.models import Record
from linkspine.reconcile.filters import (
    accept_all,
    all_of,
    any_of,
    contains,
    equals,
    is_empty,
    is_not_empty,
    negate,
    not_contains,
)

BUILD = Record(
    "recA",
    {
        "Sync Source": {"id": "sel1", "name": "Scheduled Deploys"},
        "Release Version": "36.10 hf2",
        "Notes": "",
    },
)


class TestLeafPredicates:
    def test_empty(self):
        assert is_empty("Notes")(BUILD)
        assert is_empty("Missing")(BUILD)
        assert is_not_empty("Release Version")(BUILD)

    def test_equals_renders_select_objects(self):
        assert equals("Sync Source", "Scheduled Deploys")(BUILD)
        assert not equals("Sync Source", "scheduled deploys")(BUILD)

    def test_contains_is_case_insensitive_by_default(self):
        assert contains("Release Version", "HF")(BUILD)
        assert not contains("Release Version", "HF", case_sensitive=True)(BUILD)
        assert not not_contains("Release Version", "HF")(BUILD)


class TestCombinators:
    def test_all_any_negate(self):
        scheduled = equals("Sync Source", "Scheduled Deploys")
        hotfix = contains("Release Version", "HF")

        assert not all_of(scheduled, negate(hotfix))(BUILD)
        assert any_of(negate(scheduled), hotfix)(BUILD)
        assert all_of()(BUILD)
        assert not any_of()(BUILD)

    def test_accept_all(self):
        assert accept_all(Record("recZ"))
