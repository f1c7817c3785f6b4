"""Record predicates used to scope link targets.

Small composable callables ``Record -> bool``::

    scheduled_release = all_of(
        equals("Sync Source", "Scheduled Deploys"),
        not_contains("Release Version", "HF"),
    )
    targets = [r for r in builds if scheduled_release(r)]

Comparisons use the cell-as-string rendering, so a single-select value
``{"name": "Scheduled Deploys"}`` equals the text ``"Scheduled Deploys"``.
"""

from __future__ import annotations

from linkspine.core.models import Record
from linkspine.core.protocols import RecordPredicate


def is_empty(field: str) -> RecordPredicate:
    def predicate(record: Record) -> bool:
        return record.is_empty(field)

    return predicate


def is_not_empty(field: str) -> RecordPredicate:
    def predicate(record: Record) -> bool:
        return not record.is_empty(field)

    return predicate


def equals(field: str, value: str) -> RecordPredicate:
    """Cell text equals ``value`` (exact, case-sensitive)."""

    def predicate(record: Record) -> bool:
        return record.get_string(field) == value

    return predicate


def contains(field: str, needle: str, *, case_sensitive: bool = False) -> RecordPredicate:
    def predicate(record: Record) -> bool:
        text = record.get_string(field)
        if case_sensitive:
            return needle in text
        return needle.upper() in text.upper()

    return predicate


def not_contains(field: str, needle: str, *, case_sensitive: bool = False) -> RecordPredicate:
    return negate(contains(field, needle, case_sensitive=case_sensitive))


def negate(inner: RecordPredicate) -> RecordPredicate:
    def predicate(record: Record) -> bool:
        return not inner(record)

    return predicate


def all_of(*predicates: RecordPredicate) -> RecordPredicate:
    def predicate(record: Record) -> bool:
        return all(p(record) for p in predicates)

    return predicate


def any_of(*predicates: RecordPredicate) -> RecordPredicate:
    def predicate(record: Record) -> bool:
        return any(p(record) for p in predicates)

    return predicate


def accept_all(record: Record) -> bool:
    return True
