"""
Record snapshots, write requests and the transient values derived from them.

Records are read-only snapshots owned by the store.  Everything computed from
them (version keys, link diffs, milestone events, periods, metric samples) is
rebuilt on every run and thrown away once writes are dispatched.

Cell values arrive in several shapes depending on the field type and on the
API that produced them:

    text / number / bool      ->  plain Python value
    single select             ->  "name" or {"id": ..., "name": ...}
    lookup / rollup           ->  ["value"] or [{"name": ...}]
    link to another record    ->  ["recXXX", ...] or [{"id": "recXXX"}, ...]

The helpers here flatten those shapes once, at the record boundary.

Tags:
    data-model, records, links, milestones, linkspine
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from linkspine.core.errors import MalformedKeyError

# ── Cell helpers ─────────────────────────────────────────────────────────


def _unwrap(value: Any) -> Any:
    """Unwrap select objects and single-element lookup lists."""
    if isinstance(value, list) and len(value) == 1:
        value = value[0]
    if isinstance(value, dict) and "name" in value:
        value = value["name"]
    return value


def cell_as_string(value: Any) -> str:
    """Render a cell the way the store's UI would show it."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return str(value.get("name", value.get("id", "")))
    if isinstance(value, list | tuple):
        return ", ".join(cell_as_string(v) for v in value)
    if isinstance(value, bool):
        return "checked" if value else ""
    return str(value)


def normalize_key(value: Any, field: str | None = None) -> str | None:
    """Return the trimmed natural key, or ``None`` when missing or blank.

    Keys are case-sensitive.  Numbers, booleans and multi-valued lists are not
    keys: ``36.1`` and ``"36.10"`` must never collide, so a non-text cell
    raises :class:`MalformedKeyError` instead of being coerced.
    """
    if value is None:
        return None
    value = _unwrap(value)
    if value is None or value == []:
        return None
    if not isinstance(value, str):
        raise MalformedKeyError(field, value)
    return value.strip() or None


def link_ids(value: Any) -> frozenset[str]:
    """Ids referenced by a link cell, as an unordered set."""
    if not value:
        return frozenset()
    ids = set()
    for item in value:
        if isinstance(item, dict):
            ids.add(item["id"])
        else:
            ids.add(str(item))
    return frozenset(ids)


def ordered_link_ids(value: Any) -> list[str]:
    """Ids referenced by a link cell, in stored order."""
    if not value:
        return []
    return [item["id"] if isinstance(item, dict) else str(item) for item in value]


def link_value(ids: Iterable[str]) -> list[dict[str, str]]:
    """Serialize ids as a link cell value."""
    return [{"id": record_id} for record_id in ids]


def parse_date(value: Any) -> date | None:
    """Coerce a date cell (``date``, ``datetime`` or ISO-8601 text) to a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            return date.fromisoformat(text[:10])
    raise ValueError(f"Not a date value: {value!r}")


# ── Records and write requests ───────────────────────────────────────────


@dataclass(frozen=True)
class Record:
    """Read snapshot of one stored record."""

    id: str
    fields: Mapping[str, Any] = field(default_factory=dict)
    created_time: datetime | None = None

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def get_string(self, name: str) -> str:
        return cell_as_string(self.fields.get(name))

    def is_empty(self, name: str) -> bool:
        value = self.fields.get(name)
        return value is None or value == "" or value == [] or value is False

    def key(self, name: str) -> str | None:
        """Normalized natural key held in ``name``."""
        return normalize_key(self.fields.get(name), name)

    def link_ids(self, name: str) -> frozenset[str]:
        return link_ids(self.fields.get(name))

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> Record:
        """Build a record from a REST payload ``{id, createdTime, fields}``."""
        created = payload.get("createdTime")
        if isinstance(created, str):
            created = datetime.fromisoformat(created.replace("Z", "+00:00"))
        return cls(
            id=payload["id"],
            fields=dict(payload.get("fields") or {}),
            created_time=created,
        )


@dataclass(frozen=True)
class UpdateRequest:
    """Partial update of one record."""

    id: str
    fields: Mapping[str, Any]

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "fields": dict(self.fields)}


@dataclass(frozen=True)
class CreateRequest:
    """A record to create."""

    fields: Mapping[str, Any]

    def to_payload(self) -> dict[str, Any]:
        return {"fields": dict(self.fields)}


# ── Milestones, periods, metric samples ──────────────────────────────────


class MilestoneType(str, Enum):
    """Milestone vocabulary, in lifecycle order."""

    BRANCH_CREATE = "Branch Create"
    HARD_LOCK = "Hard Lock"
    PENCILS_DOWN = "Pencils Down"
    CERT_SUB = "Cert Sub"
    LIVE = "Live"

    @classmethod
    def parse(cls, value: Any) -> MilestoneType | None:
        """Resolve a cell value (text or select object); ``None`` if unknown."""
        value = _unwrap(value)
        if isinstance(value, MilestoneType):
            return value
        if not isinstance(value, str):
            return None
        name = value.strip()
        name = _MILESTONE_ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            return None


_MILESTONE_ALIASES = {"Pencil's Down": "Pencils Down"}


@dataclass(frozen=True)
class MilestoneEvent:
    version: str
    type: MilestoneType
    date: date


@dataclass(frozen=True)
class Period:
    """Half-open window ``[start, end)`` between two milestone events."""

    name: str
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(
                f"Period {self.name!r} starts after it ends ({self.start} > {self.end})"
            )

    @property
    def days(self) -> int:
        return (self.end - self.start).days


@dataclass(frozen=True)
class MetricSample:
    """One observation from the external metric feed."""

    source_key: str
    category: str
    value: float
    timestamp: datetime | None = None
