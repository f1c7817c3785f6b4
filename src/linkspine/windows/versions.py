"""Release version ordering.

Versions are ``major.minor`` pairs compared numerically, so ``36.9`` sorts
before ``36.10``.  Anything that does not parse compares as equal to
everything: the sort never raises, malformed versions simply stay where the
input put them relative to their neighbours.

Example:
    >>> sort_versions(["36.10", "36.9", "35.20"])
    ['35.20', '36.9', '36.10']
    >>> compare_versions("36.10", "banana")
    0
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from functools import cmp_to_key

_CLEAN_VERSION = re.compile(r"^\d+\.\d+$")


def parse_version(version: str) -> tuple[int, int] | None:
    """``"36.10"`` -> ``(36, 10)``; ``None`` when not a ``major.minor`` pair."""
    parts = version.strip().split(".")
    if len(parts) != 2:
        return None
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return None


def compare_versions(a: str, b: str) -> int:
    """Three-way numeric comparison; 0 when either side is malformed."""
    left, right = parse_version(a), parse_version(b)
    if left is None or right is None:
        return 0
    return (left > right) - (left < right)


def sort_versions(versions: Iterable[str]) -> list[str]:
    """Stable numeric sort of distinct versions."""
    return sorted(dict.fromkeys(versions), key=cmp_to_key(compare_versions))


def is_clean_version(version: str) -> bool:
    return bool(_CLEAN_VERSION.match(version))


def is_hotfix(version: str, marker: str = "HF") -> bool:
    """Hotfix builds carry the marker (``"36.10 HF2"``), compared case-insensitively."""
    return marker.upper() in version.upper()


def successor(version: str, versions: Iterable[str]) -> str | None:
    """The version immediately after ``version`` in numeric order, if any."""
    ordered = sort_versions(versions)
    try:
        index = ordered.index(version)
    except ValueError:
        return None
    if index + 1 >= len(ordered):
        return None
    return ordered[index + 1]
