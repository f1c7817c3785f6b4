"""Windows: version ordering, milestone periods and metric aggregation.

::

    Builds (milestone rows) ──► collect_milestones ──► MilestoneWindowBuilder
                                                          │ {version: [Period]}
                                   PeriodPublisher ◄──────┘
                                        │ webhook
                                        ▼
    Grafana Data (feed rows) ──► MetricAggregator ──► BatchUpdateDispatcher
"""

from linkspine.windows.metrics import (
    MetricAggregator,
    MetricSyncResult,
    extract_version_key,
)
from linkspine.windows.milestones import (
    BEFORE_HARD_LOCK,
    LIVE_PLUS,
    MilestoneWindowBuilder,
    build_periods,
    collect_milestones,
    read_milestones,
)
from linkspine.windows.publisher import PeriodPublisher, PublishReport, select_versions
from linkspine.windows.versions import (
    compare_versions,
    is_clean_version,
    is_hotfix,
    parse_version,
    sort_versions,
    successor,
)

__all__ = [
    "BEFORE_HARD_LOCK",
    "LIVE_PLUS",
    "MetricAggregator",
    "MetricSyncResult",
    "MilestoneWindowBuilder",
    "PeriodPublisher",
    "PublishReport",
    "build_periods",
    "collect_milestones",
    "compare_versions",
    "extract_version_key",
    "is_clean_version",
    "is_hotfix",
    "parse_version",
    "read_milestones",
    "select_versions",
    "sort_versions",
    "successor",
]
