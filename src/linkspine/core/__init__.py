"""Core primitives: records, errors, logging, settings and the store protocol."""

from linkspine.core.errors import (
    AuthenticationError,
    ConfigError,
    ErrorCategory,
    LinkSpineError,
    MalformedKeyError,
    MissingConfigError,
    RateLimitError,
    RunAbortedError,
    TransientError,
    ValidationError,
    is_fatal,
    is_retryable,
)
from linkspine.core.models import (
    CreateRequest,
    MetricSample,
    MilestoneEvent,
    MilestoneType,
    Period,
    Record,
    UpdateRequest,
    link_ids,
    link_value,
    normalize_key,
)
from linkspine.core.protocols import RecordPredicate, RecordRepository
from linkspine.core.report import RunReport, SkipReason

__all__ = [
    "AuthenticationError",
    "ConfigError",
    "CreateRequest",
    "ErrorCategory",
    "LinkSpineError",
    "MalformedKeyError",
    "MetricSample",
    "MilestoneEvent",
    "MilestoneType",
    "MissingConfigError",
    "Period",
    "RateLimitError",
    "Record",
    "RecordPredicate",
    "RecordRepository",
    "RunAbortedError",
    "RunReport",
    "SkipReason",
    "TransientError",
    "UpdateRequest",
    "ValidationError",
    "is_fatal",
    "is_retryable",
    "link_ids",
    "link_value",
    "normalize_key",
]
