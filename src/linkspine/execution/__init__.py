"""Execution: retry strategies and the sequential batch dispatcher.

::

    synchronizer / aggregator
      │  list[UpdateRequest]
      ▼
    BatchUpdateDispatcher ── chunk ≤ max_batch_size ──► RecordRepository
      └── RetryStrategy (ConstantBackoff | ExponentialBackoff | NoRetry)
"""

from linkspine.execution.dispatcher import (
    BatchOutcome,
    BatchUpdateDispatcher,
    DispatchResult,
    DispatchState,
    chunked,
)
from linkspine.execution.retry import (
    ConstantBackoff,
    ExponentialBackoff,
    NoRetry,
    RetryContext,
    RetryStrategy,
)

__all__ = [
    "BatchOutcome",
    "BatchUpdateDispatcher",
    "ConstantBackoff",
    "DispatchResult",
    "DispatchState",
    "ExponentialBackoff",
    "NoRetry",
    "RetryContext",
    "RetryStrategy",
    "chunked",
]
