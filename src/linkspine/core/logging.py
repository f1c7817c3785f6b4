"""
Structured logging for linkspine runs.

Every synchronizer, dispatcher and aggregator logs through structlog with
dotted event names and key/value context, so a run can be followed in a
terminal or shipped as JSON to a log aggregator.

Architecture:
    ::

        configure_logging(level="INFO", json_format=False, service="linkspine")
            │
            ▼
        processor chain:
          1. merge_contextvars   (run=..., table=... from log_context)
          2. TimeStamper(iso) / add_log_level / add_logger_name
          3. service name
          4. JSONRenderer or ConsoleRenderer
            │
            ▼
        stdlib logger -> stderr (stdout stays free for ``--json`` output)

Event names:
    ``<area>.<what>`` such as ``link.peer.planned``, ``dispatch.batch_failed``,
    ``windows.period_skipped``, ``metrics.unmapped_category``.

Examples:
    >>> from linkspine.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG")
    >>> logger = get_logger(__name__)
    >>> logger.info("link.peer.planned", table="Builds", updates=12)

Tags:
    logging, structlog, observability, linkspine
"""

from __future__ import annotations

import logging
import sys
from contextlib import AbstractContextManager
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# httpx logs one INFO line per request; a paginated read would drown the run.
_NOISY_LIBRARIES = ("httpx", "httpcore")


def _service_name(service: str) -> Processor:
    def add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", service)
        return event_dict

    return add_service


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    service: str = "linkspine",
    add_timestamp: bool = True,
) -> None:
    """Configure structlog (and stdlib logging) for a CLI run.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        json_format: One JSON object per line instead of the console renderer
        service: Value of the ``service`` key on every event
        add_timestamp: Include an ISO timestamp
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _service_name(service),
    ]
    if add_timestamp:
        processors.insert(1, structlog.processors.TimeStamper(fmt="iso", utc=True))

    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level, force=True)
    for name in _NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str | None = None) -> Any:
    """Logger backed by the stdlib logger ``name`` (usually ``get_logger(__name__)``)."""
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name)


def log_context(**kwargs: Any) -> AbstractContextManager[None]:
    """Attach ``kwargs`` to every event logged inside the ``with`` block.

    The previous values are restored on exit, also when the block raises.

    Example:
        with log_context(run="builds-deploys"):
            logger.info("link.peer.planned")  # carries run="builds-deploys"
    """
    return structlog.contextvars.bound_contextvars(**kwargs)
