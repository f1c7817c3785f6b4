"""Push milestone periods to the metrics webhook.

Each period becomes one JSON POST; the receiving side queries its commit
feed for the window and writes the counts back into the feed table that
:class:`~linkspine.windows.metrics.MetricAggregator` reads.

WHY
───
The feed is rate limited per request, so runs are paged: a run covers
``limit`` versions starting at ``start`` and reports the version to resume
from.  Delivery is fire-and-forget per period: a failed period is retried
on its own and, once retries are exhausted, counted and left behind
without stopping the others.

ARCHITECTURE
────────────
::

    PeriodPublisher.publish({"36.10": [Period, ...], ...})
      └─ for each period (sequential)
           RetryContext(ExponentialBackoff).run_async(_post)
             POST webhook_url
             {versionKey, periodName, streamIdentifier, startDate, endDate}
      └─ PublishReport(sent, failed, errors)
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any

import httpx

from linkspine.core.errors import (
    LinkSpineError,
    MissingConfigError,
    NetworkError,
    RateLimitError,
    SourceError,
    TimeoutError,
)
from linkspine.core.logging import get_logger
from linkspine.core.models import Period
from linkspine.core.settings import LinkSpineSettings
from linkspine.execution.retry import ExponentialBackoff, RetryContext, RetryStrategy, Sleep
from linkspine.repositories.airtable import retry_after_seconds
from linkspine.windows.versions import sort_versions

logger = get_logger(__name__)


def iso_timestamp(day: date) -> str:
    """Midnight UTC of ``day`` as ``YYYY-MM-DDT00:00:00Z``."""
    moment = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return moment.isoformat().replace("+00:00", "Z")


def period_payload(version: str, period: Period, stream_template: str) -> dict[str, str]:
    return {
        "versionKey": version,
        "periodName": period.name,
        "streamIdentifier": stream_template.format(version=version),
        "startDate": iso_timestamp(period.start),
        "endDate": iso_timestamp(period.end),
    }


def select_versions(
    versions: Iterable[str],
    start: str | None = None,
    limit: int | None = None,
) -> tuple[list[str], str | None]:
    """Page through ``versions`` in numeric order.

    Returns the page and the version the next page starts at (``None`` when
    this page reaches the end).  An unknown ``start`` raises ``ValueError``.
    """
    ordered = sort_versions(versions)
    begin = 0
    if start is not None:
        try:
            begin = ordered.index(start.strip())
        except ValueError:
            raise ValueError(f"Version {start!r} not found") from None
    end = len(ordered) if limit is None else min(begin + limit, len(ordered))
    resume = ordered[end] if end < len(ordered) else None
    return ordered[begin:end], resume


@dataclass
class PublishReport:
    sent: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    versions: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "sent": self.sent,
            "failed": self.failed,
            "errors": list(self.errors),
            "versions": list(self.versions),
        }


class PeriodPublisher:
    """Posts period payloads to a webhook, one request per period."""

    def __init__(
        self,
        webhook_url: str,
        *,
        stream_template: str = "//Fortnite/Release-{version}",
        client: httpx.AsyncClient | None = None,
        retry: RetryStrategy | None = None,
        timeout: float = 30.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.webhook_url = webhook_url
        self.stream_template = stream_template
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None
        self._retry = retry or ExponentialBackoff(max_retries=3, base_delay=1.0)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: LinkSpineSettings, **kwargs: Any) -> PeriodPublisher:
        if not settings.metrics_webhook_url:
            raise MissingConfigError("LINKSPINE_METRICS_WEBHOOK_URL")
        return cls(
            settings.metrics_webhook_url,
            stream_template=settings.stream_template,
            timeout=settings.request_timeout,
            **kwargs,
        )

    async def __aenter__(self) -> PeriodPublisher:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, payload: dict[str, str]) -> None:
        try:
            response = await self._client.post(self.webhook_url, json=payload)
        except httpx.TimeoutException as e:
            raise TimeoutError("Webhook request timed out", cause=e) from e
        except httpx.TransportError as e:
            raise NetworkError(f"Webhook request failed: {e}", cause=e) from e

        if response.is_success:
            return
        status = response.status_code
        message = f"Webhook returned HTTP {status}"
        error: LinkSpineError
        if status == 429:
            error = RateLimitError(message, retry_after=retry_after_seconds(response))
        elif status >= 500:
            error = NetworkError(message)
        else:
            error = SourceError(message)
        raise error.with_context(url=self.webhook_url, http_status=status)

    async def publish_period(self, version: str, period: Period) -> None:
        payload = period_payload(version, period, self.stream_template)
        ctx = RetryContext(
            self._retry,
            on_retry=lambda attempt, e, delay: logger.warning(
                "publish.retry",
                version=version,
                period=period.name,
                attempt=attempt,
                delay=delay,
                error=str(e),
            ),
            sleep=self._sleep,
        )
        await ctx.run_async(self._post, payload)

    async def publish(self, windows: Mapping[str, Sequence[Period]]) -> PublishReport:
        """Send every period of every version in ``windows``."""
        report = PublishReport()
        for version, periods in windows.items():
            report.versions.append(version)
            if not periods:
                logger.info("publish.no_periods", version=version)
                continue
            for period in periods:
                try:
                    await self.publish_period(version, period)
                except LinkSpineError as e:
                    report.failed += 1
                    report.errors.append(f"{version} {period.name}: {e}")
                    logger.error("publish.period_failed", version=version, period=period.name, error=str(e))
                    continue
                report.sent += 1
                logger.debug("publish.period_sent", version=version, period=period.name)

        logger.info("publish.complete", versions=len(report.versions), sent=report.sent, failed=report.failed)
        return report
