"""Settings for linkspine runs.

All values come from ``LINKSPINE_*`` environment variables or a ``.env``
file.  Nothing is hard-coded at call sites: the store's batch limit, the
retry budget, the metric category mapping and the webhook target all live
here so a run can be re-pointed without editing code.

Examples:
    >>> from linkspine.core.settings import LinkSpineSettings
    >>> settings = LinkSpineSettings(airtable_base_id="appXXXX")
    >>> settings.max_retries
    3

Tags:
    settings, configuration, pydantic, environment, linkspine
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from linkspine.core.errors import MissingConfigError

DEFAULT_METRIC_FIELD_MAP: dict[str, str] = {
    "Before Hard Lock": "Commits: Pre-Hard Lock",
    "Hard Lock -> Pencils Down": "Commits: Hard Lock → Pencils Down",
    "Pencils Down -> Cert Sub": "Commits: Pencils Down → Cert Sub",
    "Cert Sub -> Live": "Commits: Cert Sub → Live",
    "Live+": "Commits: Live+",
}


class LinkSpineSettings(BaseSettings):
    """linkspine configuration.

    Fields
    ──────
    airtable_api_key     : Personal access token for the REST API
    airtable_base_id     : Base holding the Builds / Integrations tables
    airtable_api_url     : REST root (override for proxies and tests)
    batch_size           : Override of the repository's batch limit
    max_retries          : Retries per batch after a transient failure
    default_retry_after  : Backoff (s) when a 429 carries no hint
    request_timeout      : Per-request timeout (s)
    log_level/log_format : structlog configuration
    metrics_webhook_url  : Push target for milestone periods
    stream_template      : Stream identifier, ``{version}`` substituted
    hotfix_marker        : Substring that marks a hotfix version
    metric_field_map     : Metric category -> destination field
    """

    model_config = SettingsConfigDict(
        env_prefix="LINKSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Record store ─────────────────────────────────────────────
    airtable_api_key: str | None = Field(default=None)
    airtable_base_id: str | None = Field(default=None)
    airtable_api_url: str = Field(default="https://api.airtable.com/v0")

    # ── Dispatch ─────────────────────────────────────────────────
    batch_size: int | None = Field(default=None, ge=1)
    max_retries: int = Field(default=3, ge=0)
    default_retry_after: float = Field(default=30.0, ge=0)
    request_timeout: float = Field(default=30.0, gt=0)

    # ── Observability ────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    # ── Windows / metrics ────────────────────────────────────────
    metrics_webhook_url: str | None = Field(default=None)
    stream_template: str = Field(default="//Fortnite/Release-{version}")
    hotfix_marker: str = Field(default="HF")
    metric_field_map: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_METRIC_FIELD_MAP)
    )

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()

    def require(self, *names: str) -> None:
        """Raise :class:`MissingConfigError` for the first unset field."""
        for name in names:
            if not getattr(self, name, None):
                raise MissingConfigError(f"LINKSPINE_{name.upper()}")


@lru_cache(maxsize=1)
def get_settings() -> LinkSpineSettings:
    """Return the process-wide settings (cached)."""
    return LinkSpineSettings()
