"""Tests for linkspine.core.settings.

Covers:
- Defaults
- ``LINKSPINE_*`` environment overrides
- Validation of log format / batch size
- ``require`` for mandatory values
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError as PydanticValidationError

from linkspine.core.errors import MissingConfigError
from linkspine.core.settings import DEFAULT_METRIC_FIELD_MAP, LinkSpineSettings, get_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for name in ("AIRTABLE_API_KEY", "AIRTABLE_BASE_ID", "BATCH_SIZE", "LOG_FORMAT", "METRICS_WEBHOOK_URL"):
        monkeypatch.delenv(f"LINKSPINE_{name}", raising=False)
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    def test_dispatch_defaults(self):
        s = LinkSpineSettings()
        assert s.max_retries == 3
        assert s.default_retry_after == 30.0
        assert s.batch_size is None

    def test_windows_defaults(self):
        s = LinkSpineSettings()
        assert s.hotfix_marker == "HF"
        assert s.stream_template.format(version="36.10") == "//Fortnite/Release-36.10"

    def test_metric_field_map_default_is_a_copy(self):
        s = LinkSpineSettings()
        assert s.metric_field_map == DEFAULT_METRIC_FIELD_MAP
        s.metric_field_map["extra"] = "x"
        assert "extra" not in DEFAULT_METRIC_FIELD_MAP


class TestEnvOverride:
    def test_base_id_from_env(self, monkeypatch):
        monkeypatch.setenv("LINKSPINE_AIRTABLE_BASE_ID", "appXYZ")
        assert LinkSpineSettings().airtable_base_id == "appXYZ"

    def test_batch_size_from_env(self, monkeypatch):
        monkeypatch.setenv("LINKSPINE_BATCH_SIZE", "5")
        assert LinkSpineSettings().batch_size == 5

    def test_field_map_from_env_json(self, monkeypatch):
        monkeypatch.setenv("LINKSPINE_METRIC_FIELD_MAP", '{"Live+": "Commits: Live+"}')
        assert LinkSpineSettings().metric_field_map == {"Live+": "Commits: Live+"}

    def test_dotenv_file(self, tmp_path):
        (tmp_path / ".env").write_text("LINKSPINE_AIRTABLE_BASE_ID=appFromFile\n")
        assert LinkSpineSettings().airtable_base_id == "appFromFile"


class TestValidation:
    def test_log_format_normalised(self):
        assert LinkSpineSettings(log_format="JSON").log_format == "json"

    def test_log_format_rejected(self):
        with pytest.raises(PydanticValidationError):
            LinkSpineSettings(log_format="xml")

    def test_batch_size_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            LinkSpineSettings(batch_size=0)

    def test_log_level_uppercased(self):
        assert LinkSpineSettings(log_level="debug").log_level == "DEBUG"


class TestRequire:
    def test_missing_raises_with_env_name(self):
        with pytest.raises(MissingConfigError) as exc_info:
            LinkSpineSettings().require("airtable_api_key")
        assert exc_info.value.key == "LINKSPINE_AIRTABLE_API_KEY"

    def test_present_passes(self):
        LinkSpineSettings(airtable_api_key="pat", airtable_base_id="app").require(
            "airtable_api_key", "airtable_base_id"
        )


def test_get_settings_is_cached():
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()
