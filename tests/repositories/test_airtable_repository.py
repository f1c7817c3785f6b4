"""Tests for AirtableRepository over ``httpx.MockTransport``."""

from __future__ import annotations

import json

import httpx
import pytest

from linkspine.core.errors import (
    AuthenticationError,
    AuthorizationError,
    MissingConfigError,
    NetworkError,
    RateLimitError,
    SourceNotFoundError,
    TimeoutError,
    ValidationError,
)
from linkspine.core.models import CreateRequest, UpdateRequest
from linkspine.core.protocols import RecordRepository
from linkspine.core.settings import LinkSpineSettings
from linkspine.repositories.airtable import REST_BATCH_LIMIT, AirtableRepository


# ── Helpers ──────────────────────────────────────────────────────────────


def _repo(handler) -> tuple[AirtableRepository, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def _record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(_record))
    return AirtableRepository("pat", "appBASE", client=client), seen


def _status(code: int, headers: dict[str, str] | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(code, json={"error": {"type": "X", "message": "nope"}}, headers=headers)

    return handler


# ── Select ───────────────────────────────────────────────────────────────


class TestSelect:
    @pytest.mark.asyncio
    async def test_paginates_with_offset(self):
        pages = {
            None: {"records": [{"id": "recA", "fields": {"v": "1"}}], "offset": "itr1"},
            "itr1": {"records": [{"id": "recB", "fields": {"v": "2"}}]},
        }

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=pages[request.url.params.get("offset")])

        repo, seen = _repo(handler)
        records = await repo.select("Builds", fields=["v"], view="Grid")

        assert [r.id for r in records] == ["recA", "recB"]
        assert len(seen) == 2
        first = seen[0]
        assert first.headers["Authorization"] == "Bearer pat"
        assert first.url.path == "/v0/appBASE/Builds"
        assert first.url.params.get_list("fields[]") == ["v"]
        assert first.url.params["view"] == "Grid"
        assert first.url.params["pageSize"] == "100"

    @pytest.mark.asyncio
    async def test_table_name_is_quoted(self):
        repo, seen = _repo(lambda r: httpx.Response(200, json={"records": []}))
        await repo.select("Grafana Data")
        assert seen[0].url.raw_path.startswith(b"/v0/appBASE/Grafana%20Data")

    @pytest.mark.asyncio
    async def test_where_filters_client_side(self):
        body = {"records": [{"id": "recA", "fields": {"v": "1"}}, {"id": "recB", "fields": {}}]}
        repo, _ = _repo(lambda r: httpx.Response(200, json=body))
        records = await repo.select("Builds", where=lambda r: not r.is_empty("v"))
        assert [r.id for r in records] == ["recA"]


# ── Writes ───────────────────────────────────────────────────────────────


class TestWrites:
    @pytest.mark.asyncio
    async def test_update_sends_patch(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            return httpx.Response(200, json={"records": [{"id": r["id"], "fields": r["fields"]} for r in body["records"]]})

        repo, seen = _repo(handler)
        updated = await repo.update_many("Builds", [UpdateRequest("recA", {"Linked Deploys": [{"id": "recB"}]})])

        assert seen[0].method == "PATCH"
        assert json.loads(seen[0].content) == {
            "records": [{"id": "recA", "fields": {"Linked Deploys": ["recB"]}}]
        }
        assert updated[0].id == "recA"

    @pytest.mark.asyncio
    async def test_link_cells_sent_as_record_ids(self):
        repo, seen = _repo(lambda r: httpx.Response(200, json={"records": []}))
        fields = {
            "Integrations": [{"id": "recI1"}, {"id": "recI2"}],
            "Linked Build": [],
            "Version Filter": "36.10",
            "Tags": ["a", "b"],
        }
        await repo.create_many("Builds", [CreateRequest(fields)])

        assert json.loads(seen[0].content)["records"][0]["fields"] == {
            "Integrations": ["recI1", "recI2"],
            "Linked Build": [],
            "Version Filter": "36.10",
            "Tags": ["a", "b"],
        }

    @pytest.mark.asyncio
    async def test_create_sends_post(self):
        repo, seen = _repo(lambda r: httpx.Response(200, json={"records": [{"id": "recN", "fields": {"x": 1}}]}))
        created = await repo.create_many("Reports", [CreateRequest({"x": 1})])
        assert seen[0].method == "POST"
        assert created[0].id == "recN"

    @pytest.mark.asyncio
    async def test_delete_uses_record_params(self):
        body = {"records": [{"id": "recA", "deleted": True}, {"id": "recB", "deleted": True}]}
        repo, seen = _repo(lambda r: httpx.Response(200, json=body))
        deleted = await repo.delete_many("Reports", ["recA", "recB"])
        assert seen[0].method == "DELETE"
        assert seen[0].url.params.get_list("records[]") == ["recA", "recB"]
        assert deleted == ["recA", "recB"]

    @pytest.mark.asyncio
    async def test_batch_limit_enforced_before_request(self):
        repo, seen = _repo(lambda r: httpx.Response(200, json={}))
        requests = [UpdateRequest(f"rec{i}", {}) for i in range(REST_BATCH_LIMIT + 1)]
        with pytest.raises(ValidationError):
            await repo.update_many("Builds", requests)
        assert seen == []


# ── Metadata ─────────────────────────────────────────────────────────────


class TestFieldChoices:
    SCHEMA = {
        "tables": [
            {
                "id": "tbl1",
                "name": "Builds",
                "fields": [
                    {"name": "Version Filter", "options": {"choices": [{"name": "36.10"}, {"name": "36.20"}]}},
                    {"name": "Notes"},
                ],
            }
        ]
    }

    @pytest.mark.asyncio
    async def test_choices(self):
        repo, seen = _repo(lambda r: httpx.Response(200, json=self.SCHEMA))
        assert await repo.field_choices("Builds", "Version Filter") == frozenset({"36.10", "36.20"})
        assert seen[0].url.path == "/v0/meta/bases/appBASE/tables"

    @pytest.mark.asyncio
    async def test_field_without_choices(self):
        repo, _ = _repo(lambda r: httpx.Response(200, json=self.SCHEMA))
        assert await repo.field_choices("Builds", "Notes") == frozenset()

    @pytest.mark.asyncio
    async def test_unknown_field_or_table(self):
        repo, _ = _repo(lambda r: httpx.Response(200, json=self.SCHEMA))
        with pytest.raises(SourceNotFoundError):
            await repo.field_choices("Builds", "Missing")
        with pytest.raises(SourceNotFoundError):
            await repo.field_choices("Missing", "Notes")


# ── Error mapping ────────────────────────────────────────────────────────


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_429_with_retry_after(self):
        repo, _ = _repo(_status(429, {"Retry-After": "30"}))
        with pytest.raises(RateLimitError) as exc_info:
            await repo.select("Builds")
        assert exc_info.value.retry_after == 30.0
        assert exc_info.value.context.http_status == 429
        assert exc_info.value.context.table == "Builds"

    @pytest.mark.asyncio
    async def test_429_without_hint(self):
        repo, _ = _repo(_status(429))
        with pytest.raises(RateLimitError) as exc_info:
            await repo.select("Builds")
        assert exc_info.value.retry_after is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "code,error",
        [
            (401, AuthenticationError),
            (403, AuthorizationError),
            (404, SourceNotFoundError),
            (422, ValidationError),
            (503, NetworkError),
        ],
    )
    async def test_status_codes(self, code, error):
        repo, _ = _repo(_status(code))
        with pytest.raises(error):
            await repo.select("Builds")

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        repo, _ = _repo(handler)
        with pytest.raises(TimeoutError):
            await repo.select("Builds")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        repo, _ = _repo(handler)
        with pytest.raises(NetworkError):
            await repo.select("Builds")


# ── Construction ─────────────────────────────────────────────────────────


class TestConstruction:
    def test_satisfies_protocol(self):
        repo, _ = _repo(lambda r: httpx.Response(200))
        assert isinstance(repo, RecordRepository)

    def test_from_settings_requires_credentials(self):
        with pytest.raises(MissingConfigError):
            AirtableRepository.from_settings(LinkSpineSettings(airtable_api_key=None, airtable_base_id=None))

    def test_from_settings_caps_batch_size(self):
        settings = LinkSpineSettings(airtable_api_key="pat", airtable_base_id="app", batch_size=50)
        assert AirtableRepository.from_settings(settings).max_batch_size == REST_BATCH_LIMIT

    @pytest.mark.asyncio
    async def test_context_manager_closes_owned_client(self):
        async with AirtableRepository("pat", "app") as repo:
            client = repo._client
        assert client.is_closed
