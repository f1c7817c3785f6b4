"""Airtable REST adapter.

Implements :class:`~linkspine.core.protocols.RecordRepository` over
``httpx.AsyncClient``.  HTTP failures are translated into the typed error
hierarchy so the dispatcher can tell a 429 (retry after the hint) from a 401
(stop the run) from a 422 (the batch is bad, move on).

Architecture:
    ::

        select      GET    /v0/{base}/{table}?pageSize=100&offset=...
        update_many PATCH  /v0/{base}/{table}     {"records": [{id, fields}]}
        create_many POST   /v0/{base}/{table}     {"records": [{fields}]}
        delete_many DELETE /v0/{base}/{table}?records[]=recA&records[]=recB
        field_choices GET  /v0/meta/bases/{base}/tables

        429 → RateLimitError(retry_after=Retry-After)   401 → AuthenticationError
        403 → AuthorizationError    404 → SourceNotFoundError
        422 → ValidationError       5xx → NetworkError
        httpx.TimeoutException → TimeoutError
        httpx.TransportError   → NetworkError

Example::

    async with AirtableRepository(api_key, base_id) as repo:
        builds = await repo.select("Builds", fields=["Build Version (Unified)"])

Tags:
    repository, airtable, rest, httpx, linkspine
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import quote

import httpx

from linkspine.core.errors import (
    AuthenticationError,
    AuthorizationError,
    LinkSpineError,
    NetworkError,
    RateLimitError,
    SourceError,
    SourceNotFoundError,
    TimeoutError,
    ValidationError,
)
from linkspine.core.logging import get_logger
from linkspine.core.models import CreateRequest, Record, UpdateRequest
from linkspine.core.protocols import RecordPredicate
from linkspine.core.settings import LinkSpineSettings

logger = get_logger(__name__)

REST_BATCH_LIMIT = 10
PAGE_SIZE = 100


class AirtableRepository:
    """Record store backed by the Airtable REST API."""

    def __init__(
        self,
        api_key: str,
        base_id: str,
        *,
        api_url: str = "https://api.airtable.com/v0",
        timeout: float = 30.0,
        max_batch_size: int = REST_BATCH_LIMIT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_id = base_id
        self.max_batch_size = max_batch_size
        self._api_url = api_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    @classmethod
    def from_settings(cls, settings: LinkSpineSettings) -> AirtableRepository:
        """Build from settings; raises ``MissingConfigError`` if unconfigured."""
        settings.require("airtable_api_key", "airtable_base_id")
        return cls(
            settings.airtable_api_key,
            settings.airtable_base_id,
            api_url=settings.airtable_api_url,
            timeout=settings.request_timeout,
            max_batch_size=min(settings.batch_size or REST_BATCH_LIMIT, REST_BATCH_LIMIT),
        )

    async def __aenter__(self) -> AirtableRepository:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ── RecordRepository ────────────────────────────────────────────

    async def select(
        self,
        table: str,
        *,
        fields: Sequence[str] | None = None,
        where: RecordPredicate | None = None,
        view: str | None = None,
    ) -> list[Record]:
        params: list[tuple[str, str]] = [("pageSize", str(PAGE_SIZE))]
        if view:
            params.append(("view", view))
        for name in fields or ():
            params.append(("fields[]", name))

        records: list[Record] = []
        offset: str | None = None
        while True:
            page_params = params + ([("offset", offset)] if offset else [])
            payload = await self._request("GET", self._table_url(table), table, params=page_params)
            records.extend(Record.from_api(item) for item in payload.get("records", []))
            offset = payload.get("offset")
            if not offset:
                break

        logger.debug("airtable.select", table=table, records=len(records))
        if where is not None:
            records = [r for r in records if where(r)]
        return records

    async def update_many(
        self, table: str, requests: Sequence[UpdateRequest]
    ) -> list[Record]:
        self._check_size("update_many", table, len(requests))
        payload = await self._request(
            "PATCH",
            self._table_url(table),
            table,
            json={"records": [_rest_payload(req) for req in requests]},
        )
        return [Record.from_api(item) for item in payload.get("records", [])]

    async def create_many(
        self, table: str, requests: Sequence[CreateRequest]
    ) -> list[Record]:
        self._check_size("create_many", table, len(requests))
        payload = await self._request(
            "POST",
            self._table_url(table),
            table,
            json={"records": [_rest_payload(req) for req in requests]},
        )
        return [Record.from_api(item) for item in payload.get("records", [])]

    async def delete_many(self, table: str, ids: Sequence[str]) -> list[str]:
        self._check_size("delete_many", table, len(ids))
        payload = await self._request(
            "DELETE",
            self._table_url(table),
            table,
            params=[("records[]", record_id) for record_id in ids],
        )
        return [item["id"] for item in payload.get("records", []) if item.get("deleted")]

    async def field_choices(self, table: str, field: str) -> frozenset[str]:
        url = f"{self._api_url}/meta/bases/{self.base_id}/tables"
        payload = await self._request("GET", url, table)
        for schema in payload.get("tables", []):
            if table not in (schema.get("name"), schema.get("id")):
                continue
            for column in schema.get("fields", []):
                if field in (column.get("name"), column.get("id")):
                    choices = (column.get("options") or {}).get("choices") or []
                    return frozenset(choice["name"] for choice in choices)
            raise SourceNotFoundError(f"Field {field!r} not found").with_context(table=table)
        raise SourceNotFoundError(f"Table {table!r} not found").with_context(table=table)

    # ── Internals ───────────────────────────────────────────────────

    def _table_url(self, table: str) -> str:
        return f"{self._api_url}/{self.base_id}/{quote(table, safe='')}"

    def _check_size(self, operation: str, table: str, size: int) -> None:
        if size > self.max_batch_size:
            raise ValidationError(
                f"{operation} accepts at most {self.max_batch_size} records, got {size}",
                constraint="max_batch_size",
            ).with_context(table=table, operation=operation)

    async def _request(
        self,
        method: str,
        url: str,
        table: str,
        *,
        params: list[tuple[str, str]] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(
                method, url, params=params, json=json, headers=self._headers
            )
        except httpx.TimeoutException as e:
            raise TimeoutError(f"{method} {table} timed out", cause=e).with_context(
                table=table, url=url
            ) from e
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {table} failed: {e}", cause=e).with_context(
                table=table, url=url
            ) from e

        if response.is_success:
            return response.json()
        raise _error_for(response, method, table)


def _rest_cell(value: Any) -> Any:
    """Link cells (``[{"id": ...}]``) are written to the REST API as plain ids."""
    if isinstance(value, list) and value and all(
        isinstance(item, Mapping) and set(item) == {"id"} for item in value
    ):
        return [item["id"] for item in value]
    return value


def _rest_payload(request: UpdateRequest | CreateRequest) -> dict[str, Any]:
    payload = request.to_payload()
    payload["fields"] = {name: _rest_cell(value) for name, value in payload["fields"].items()}
    return payload


def _error_for(response: httpx.Response, method: str, table: str) -> LinkSpineError:
    """Translate a failed response into the error hierarchy."""
    status = response.status_code
    try:
        body = response.json()
        detail = body.get("error", body)
        if isinstance(detail, dict):
            detail = detail.get("message") or detail.get("type") or str(detail)
    except ValueError:
        detail = response.text

    message = f"{method} {table} returned HTTP {status}: {detail}"
    error: LinkSpineError
    if status == 429:
        error = RateLimitError(message, retry_after=retry_after_seconds(response))
    elif status == 401:
        error = AuthenticationError(message)
    elif status == 403:
        error = AuthorizationError(message)
    elif status == 404:
        error = SourceNotFoundError(message)
    elif status == 422:
        error = ValidationError(message)
    elif status >= 500:
        error = NetworkError(message)
    else:
        error = SourceError(message)
    return error.with_context(table=table, url=str(response.request.url), http_status=status)


def retry_after_seconds(response: httpx.Response) -> float | None:
    """Seconds from a ``Retry-After`` header, or ``None`` when absent."""
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None
