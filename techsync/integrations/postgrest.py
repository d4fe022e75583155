"""
PostgREST (Supabase REST) integration for TechSync
Reads identifier sets and records, and applies sync requests over HTTP
"""

import json
from typing import Any, Dict, Iterable, List, Optional, Set

import httpx

from techsync.config.settings import EndpointSettings
from techsync.core.datastores import (
    RecordId, SourceDatastore, TargetDatastore, is_retryable_status
)
from techsync.core.exceptions import DatastoreError
from techsync.core.models import DeliveryOutcome, SyncOperation, SyncRequest


USER_AGENT = "TechSync/1.0"
MAX_ERROR_BODY = 500
IN_FILTER_CHUNK = 100


def _in_filter(record_ids: List[RecordId]) -> str:
    """PostgREST `in.(...)` filter, strings double-quoted"""
    values = []
    for record_id in record_ids:
        if isinstance(record_id, int):
            values.append(str(record_id))
        else:
            escaped = str(record_id).replace('\\', '\\\\').replace('"', '\\"')
            values.append(f'"{escaped}"')
    return f"in.({','.join(values)})"


def _error_detail(response: httpx.Response) -> str:
    return f"{response.status_code}: {response.text[:MAX_ERROR_BODY]}"


class PostgrestDatastore(SourceDatastore):
    """Row reads against a Supabase/PostgREST endpoint"""

    def __init__(self, settings: EndpointSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__()
        if not settings.url:
            raise ValueError("PostgREST datastore requires a url")
        self.settings = settings
        self._transport = transport

    def open_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.settings.url}/rest/v1",
            headers=self._headers(),
            timeout=self.settings.timeout,
            verify=self.settings.verify_ssl,
            transport=self._transport
        )

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": USER_AGENT
        }
        if self.settings.key:
            headers["apikey"] = self.settings.key
            headers["Authorization"] = f"Bearer {self.settings.key}"
        return headers

    async def _get(self, client: httpx.AsyncClient, table: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            response = await client.get(f"/{table}", params=params)
        except httpx.HTTPError as e:
            raise DatastoreError(f"Error fetching {table}: {e}", table=table) from e

        if response.status_code >= 400:
            raise DatastoreError(f"Error fetching {table}: {_error_detail(response)}", table=table)

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise DatastoreError(f"Invalid JSON from {table}: {e}", table=table) from e
        if not isinstance(data, list):
            raise DatastoreError(f"Unexpected response shape from {table}", table=table)
        return data

    async def select_ids(self, table: str) -> Set[RecordId]:
        ids: Set[RecordId] = set()
        page_size = self.settings.page_size
        offset = 0

        async with self.open_client() as client:
            while True:
                rows = await self._get(client, table, {
                    "select": "id",
                    "order": "id.asc",
                    "limit": page_size,
                    "offset": offset
                })
                ids.update(row['id'] for row in rows if row.get('id') is not None)
                if len(rows) < page_size:
                    break
                offset += page_size

        self.logger.debug(f"Fetched {len(ids)} ids from {table}")
        return ids

    async def select_by_id(self, table: str, record_id: RecordId) -> Optional[Dict[str, Any]]:
        async with self.open_client() as client:
            rows = await self._get(client, table, {"select": "*", "id": f"eq.{record_id}"})
        return rows[0] if rows else None

    async def select_by_ids(self, table: str, record_ids: Iterable[RecordId]) -> List[Dict[str, Any]]:
        record_ids = list(record_ids)
        records: List[Dict[str, Any]] = []

        async with self.open_client() as client:
            for start in range(0, len(record_ids), IN_FILTER_CHUNK):
                chunk = record_ids[start:start + IN_FILTER_CHUNK]
                records.extend(await self._get(client, table, {"select": "*", "id": _in_filter(chunk)}))

        return records


class PostgrestSyncTarget(TargetDatastore):
    """
    Applies sync requests directly as PostgREST writes.

    Inserts and upserts are POSTs with merge-duplicates on `id`; deletes are
    DELETE by key. Updates are PATCH by key, and a PATCH that matched no row
    is retried as an upsert, so every write has upsert semantics and
    replaying a request leaves the same state.
    """

    def __init__(self, settings: EndpointSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__()
        self.settings = settings
        self.reader = PostgrestDatastore(settings, transport=transport)

    async def select_ids(self, table: str) -> Set[RecordId]:
        return await self.reader.select_ids(table)

    async def deliver(self, request: SyncRequest) -> DeliveryOutcome:
        operation = SyncOperation(request.operation)
        table = request.table_name
        key_filter = {"id": f"eq.{request.record_id}"}

        try:
            async with self.reader.open_client() as client:
                if operation.is_delete:
                    response = await client.delete(f"/{table}", params=key_filter)
                elif operation.is_partial:
                    response = await self._patch_or_upsert(client, request, key_filter)
                else:
                    response = await self._upsert(client, table, request.payload)
        except httpx.HTTPError as e:
            return DeliveryOutcome(success=False, error=f"Transport error: {e}", retryable=True)

        if response.is_success:
            return DeliveryOutcome(success=True, status_code=response.status_code)

        return DeliveryOutcome(
            success=False,
            status_code=response.status_code,
            error=f"Target responded with {_error_detail(response)}",
            retryable=is_retryable_status(response.status_code)
        )

    async def _upsert(self, client: httpx.AsyncClient, table: str, payload: Dict[str, Any]) -> httpx.Response:
        return await client.post(
            f"/{table}", params={"on_conflict": "id"}, json=payload,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"}
        )

    async def _patch_or_upsert(self, client: httpx.AsyncClient, request: SyncRequest,
                               key_filter: Dict[str, str]) -> httpx.Response:
        table = request.table_name
        row = {**request.payload, 'id': request.record_id}
        changes = {k: v for k, v in row.items() if k != 'id'}
        if not changes:
            return await self._upsert(client, table, row)

        response = await client.patch(
            f"/{table}", params=key_filter, json=changes,
            headers={"Prefer": "return=representation"}
        )
        if not response.is_success:
            return response

        try:
            updated = response.json()
        except json.JSONDecodeError:
            return response

        if updated == []:
            # PATCH matched nothing: the row is not in the target yet
            self.logger.debug(f"{table}/{request.record_id} absent on update, upserting")
            return await self._upsert(client, table, row)
        return response


class HttpSyncTarget(TargetDatastore):
    """
    Posts sync requests to the target's sync endpoint.

    The endpoint is expected to apply INSERT, UPDATE and UPSERT with upsert
    semantics and DELETE as a no-op when the row is absent.
    """

    def __init__(self, settings: EndpointSettings, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__()
        if not settings.sync_url:
            raise ValueError("HTTP sync target requires target.sync_url")
        self.settings = settings
        self._transport = transport
        self.reader = PostgrestDatastore(settings, transport=transport) if settings.url else None

    async def select_ids(self, table: str) -> Set[RecordId]:
        if self.reader is None:
            raise DatastoreError("target.url is not configured, cannot list target ids", table=table)
        return await self.reader.select_ids(table)

    async def deliver(self, request: SyncRequest) -> DeliveryOutcome:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT
        }
        if self.settings.sync_secret:
            headers["X-Sync-Secret"] = self.settings.sync_secret

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout,
                verify=self.settings.verify_ssl,
                transport=self._transport
            ) as client:
                response = await client.post(self.settings.sync_url, json=request.to_dict(), headers=headers)
        except httpx.HTTPError as e:
            return DeliveryOutcome(success=False, error=f"Transport error: {e}", retryable=True)

        if response.is_success:
            return DeliveryOutcome(success=True, status_code=response.status_code)

        return DeliveryOutcome(
            success=False,
            status_code=response.status_code,
            error=f"Target responded with {_error_detail(response)}",
            retryable=is_retryable_status(response.status_code)
        )


def build_source(settings: EndpointSettings,
                 transport: Optional[httpx.AsyncBaseTransport] = None) -> SourceDatastore:
    return PostgrestDatastore(settings, transport=transport)


def build_target(settings: EndpointSettings,
                 transport: Optional[httpx.AsyncBaseTransport] = None) -> TargetDatastore:
    """Sync endpoint when configured, direct PostgREST writes otherwise"""
    if settings.sync_url:
        return HttpSyncTarget(settings, transport=transport)
    return PostgrestSyncTarget(settings, transport=transport)
