"""
Pytest configuration and fixtures for TechSync tests
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set

import pytest

from techsync.core.database import DatabaseService
from techsync.core.datastores import RecordId, SourceDatastore, TargetDatastore
from techsync.core.exceptions import DatastoreError
from techsync.core.models import DeliveryOutcome, SyncOperation, SyncRequest
from techsync.core.queue_store import SyncQueueStore
from techsync.core.record_adapter import RecordAdapter


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests that exercise several components together")


class FakeClock:
    """Controllable replacement for utc_now"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 1, 15, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class FakeSource(SourceDatastore):
    """In-memory source keyed by table, then raw id"""

    def __init__(self, tables: Optional[Dict[str, Dict[RecordId, Dict[str, Any]]]] = None):
        super().__init__()
        self.tables = tables or {}
        self.failing_tables: Set[str] = set()
        self.fetch_calls: List[List[RecordId]] = []

    def add(self, table: str, *records: Dict[str, Any]):
        for record in records:
            self.tables.setdefault(table, {})[record['id']] = dict(record)

    def _check(self, table: str):
        if table in self.failing_tables:
            raise DatastoreError(f"Error fetching {table}: 503: source unavailable", table=table)

    async def select_ids(self, table: str) -> Set[RecordId]:
        self._check(table)
        return set(self.tables.get(table, {}))

    async def select_by_id(self, table: str, record_id: RecordId) -> Optional[Dict[str, Any]]:
        self._check(table)
        record = self.tables.get(table, {}).get(record_id)
        return dict(record) if record else None

    async def select_by_ids(self, table: str, record_ids: Iterable[RecordId]) -> List[Dict[str, Any]]:
        self._check(table)
        record_ids = list(record_ids)
        self.fetch_calls.append(record_ids)
        rows = self.tables.get(table, {})
        return [dict(rows[record_id]) for record_id in record_ids if record_id in rows]


class FakeTarget(TargetDatastore):
    """
    In-memory target that applies requests the way the real one does.

    Scripted outcomes are consumed in order before writes start succeeding,
    so a test can describe e.g. one 503 followed by success.
    """

    def __init__(self):
        super().__init__()
        self.rows: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.requests: List[SyncRequest] = []
        self.scripted: List[DeliveryOutcome] = []
        self.failing_tables: Set[str] = set()
        self.upserted_updates: List[str] = []

    def add(self, table: str, *record_ids: str):
        for record_id in record_ids:
            self.rows.setdefault(table, {})[str(record_id)] = {'id': str(record_id)}

    def fail_next(self, *outcomes: DeliveryOutcome):
        self.scripted.extend(outcomes)

    async def select_ids(self, table: str) -> Set[RecordId]:
        if table in self.failing_tables:
            raise DatastoreError(f"Error fetching {table}: 500: target unavailable", table=table)
        return set(self.rows.get(table, {}))

    async def deliver(self, request: SyncRequest) -> DeliveryOutcome:
        self.requests.append(request)
        if self.scripted:
            return self.scripted.pop(0)

        table = self.rows.setdefault(request.table_name, {})
        operation = SyncOperation(request.operation)
        if operation.is_delete:
            table.pop(request.record_id, None)
            return DeliveryOutcome(success=True, status_code=204)

        # Same as PostgrestSyncTarget: merge-duplicates upsert for full
        # records, PATCH for updates with an upsert when no row matched
        existing = table.get(request.record_id)
        if operation.is_partial and existing is None:
            self.upserted_updates.append(request.record_id)
        table[request.record_id] = {**(existing or {}), **request.payload, 'id': request.record_id}
        return DeliveryOutcome(success=True, status_code=200)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def db():
    """Fresh in-memory queue database per test"""
    service = DatabaseService(TEST_DATABASE_URL)
    await service.create_tables()
    yield service
    await service.close()


@pytest.fixture
def adapter():
    return RecordAdapter()


@pytest.fixture
def queue_store(db, adapter, clock):
    return SyncQueueStore(db, adapter=adapter, clock=clock)


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def target():
    return FakeTarget()


@pytest.fixture
def technology():
    """A complete technologies row as read from the source"""
    return {
        'id': '5b1f0c8e-2d7a-4c1b-9a3e-1f2d3c4b5a60',
        'nombre': 'Membrane bioreactor',
        'trl': 7,
        'tipos': ['Tratamiento'],
        'quality_score': 82,
        'review_status': 'approved',
        'reviewer_id': 'a1b2',
        'sector_id': 'AGUA'
    }
