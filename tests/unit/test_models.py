"""Unit tests for core model helpers."""

from datetime import datetime

from techsync.core.datastores import is_retryable_status
from techsync.core.models import (
    GatewayAction, QueueItem, QueueStatus, ReconciliationReport, ReconciliationResult,
    SyncOperation, SyncRequest
)


class TestEnums:
    def test_delete_operations(self):
        assert SyncOperation.DELETE.is_delete
        assert SyncOperation.RECONCILE_DELETE.is_delete
        assert not SyncOperation.RECONCILE_INSERT.is_delete

    def test_only_updates_are_partial(self):
        assert [op for op in SyncOperation if op.is_partial] == [SyncOperation.UPDATE]

    def test_terminal_statuses(self):
        assert [s for s in QueueStatus if s.is_terminal] == [QueueStatus.SENT, QueueStatus.DEAD]

    def test_gateway_actions_map_to_queue_operations(self):
        assert GatewayAction.UPSERT.to_queue_operation() is SyncOperation.UPSERT
        assert GatewayAction.UPDATE.to_queue_operation() is SyncOperation.UPDATE
        assert GatewayAction.INSERT.to_queue_operation() is SyncOperation.INSERT
        assert GatewayAction.DELETE.to_queue_operation() is SyncOperation.DELETE


class TestQueueItem:
    def test_db_model_round_trip(self):
        item = QueueItem(
            table_name='projects',
            operation=SyncOperation.RECONCILE_INSERT,
            record_id='p1',
            payload={'id': 'p1', 'name': 'Pilot'},
            status=QueueStatus.FAILED,
            attempts=2,
            next_retry_at=datetime(2025, 1, 15, 12, 5),
            created_at=datetime(2025, 1, 15, 12, 0)
        )

        restored = item.to_db_model().to_domain_model()

        assert restored == item

    def test_to_dict_serializes_enums_and_dates(self):
        item = QueueItem(table_name='projects', operation=SyncOperation.DELETE, record_id='p1',
                         created_at=datetime(2025, 1, 15, 12, 0))

        data = item.to_dict()

        assert data['operation'] == 'DELETE'
        assert data['status'] == 'pending'
        assert data['created_at'] == '2025-01-15T12:00:00'
        assert data['next_retry_at'] is None


class TestSyncRequest:
    def test_queue_id_included_when_known(self):
        item = QueueItem(table_name='projects', operation=SyncOperation.DELETE, record_id='p1', id='q1')

        body = SyncRequest.from_queue_item(item).to_dict()

        assert body['operation'] == 'DELETE'
        assert body['id'] == body['sync_queue_id'] == 'q1'

    def test_direct_request_has_no_queue_id(self):
        body = SyncRequest('INSERT', 'projects', 'p1', {'id': 'p1'}).to_dict()

        assert 'sync_queue_id' not in body


class TestReconciliationReport:
    def test_success_and_totals(self):
        report = ReconciliationReport(results=[
            ReconciliationResult(table='projects', missing=1, queued_for_insert=1),
            ReconciliationResult(table='technologies', errors=['503'])
        ])

        data = report.to_dict()

        assert report.success is False
        assert data['missing'] == 1
        assert data['tables'][0]['in_sync'] is False
        assert report.for_table('technologies').errors == ['503']
        assert report.for_table('unknown') is None


class TestRetryableStatus:
    def test_classification(self):
        assert is_retryable_status(None)
        assert is_retryable_status(502)
        assert is_retryable_status(429)
        assert not is_retryable_status(400)
        assert not is_retryable_status(422)
