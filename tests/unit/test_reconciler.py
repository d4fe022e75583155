"""Unit tests for the reconciler."""

import copy

import pytest

from techsync.core.models import QueueStatus, SyncOperation
from techsync.core.reconciler import DEFAULT_TABLE_ORDER, Reconciler
from techsync.core.record_adapter import integer_to_uuid


def _case(record_id, title=None):
    return {'id': record_id, 'titulo': title or f"Caso {record_id}"}


@pytest.fixture
def reconciler(source, target, queue_store):
    return Reconciler(source, target, queue_store)


async def _queued(queue_store, table=None):
    items = await queue_store.list_items(table=table, limit=1000)
    return sorted(items, key=lambda item: (item.operation.value, item.record_id))


class TestReconcileTable:
    @pytest.mark.asyncio
    async def test_missing_and_orphaned_records_are_queued(self, reconciler, source, target, queue_store):
        source.add('casos_de_estudio', *[_case(str(n)) for n in range(1, 6)])
        target.add('casos_de_estudio', '1', '2', '4', '6', '7')

        result = await reconciler.reconcile_table('casos_de_estudio')

        assert result.total_source == 5
        assert result.total_target == 5
        assert result.missing == 2
        assert result.orphaned == 2
        assert result.queued_for_insert == 2
        assert result.queued_for_delete == 2
        assert result.errors == []

        queued = await _queued(queue_store)
        assert [(item.operation, item.record_id) for item in queued] == [
            (SyncOperation.RECONCILE_DELETE, '6'),
            (SyncOperation.RECONCILE_DELETE, '7'),
            (SyncOperation.RECONCILE_INSERT, '3'),
            (SyncOperation.RECONCILE_INSERT, '5'),
        ]
        assert queued[0].payload == {'id': '6', 'reason': 'orphaned'}
        assert queued[2].payload == _case('3')
        assert all(item.status is QueueStatus.PENDING for item in queued)

    @pytest.mark.asyncio
    async def test_tables_in_sync_queue_nothing(self, reconciler, source, target, queue_store):
        source.add('casos_de_estudio', _case('a'), _case('b'))
        target.add('casos_de_estudio', 'a', 'b')

        result = await reconciler.reconcile_table('casos_de_estudio')

        assert result.in_sync
        assert result.queued == 0
        assert await queue_store.list_items() == []

    @pytest.mark.asyncio
    async def test_integer_keys_are_compared_in_target_id_space(self, reconciler, source, target, queue_store):
        source.add('taxonomy_tipos', *[{'id': n, 'nombre': f"Tipo {n}"} for n in (1, 2, 3)])
        target.add('taxonomy_tipos', integer_to_uuid('taxonomy_tipos', 1), integer_to_uuid('taxonomy_tipos', 2))

        result = await reconciler.reconcile_table('taxonomy_tipos')

        assert (result.missing, result.orphaned) == (1, 0)
        [item] = await _queued(queue_store)
        assert item.record_id == integer_to_uuid('taxonomy_tipos', 3)
        assert item.payload == {'id': item.record_id, 'nombre': 'Tipo 3'}

    @pytest.mark.asyncio
    async def test_excluded_fields_are_stripped_from_queued_inserts(self, reconciler, source, queue_store, technology):
        source.add('technologies', technology)

        await reconciler.reconcile_table('technologies')

        [item] = await _queued(queue_store)
        assert 'quality_score' not in item.payload
        assert 'reviewer_id' not in item.payload
        assert item.payload['nombre'] == technology['nombre']

    @pytest.mark.asyncio
    async def test_source_is_never_modified(self, reconciler, source, target):
        source.add('casos_de_estudio', _case('1'), _case('2'))
        target.add('casos_de_estudio', '9')
        before = copy.deepcopy(source.tables)

        await reconciler.reconcile_table('casos_de_estudio')

        assert source.tables == before

    @pytest.mark.asyncio
    async def test_missing_records_are_fetched_in_chunks(self, source, target, queue_store):
        reconciler = Reconciler(source, target, queue_store, fetch_chunk_size=2)
        source.add('casos_de_estudio', *[_case(f"c{n}") for n in range(5)])

        result = await reconciler.reconcile_table('casos_de_estudio')

        assert [len(call) for call in source.fetch_calls] == [2, 2, 1]
        assert result.queued_for_insert == 5

    @pytest.mark.asyncio
    async def test_invalid_record_is_reported_and_the_rest_queued(self, reconciler, source, queue_store):
        source.add('taxonomy_sectores', {'id': 'AGUA', 'nombre': 'Agua'}, {'id': 'ENER', 'nombre': ''})

        result = await reconciler.reconcile_table('taxonomy_sectores')

        assert result.queued_for_insert == 1
        assert len(result.errors) == 1
        assert "'ENER'" in result.errors[0]
        assert [item.record_id for item in await _queued(queue_store)] == ['AGUA']

    @pytest.mark.asyncio
    async def test_record_deleted_after_id_snapshot_is_reported(self, reconciler, source, queue_store, monkeypatch):
        source.add('casos_de_estudio', _case('1'), _case('2'))
        fetch = source.select_by_ids

        async def fetch_after_delete(table, record_ids):
            source.tables[table].pop('2')
            return await fetch(table, record_ids)

        monkeypatch.setattr(source, 'select_by_ids', fetch_after_delete)

        result = await reconciler.reconcile_table('casos_de_estudio')

        assert result.missing == 2
        assert result.queued_for_insert == 1
        assert result.errors == ["'2': no longer in source, not queued"]
        assert [item.record_id for item in await _queued(queue_store)] == ['1']

    @pytest.mark.asyncio
    async def test_unusable_source_id_fails_the_table(self, reconciler, source, queue_store):
        source.add('taxonomy_tipos', {'id': 'not-a-number', 'nombre': 'Broken'})

        result = await reconciler.reconcile_table('taxonomy_tipos')

        assert result.errors and "Unusable source id" in result.errors[0]
        assert await queue_store.list_items() == []

    @pytest.mark.asyncio
    async def test_unexpected_read_error_is_reported(self, reconciler, target, monkeypatch):
        async def explode(table):
            raise RuntimeError("socket closed")

        monkeypatch.setattr(target, 'select_ids', explode)

        result = await reconciler.reconcile_table('projects')

        assert result.errors == ["RuntimeError: socket closed"]


class TestRun:
    @pytest.mark.asyncio
    async def test_read_failure_is_isolated_to_its_table(self, reconciler, source, target, queue_store):
        source.add('casos_de_estudio', _case('1'))
        source.add('projects', {'id': 'p1', 'name': 'Pilot'})
        target.failing_tables.add('casos_de_estudio')

        report = await reconciler.run(['casos_de_estudio', 'projects'])

        assert not report.success
        failed = report.for_table('casos_de_estudio')
        assert failed.errors and "target unavailable" in failed.errors[0]
        assert failed.queued == 0
        assert report.for_table('projects').queued_for_insert == 1
        assert [item.table_name for item in await queue_store.list_items()] == ['projects']

    @pytest.mark.asyncio
    async def test_default_run_covers_every_table_in_order(self, reconciler):
        report = await reconciler.run()

        assert [r.table for r in report.results] == list(DEFAULT_TABLE_ORDER)
        assert report.success

    @pytest.mark.asyncio
    async def test_report_totals(self, reconciler, source, target):
        source.add('casos_de_estudio', _case('1'), _case('2'))
        target.add('projects', 'p9')

        data = (await reconciler.run(['casos_de_estudio', 'projects'])).to_dict()

        assert data['success'] is True
        assert data['queued_for_insert'] == 2
        assert data['queued_for_delete'] == 1
        assert [t['table'] for t in data['tables']] == ['casos_de_estudio', 'projects']

    @pytest.mark.asyncio
    async def test_repeated_runs_queue_again_until_repaired(self, reconciler, source, queue_store):
        source.add('casos_de_estudio', _case('1'))

        await reconciler.run(['casos_de_estudio'])
        await reconciler.run(['casos_de_estudio'])

        # no dedup across runs
        assert len(await queue_store.list_items()) == 2

    def test_chunk_size_must_be_positive(self, source, target, queue_store):
        with pytest.raises(ValueError):
            Reconciler(source, target, queue_store, fetch_chunk_size=0)
