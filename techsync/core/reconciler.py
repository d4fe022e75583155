"""
Reconciler - detects drift between source and target identifier sets

Missing records are queued as RECONCILE_INSERT, orphans as RECONCILE_DELETE.
The source is only read, never written. Each table is reconciled on its own:
a read failure for one table is reported on that table's result and the run
continues with the next.
"""

import logging
import time
from typing import Dict, List, Optional, Sequence, Set

from techsync.core.datastores import RecordId, SourceDatastore, TargetDatastore
from techsync.core.exceptions import DatastoreError, PayloadValidationError
from techsync.core.models import ReconciliationReport, ReconciliationResult, SyncOperation
from techsync.core.queue_store import SyncQueueStore
from techsync.core.record_adapter import RecordAdapter


# Parents before children, so inserts land after the rows they reference
DEFAULT_TABLE_ORDER = (
    'taxonomy_tipos',
    'taxonomy_subcategorias',
    'taxonomy_sectores',
    'technologies',
    'casos_de_estudio',
    'technological_trends',
    'projects',
    'project_technologies',
)

ORPHAN_REASON = "orphaned"


class Reconciler:
    """Compares identifier sets per table and queues repair work"""

    def __init__(self, source: SourceDatastore, target: TargetDatastore,
                 queue: SyncQueueStore,
                 adapter: Optional[RecordAdapter] = None,
                 tables: Optional[Sequence[str]] = None,
                 fetch_chunk_size: int = 200):
        if fetch_chunk_size < 1:
            raise ValueError("fetch_chunk_size must be at least 1")

        self.source = source
        self.target = target
        self.queue = queue
        self.adapter = adapter or queue.adapter
        self.tables = list(tables or DEFAULT_TABLE_ORDER)
        self.fetch_chunk_size = fetch_chunk_size
        self.logger = logging.getLogger(__name__)

    async def run(self, tables: Optional[Sequence[str]] = None) -> ReconciliationReport:
        """Reconcile the given tables (all configured tables by default)"""
        started = time.monotonic()
        report = ReconciliationReport()

        for table in (tables or self.tables):
            result = await self.reconcile_table(table)
            report.results.append(result)

        report.duration_ms = _elapsed_ms(started)

        total_queued = sum(r.queued for r in report.results)
        failed_tables = [r.table for r in report.results if r.errors]
        self.logger.info(
            f"Reconciliation completed in {report.duration_ms}ms: "
            f"{len(report.results)} table(s), {total_queued} item(s) queued"
            + (f", errors in {', '.join(failed_tables)}" if failed_tables else "")
        )
        return report

    async def reconcile_table(self, table: str) -> ReconciliationResult:
        started = time.monotonic()
        result = ReconciliationResult(table=table)

        try:
            source_ids = await self._source_ids(table)
            target_ids = {str(record_id) for record_id in await self.target.select_ids(table)}
        except DatastoreError as e:
            self.logger.error(f"Could not read identifiers for {table}: {e}")
            result.errors.append(str(e))
            result.duration_ms = _elapsed_ms(started)
            return result
        except Exception as e:
            self.logger.exception(f"Unexpected error reading identifiers for {table}")
            result.errors.append(f"{type(e).__name__}: {e}")
            result.duration_ms = _elapsed_ms(started)
            return result

        result.total_source = len(source_ids)
        result.total_target = len(target_ids)

        missing = sorted(set(source_ids) - target_ids)
        orphaned = sorted(target_ids - set(source_ids))
        result.missing = len(missing)
        result.orphaned = len(orphaned)

        if missing:
            await self._queue_missing(table, [source_ids[target_id] for target_id in missing], result)

        for target_id in orphaned:
            await self.queue.enqueue(
                table, SyncOperation.RECONCILE_DELETE, target_id,
                {"id": target_id, "reason": ORPHAN_REASON}
            )
            result.queued_for_delete += 1

        result.duration_ms = _elapsed_ms(started)
        self.logger.info(
            f"Reconciled {table}: source={result.total_source}, target={result.total_target}, "
            f"missing={result.missing}, orphaned={result.orphaned}, "
            f"queued_insert={result.queued_for_insert}, queued_delete={result.queued_for_delete}"
        )
        return result

    async def _source_ids(self, table: str) -> Dict[str, RecordId]:
        """Source keys indexed by their target-space id"""
        raw_ids: Set[RecordId] = await self.source.select_ids(table)
        converted: Dict[str, RecordId] = {}
        for raw_id in raw_ids:
            try:
                converted[self.adapter.convert_id(table, raw_id)] = raw_id
            except PayloadValidationError as e:
                raise DatastoreError(f"Unusable source id in {table}: {e}", table=table) from e
        return converted

    async def _queue_missing(self, table: str, raw_ids: List[RecordId], result: ReconciliationResult):
        for start in range(0, len(raw_ids), self.fetch_chunk_size):
            chunk = raw_ids[start:start + self.fetch_chunk_size]
            try:
                records = await self.source.select_by_ids(table, chunk)
            except DatastoreError as e:
                self.logger.error(f"Could not fetch missing {table} records: {e}")
                result.errors.append(str(e))
                continue

            returned = {str(record.get('id')) for record in records}
            for raw_id in chunk:
                if str(raw_id) not in returned:
                    # deleted from the source after the id snapshot
                    self.logger.warning(f"Missing {table} record {raw_id!r} no longer in source, not queued")
                    result.errors.append(f"{raw_id!r}: no longer in source, not queued")

            for record in records:
                try:
                    target_id, payload = self.adapter.adapt(table, record)
                    await self.queue.enqueue(table, SyncOperation.RECONCILE_INSERT, target_id, payload)
                except PayloadValidationError as e:
                    self.logger.warning(f"Skipping {table} record {record.get('id')!r}: {e}")
                    result.errors.append(f"{record.get('id')!r}: {e}")
                    continue
                result.queued_for_insert += 1


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
