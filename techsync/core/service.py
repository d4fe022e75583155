"""
Sync service - wires the queue store, worker, reconciler and gateway together
Shared by the HTTP API and the CLI
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from techsync.config.settings import SyncSettings
from techsync.core.database import DatabaseService
from techsync.core.datastores import RecordId, SourceDatastore, TargetDatastore
from techsync.core.exceptions import ConfigurationError
from techsync.core.gateway import DirectSyncGateway
from techsync.core.models import (
    GatewayAction, GatewayResult, QueueItem, QueueStatus, ReconciliationReport,
    SyncOperation, WorkerResult, utc_now
)
from techsync.core.queue_store import SyncQueueStore
from techsync.core.reconciler import Reconciler
from techsync.core.record_adapter import RecordAdapter
from techsync.core.sync_worker import SyncWorker
from techsync.integrations.postgrest import build_source, build_target


class SyncService:
    """Entry point for every sync operation"""

    def __init__(self, settings: SyncSettings,
                 db: Optional[DatabaseService] = None,
                 source: Optional[SourceDatastore] = None,
                 target: Optional[TargetDatastore] = None,
                 clock: Callable[[], datetime] = utc_now):
        self.settings = settings
        self.logger = logging.getLogger(__name__)

        self.db = db or DatabaseService(settings.database_url, echo=settings.database_echo)
        self.adapter = RecordAdapter.from_table_settings(settings.tables)
        self.queue = SyncQueueStore(
            self.db,
            adapter=self.adapter,
            max_attempts=settings.queue.max_attempts,
            retry_delays=settings.queue.retry_delays,
            clock=clock
        )

        if source is None and settings.source.url:
            source = build_source(settings.source)
        if target is None and (settings.target.url or settings.target.sync_url):
            target = build_target(settings.target)
        self.source = source
        self.target = target

        self.worker: Optional[SyncWorker] = None
        self.gateway: Optional[DirectSyncGateway] = None
        self.reconciler: Optional[Reconciler] = None

        if target is not None:
            self.worker = SyncWorker(
                self.queue, target,
                batch_size=settings.worker.batch_size,
                stale_timeout_seconds=settings.queue.stale_timeout_seconds,
                dead_letter_client_errors=settings.worker.dead_letter_client_errors,
                adapter=self.adapter
            )
            self.gateway = DirectSyncGateway(
                target, adapter=self.adapter, queue=self.queue,
                queue_mode=settings.gateway.queue_mode
            )
            if source is not None:
                self.reconciler = Reconciler(
                    source, target, self.queue,
                    adapter=self.adapter,
                    tables=settings.reconciler.tables,
                    fetch_chunk_size=settings.reconciler.fetch_chunk_size
                )

        self.logger.info(
            f"Sync service ready (source={'yes' if source else 'no'}, "
            f"target={'yes' if target else 'no'}, queue_mode={settings.gateway.queue_mode})"
        )

    @classmethod
    def from_config(cls, config: Dict[str, Any], **kwargs) -> 'SyncService':
        return cls(SyncSettings.from_config(config), **kwargs)

    async def initialize(self):
        await self.db.create_tables()

    async def close(self):
        if self.target is not None:
            await self.target.close()
        await self.db.close()

    async def process_queue(self, batch_size: Optional[int] = None) -> WorkerResult:
        if self.worker is None:
            raise ConfigurationError("Target is not configured, cannot process the sync queue")
        return await self.worker.run_once(batch_size)

    async def reconcile(self, tables: Optional[Sequence[str]] = None) -> ReconciliationReport:
        if self.reconciler is None:
            raise ConfigurationError("Source and target must both be configured to reconcile")
        return await self.reconciler.run(tables)

    async def direct_sync(self, action: Union[GatewayAction, str], table: str,
                          record: Optional[Dict[str, Any]] = None,
                          record_id: Optional[RecordId] = None) -> GatewayResult:
        if self.gateway is None:
            raise ConfigurationError("Target is not configured, cannot sync directly")
        return await self.gateway.sync(action, table, record=record, record_id=record_id)

    async def enqueue(self, table: str, operation: Union[SyncOperation, str],
                      record_id: RecordId, payload: Optional[Dict[str, Any]] = None) -> str:
        return await self.queue.enqueue(table, operation, record_id, payload)

    async def reclaim_stale(self, timeout_seconds: Optional[int] = None) -> int:
        timeout = timeout_seconds if timeout_seconds is not None else self.settings.queue.stale_timeout_seconds
        return await self.queue.reclaim_stale(timeout)

    async def queue_stats(self) -> Dict[str, int]:
        return await self.queue.stats()

    async def list_queue(self, status: Optional[Union[QueueStatus, str]] = None,
                         table: Optional[str] = None, limit: int = 100) -> List[QueueItem]:
        return await self.queue.list_items(status=status, table=table, limit=limit)

    async def requeue(self, item_id: str) -> bool:
        return await self.queue.requeue_dead(item_id)
