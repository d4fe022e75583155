"""
Sync Worker - drains due queue items into the target system

One invocation handles one bounded batch, sequentially and in FIFO order.
Per-item failures are recorded on the item and never abort the batch; only
an unavailable queue store fails the invocation.
"""

import logging
import time
from typing import Optional, Tuple

from techsync.core.datastores import TargetDatastore
from techsync.core.exceptions import PayloadValidationError, QueueItemNotFoundError
from techsync.core.models import (
    DeliveryOutcome, QueueItem, QueueStatus, SyncRequest, WorkerResult
)
from techsync.core.queue_store import SyncQueueStore
from techsync.core.record_adapter import RecordAdapter


class SyncWorker:
    """Delivers queued work items to the target"""

    def __init__(self, queue: SyncQueueStore, target: TargetDatastore,
                 batch_size: int = 10,
                 stale_timeout_seconds: int = 600,
                 dead_letter_client_errors: bool = True,
                 adapter: Optional[RecordAdapter] = None):
        self.queue = queue
        self.target = target
        self.batch_size = batch_size
        self.stale_timeout_seconds = stale_timeout_seconds
        self.dead_letter_client_errors = dead_letter_client_errors
        self.adapter = adapter or queue.adapter
        self.logger = logging.getLogger(__name__)

    async def run_once(self, batch_size: Optional[int] = None) -> WorkerResult:
        """Process one batch and return aggregate counts"""
        started = time.monotonic()
        result = WorkerResult()

        result.reclaimed = await self.queue.reclaim_stale(self.stale_timeout_seconds)
        if result.reclaimed:
            self.logger.warning(f"Reclaimed {result.reclaimed} stale processing item(s)")

        batch = await self.queue.claim_due_batch(batch_size or self.batch_size)
        if not batch:
            self.logger.debug("No queue items to process")
            result.duration_ms = _elapsed_ms(started)
            return result

        self.logger.info(f"Processing {len(batch)} queue item(s)")

        for item in batch:
            status, error = await self._process_item(item)
            result.processed += 1

            if status is QueueStatus.SENT:
                result.sent += 1
            elif status is QueueStatus.DEAD:
                result.dead += 1
                result.errors.append(f"{item.id}: DEAD - {error}")
            else:
                result.failed += 1
                result.errors.append(f"{item.id}: {error}")

        result.duration_ms = _elapsed_ms(started)
        self.logger.info(
            f"Worker run completed in {result.duration_ms}ms: processed={result.processed}, "
            f"sent={result.sent}, failed={result.failed}, dead={result.dead}"
        )
        return result

    async def _process_item(self, item: QueueItem) -> Tuple[QueueStatus, Optional[str]]:
        self.logger.debug(f"Processing item {item.id}: {item.operation.value} on {item.table_name}/{item.record_id}")

        try:
            self.adapter.validate(item.table_name, item.operation, item.record_id, item.payload)
        except PayloadValidationError as e:
            error = f"Invalid payload: {e}"
            return await self._record_failure(item, error, permanent=True), error

        try:
            outcome = await self.target.deliver(SyncRequest.from_queue_item(item))
        except Exception as e:
            # deliver() reports failures through DeliveryOutcome; anything raised is a client bug
            self.logger.exception(f"Target client raised while delivering item {item.id}")
            outcome = DeliveryOutcome(success=False, error=f"{type(e).__name__}: {e}", retryable=True)

        if outcome.success:
            try:
                return await self.queue.mark_sent(item.id), None
            except QueueItemNotFoundError as e:
                return QueueStatus.FAILED, str(e)

        permanent = self.dead_letter_client_errors and not outcome.retryable
        error = outcome.error or "delivery failed"
        self.logger.warning(f"Delivery of item {item.id} failed: {error}")
        return await self._record_failure(item, error, permanent=permanent), error

    async def _record_failure(self, item: QueueItem, error: str, permanent: bool) -> QueueStatus:
        try:
            return await self.queue.mark_failed(item.id, error, permanent=permanent)
        except QueueItemNotFoundError:
            self.logger.error(f"Queue item {item.id} vanished before its failure could be recorded")
            return QueueStatus.FAILED


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
