"""
Sync Queue Store - durable queue of synchronization work items
Claims are atomic per item, failures are retried on a fixed backoff schedule
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Sequence, Union

from sqlalchemy import select, update, func, and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from techsync.core.database import DatabaseService
from techsync.core.exceptions import PayloadValidationError, QueueStoreError, QueueItemNotFoundError
from techsync.core.models import (
    QueueItem, QueueStatus, SyncOperation, SyncQueueItemDB, utc_now
)
from techsync.core.record_adapter import RecordAdapter


# 1 min, 5 min, 15 min, 1 h, 4 h
RETRY_DELAYS = (60, 300, 900, 3600, 14400)
DEFAULT_MAX_ATTEMPTS = 5
STALE_CLAIM_ERROR = "stale processing claim reclaimed"
MAX_ERROR_LENGTH = 2000


def backoff(attempts: int, delays: Sequence[int] = RETRY_DELAYS) -> timedelta:
    """Delay before the next retry after `attempts` failed deliveries"""
    index = min(max(attempts, 1) - 1, len(delays) - 1)
    return timedelta(seconds=delays[index])


class SyncQueueStore:
    """Queue operations over the sync_queue table"""

    def __init__(self, db: DatabaseService, adapter: Optional[RecordAdapter] = None,
                 max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                 retry_delays: Sequence[int] = RETRY_DELAYS,
                 clock: Callable[[], datetime] = utc_now):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if not retry_delays:
            raise ValueError("retry_delays must not be empty")

        self.db = db
        self.adapter = adapter or RecordAdapter()
        self.max_attempts = max_attempts
        self.retry_delays = tuple(retry_delays)
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self.db.get_session() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            raise QueueStoreError(f"Sync queue store unavailable: {e}") from e

    def backoff(self, attempts: int) -> timedelta:
        return backoff(attempts, self.retry_delays)

    async def enqueue(self, table: str, operation: Union[SyncOperation, str], record_id: Union[str, int],
                      payload: Optional[Dict[str, Any]] = None,
                      max_attempts: Optional[int] = None) -> str:
        """Append a pending item and return its id"""
        try:
            operation = SyncOperation(operation if isinstance(operation, SyncOperation) else str(operation).upper())
        except ValueError:
            raise PayloadValidationError(f"unknown operation {operation!r}", table=table, field='operation')
        record_id = str(record_id) if record_id is not None else ""
        payload = dict(payload or {})

        self.adapter.validate(table, operation, record_id, payload)

        item = QueueItem(
            table_name=table,
            operation=operation,
            record_id=record_id,
            payload=payload,
            max_attempts=max_attempts or self.max_attempts,
            created_at=self.clock()
        )

        async with self._session() as session:
            session.add(item.to_db_model())

        self.logger.debug(f"Enqueued {operation.value} {table}/{record_id} as {item.id}")
        return item.id

    async def claim_due_batch(self, limit: int = 10) -> List[QueueItem]:
        """
        Claim up to `limit` due items, oldest first, moving them to processing.

        Each claim is a conditional update on the status that was read, so an
        item already taken by a concurrent caller is skipped rather than
        returned twice.
        """
        if limit <= 0:
            return []

        now = self.clock()
        due = and_(
            or_(
                SyncQueueItemDB.status == QueueStatus.PENDING.value,
                and_(
                    SyncQueueItemDB.status == QueueStatus.FAILED.value,
                    SyncQueueItemDB.next_retry_at <= now
                )
            ),
            SyncQueueItemDB.attempts < SyncQueueItemDB.max_attempts
        )

        async with self._session() as session:
            result = await session.execute(
                select(SyncQueueItemDB.id, SyncQueueItemDB.status)
                .where(due)
                .order_by(SyncQueueItemDB.created_at.asc(), SyncQueueItemDB.id.asc())
                .limit(limit)
            )
            candidates = result.all()

            claimed_ids = []
            for item_id, observed_status in candidates:
                claim = await session.execute(
                    update(SyncQueueItemDB)
                    .where(
                        SyncQueueItemDB.id == item_id,
                        SyncQueueItemDB.status == observed_status
                    )
                    .values(status=QueueStatus.PROCESSING.value, claimed_at=now)
                    .execution_options(synchronize_session=False)
                )
                if claim.rowcount == 1:
                    claimed_ids.append(item_id)

            if not claimed_ids:
                return []

            rows = await session.execute(
                select(SyncQueueItemDB)
                .where(SyncQueueItemDB.id.in_(claimed_ids))
                .order_by(SyncQueueItemDB.created_at.asc(), SyncQueueItemDB.id.asc())
                .execution_options(populate_existing=True)
            )
            items = [row.to_domain_model() for row in rows.scalars().all()]

        self.logger.debug(f"Claimed {len(items)} of {len(candidates)} due queue items")
        return items

    async def mark_sent(self, item_id: str) -> QueueStatus:
        """Terminal success"""
        async with self._session() as session:
            entry = await self._get_for_update(session, item_id)
            if QueueStatus(entry.status).is_terminal:
                self.logger.warning(f"Queue item {item_id} already {entry.status}, not marking sent")
                return QueueStatus(entry.status)

            entry.status = QueueStatus.SENT.value
            entry.processed_at = self.clock()
            entry.claimed_at = None
            return QueueStatus.SENT

    async def mark_failed(self, item_id: str, error: str, permanent: bool = False) -> QueueStatus:
        """Count a failed attempt; dead-letter once the retry budget is spent"""
        async with self._session() as session:
            entry = await self._get_for_update(session, item_id)
            if QueueStatus(entry.status).is_terminal:
                self.logger.warning(f"Queue item {item_id} already {entry.status}, not marking failed")
                return QueueStatus(entry.status)

            return self._apply_failure(entry, error, permanent, self.clock())

    async def reclaim_stale(self, timeout_seconds: int = 600) -> int:
        """Treat items stuck in processing longer than the timeout as failed attempts"""
        now = self.clock()
        cutoff = now - timedelta(seconds=timeout_seconds)

        async with self._session() as session:
            result = await session.execute(
                select(SyncQueueItemDB)
                .where(
                    SyncQueueItemDB.status == QueueStatus.PROCESSING.value,
                    or_(SyncQueueItemDB.claimed_at.is_(None), SyncQueueItemDB.claimed_at < cutoff)
                )
                .order_by(SyncQueueItemDB.created_at.asc())
                .with_for_update()
            )
            stale = result.scalars().all()

            for entry in stale:
                status = self._apply_failure(entry, STALE_CLAIM_ERROR, False, now)
                self.logger.warning(f"Reclaimed stale queue item {entry.id} -> {status.value}")

        return len(stale)

    def _apply_failure(self, entry: SyncQueueItemDB, error: str, permanent: bool, now: datetime) -> QueueStatus:
        entry.attempts = min(entry.attempts + 1, entry.max_attempts)
        entry.last_error = (error or "unknown error")[:MAX_ERROR_LENGTH]
        entry.claimed_at = None

        if permanent or entry.attempts >= entry.max_attempts:
            entry.status = QueueStatus.DEAD.value
            entry.processed_at = now
            entry.next_retry_at = None
            self.logger.error(
                f"Queue item {entry.id} dead after {entry.attempts} attempt(s): {entry.last_error}"
            )
            return QueueStatus.DEAD

        entry.status = QueueStatus.FAILED.value
        entry.next_retry_at = now + self.backoff(entry.attempts)
        return QueueStatus.FAILED

    async def _get_for_update(self, session: AsyncSession, item_id: str) -> SyncQueueItemDB:
        entry = await session.get(SyncQueueItemDB, item_id, with_for_update=True)
        if entry is None:
            raise QueueItemNotFoundError(item_id)
        return entry

    async def get(self, item_id: str) -> QueueItem:
        async with self._session() as session:
            entry = await session.get(SyncQueueItemDB, item_id, populate_existing=True)
            if entry is None:
                raise QueueItemNotFoundError(item_id)
            return entry.to_domain_model()

    async def list_items(self, status: Optional[Union[QueueStatus, str]] = None,
                         table: Optional[str] = None, limit: int = 100) -> List[QueueItem]:
        """Most recent items first, optionally filtered"""
        query = select(SyncQueueItemDB)
        if status is not None:
            query = query.where(SyncQueueItemDB.status == QueueStatus(status).value)
        if table:
            query = query.where(SyncQueueItemDB.table_name == table)
        query = query.order_by(SyncQueueItemDB.created_at.desc()).limit(limit)

        async with self._session() as session:
            result = await session.execute(query)
            return [row.to_domain_model() for row in result.scalars().all()]

    async def stats(self) -> Dict[str, int]:
        """Item count per status"""
        counts = {status.value: 0 for status in QueueStatus}
        async with self._session() as session:
            result = await session.execute(
                select(SyncQueueItemDB.status, func.count(SyncQueueItemDB.id))
                .group_by(SyncQueueItemDB.status)
            )
            for status, count in result.all():
                counts[status] = count
        return counts

    async def requeue_dead(self, item_id: str) -> bool:
        """Operator action: give a dead item a fresh retry budget"""
        async with self._session() as session:
            entry = await self._get_for_update(session, item_id)
            if entry.status != QueueStatus.DEAD.value:
                return False

            entry.status = QueueStatus.PENDING.value
            entry.attempts = 0
            entry.next_retry_at = None
            entry.claimed_at = None
            entry.processed_at = None
            entry.last_error = None

        self.logger.info(f"Dead queue item {item_id} requeued by operator")
        return True
