"""
Core data models for TechSync - SQLAlchemy persistence and domain objects
The sync_queue table is the storage contract shared by worker and reconciler
"""

import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional

from sqlalchemy import Column, String, DateTime, Integer, Text, JSON, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utc_now() -> datetime:
    """Naive UTC timestamp, the format stored in the database"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SyncOperation(Enum):
    """Operations a queue item can carry"""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    UPSERT = "UPSERT"
    RECONCILE_INSERT = "RECONCILE_INSERT"
    RECONCILE_DELETE = "RECONCILE_DELETE"

    @property
    def is_delete(self) -> bool:
        return self in (SyncOperation.DELETE, SyncOperation.RECONCILE_DELETE)

    @property
    def is_partial(self) -> bool:
        """Payload carries changed fields only"""
        return self is SyncOperation.UPDATE


class GatewayAction(Enum):
    """Actions accepted by the direct sync gateway"""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    UPSERT = "UPSERT"

    def to_queue_operation(self) -> SyncOperation:
        """Queue operation used when a direct write falls back to the queue"""
        return SyncOperation(self.value)


class QueueStatus(Enum):
    """Queue item status"""
    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    DEAD = "dead"

    @property
    def is_terminal(self) -> bool:
        return self in (QueueStatus.SENT, QueueStatus.DEAD)


class SyncQueueItemDB(Base):
    """SQLAlchemy model for the sync queue"""
    __tablename__ = 'sync_queue'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    table_name = Column(String(100), nullable=False, index=True)
    operation = Column(String(20), nullable=False)
    record_id = Column(String(64), nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default=QueueStatus.PENDING.value, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=5)
    last_error = Column(Text, nullable=True)
    next_retry_at = Column(DateTime, nullable=True)
    claimed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now, index=True)
    processed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('ix_sync_queue_due', 'status', 'next_retry_at'),
    )

    def to_domain_model(self) -> 'QueueItem':
        """Convert SQLAlchemy model to domain model"""
        return QueueItem(
            id=self.id,
            table_name=self.table_name,
            operation=SyncOperation(self.operation),
            record_id=self.record_id,
            payload=dict(self.payload or {}),
            status=QueueStatus(self.status),
            attempts=self.attempts,
            max_attempts=self.max_attempts,
            last_error=self.last_error,
            next_retry_at=self.next_retry_at,
            claimed_at=self.claimed_at,
            created_at=self.created_at,
            processed_at=self.processed_at
        )

    def __repr__(self):
        return f"<SyncQueueItem(id={self.id}, {self.operation} {self.table_name}/{self.record_id}, status={self.status})>"


@dataclass
class QueueItem:
    """Unit of pending synchronization work"""
    table_name: str
    operation: SyncOperation
    record_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: QueueStatus = QueueStatus.PENDING
    attempts: int = 0
    max_attempts: int = 5
    last_error: Optional[str] = None
    next_retry_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    processed_at: Optional[datetime] = None

    def to_db_model(self) -> SyncQueueItemDB:
        """Convert to database model"""
        return SyncQueueItemDB(
            id=self.id,
            table_name=self.table_name,
            operation=self.operation.value,
            record_id=self.record_id,
            payload=self.payload,
            status=self.status.value,
            attempts=self.attempts,
            max_attempts=self.max_attempts,
            last_error=self.last_error,
            next_retry_at=self.next_retry_at,
            claimed_at=self.claimed_at,
            created_at=self.created_at,
            processed_at=self.processed_at
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'table_name': self.table_name,
            'operation': self.operation.value,
            'record_id': self.record_id,
            'payload': self.payload,
            'status': self.status.value,
            'attempts': self.attempts,
            'max_attempts': self.max_attempts,
            'last_error': self.last_error,
            'next_retry_at': self.next_retry_at.isoformat() if self.next_retry_at else None,
            'claimed_at': self.claimed_at.isoformat() if self.claimed_at else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'processed_at': self.processed_at.isoformat() if self.processed_at else None
        }


@dataclass
class SyncRequest:
    """Outbound request to the target system's sync endpoint"""
    operation: str
    table_name: str
    record_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    sync_queue_id: Optional[str] = None

    @classmethod
    def from_queue_item(cls, item: QueueItem) -> 'SyncRequest':
        return cls(
            operation=item.operation.value,
            table_name=item.table_name,
            record_id=item.record_id,
            payload=item.payload,
            sync_queue_id=item.id
        )

    def to_dict(self) -> Dict[str, Any]:
        body = {
            'operation': self.operation,
            'table_name': self.table_name,
            'record_id': self.record_id,
            'payload': self.payload,
        }
        if self.sync_queue_id:
            body['id'] = self.sync_queue_id
            body['sync_queue_id'] = self.sync_queue_id
        return body


@dataclass
class DeliveryOutcome:
    """Result of a single write against the target system"""
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    retryable: bool = True


@dataclass
class WorkerResult:
    """Summary of one worker invocation"""
    processed: int = 0
    sent: int = 0
    failed: int = 0
    dead: int = 0
    reclaimed: int = 0
    errors: List[str] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReconciliationResult:
    """Per-table drift counts from one reconciliation pass"""
    table: str
    missing: int = 0
    orphaned: int = 0
    queued_for_insert: int = 0
    queued_for_delete: int = 0
    total_source: int = 0
    total_target: int = 0
    errors: List[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def in_sync(self) -> bool:
        return not self.errors and self.missing == 0 and self.orphaned == 0

    @property
    def queued(self) -> int:
        return self.queued_for_insert + self.queued_for_delete

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['in_sync'] = self.in_sync
        return data


@dataclass
class ReconciliationReport:
    """Aggregate of per-table reconciliation results"""
    results: List[ReconciliationResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=utc_now)
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return all(not r.errors for r in self.results)

    def for_table(self, table: str) -> Optional[ReconciliationResult]:
        return next((r for r in self.results if r.table == table), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'started_at': self.started_at.isoformat(),
            'duration_ms': self.duration_ms,
            'missing': sum(r.missing for r in self.results),
            'orphaned': sum(r.orphaned for r in self.results),
            'queued_for_insert': sum(r.queued_for_insert for r in self.results),
            'queued_for_delete': sum(r.queued_for_delete for r in self.results),
            'tables': [r.to_dict() for r in self.results]
        }


@dataclass
class GatewayResult:
    """Synchronous outcome of a direct sync call"""
    success: bool
    action: str
    table: str
    record_id: Optional[str] = None
    error: Optional[str] = None
    queued_item_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
