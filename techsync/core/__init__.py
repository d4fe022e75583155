"""
TechSync Core Module
Exports the sync components for easy imports
"""

from .models import (
    SyncOperation,
    GatewayAction,
    QueueStatus,
    QueueItem,
    SyncRequest,
    DeliveryOutcome,
    WorkerResult,
    ReconciliationResult,
    ReconciliationReport,
    GatewayResult
)
from .exceptions import (
    SyncError,
    QueueStoreError,
    QueueItemNotFoundError,
    DatastoreError,
    DeliveryError,
    PayloadValidationError,
    ConfigurationError
)
from .record_adapter import RecordAdapter, TableConfig, KeyType, integer_to_uuid
from .database import DatabaseService
from .queue_store import SyncQueueStore, backoff
from .datastores import SourceDatastore, TargetDatastore
from .sync_worker import SyncWorker
from .reconciler import Reconciler
from .gateway import DirectSyncGateway

__all__ = [
    # Models
    'SyncOperation',
    'GatewayAction',
    'QueueStatus',
    'QueueItem',
    'SyncRequest',
    'DeliveryOutcome',
    'WorkerResult',
    'ReconciliationResult',
    'ReconciliationReport',
    'GatewayResult',

    # Errors
    'SyncError',
    'QueueStoreError',
    'QueueItemNotFoundError',
    'DatastoreError',
    'DeliveryError',
    'PayloadValidationError',
    'ConfigurationError',

    # Components
    'RecordAdapter',
    'TableConfig',
    'KeyType',
    'integer_to_uuid',
    'DatabaseService',
    'SyncQueueStore',
    'backoff',
    'SourceDatastore',
    'TargetDatastore',
    'SyncWorker',
    'Reconciler',
    'DirectSyncGateway'
]
