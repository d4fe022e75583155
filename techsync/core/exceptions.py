"""
Exception hierarchy for the TechSync synchronization core.
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for all synchronization errors."""
    pass


class QueueStoreError(SyncError):
    """Raised when the sync queue store cannot be reached or written.

    Fatal to a worker or reconciler invocation.
    """
    pass


class QueueItemNotFoundError(SyncError):
    """Raised when a queue item does not exist"""

    def __init__(self, item_id: str):
        super().__init__(f"Queue item '{item_id}' not found")
        self.item_id = item_id


class DatastoreError(SyncError):
    """Raised when a source or target datastore read fails"""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(message)
        self.table = table


class DeliveryError(SyncError):
    """Raised when a write to the target system fails"""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = True):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class PayloadValidationError(SyncError):
    """Raised when a record does not match its table schema"""

    def __init__(self, message: str, table: Optional[str] = None, field: Optional[str] = None):
        detail = message
        if table:
            detail = f"{table}: {detail}"
        if field:
            detail += f" (field: {field})"
        super().__init__(detail)
        self.table = table
        self.field = field


class ConfigurationError(SyncError):
    """Raised when an operation needs a datastore that is not configured"""
    pass
