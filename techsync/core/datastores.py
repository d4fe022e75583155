"""
Datastore interfaces consumed by the sync core

The reconciler reads identifier sets and records through SourceDatastore and
TargetDatastore; the worker and the direct gateway write through
TargetDatastore.deliver, which must be idempotent per
(table_name, operation, record_id).
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from techsync.core.models import DeliveryOutcome, SyncRequest


RecordId = Union[str, int]

# Client errors that may succeed on a later attempt
RETRYABLE_CLIENT_STATUSES = frozenset({408, 409, 425, 429})


def is_retryable_status(status_code: Optional[int]) -> bool:
    """Transport failures, 5xx and throttling are retried; other 4xx are not"""
    if status_code is None:
        return True
    if status_code >= 500:
        return True
    return status_code in RETRYABLE_CLIENT_STATUSES


class SourceDatastore(ABC):
    """Read interface of the authoritative system"""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def select_ids(self, table: str) -> Set[RecordId]:
        """All primary keys of a table (snapshot read)"""
        pass

    @abstractmethod
    async def select_by_id(self, table: str, record_id: RecordId) -> Optional[Dict[str, Any]]:
        """One full record, or None when absent"""
        pass

    @abstractmethod
    async def select_by_ids(self, table: str, record_ids: Iterable[RecordId]) -> List[Dict[str, Any]]:
        """Full records for the given keys; absent keys are skipped"""
        pass


class TargetDatastore(ABC):
    """Read and write interface of the secondary system"""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    async def select_ids(self, table: str) -> Set[RecordId]:
        """All primary keys of a table"""
        pass

    @abstractmethod
    async def deliver(self, request: SyncRequest) -> DeliveryOutcome:
        """
        Apply one sync request.

        Never raises for delivery problems: failures are reported through
        DeliveryOutcome so callers can decide between retry and dead-letter.
        """
        pass

    async def close(self):
        """Release any held connections"""
        pass
