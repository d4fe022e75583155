"""
Direct Sync Gateway - synchronous single-record writes for interactive callers

The caller gets the outcome immediately. Depending on queue_mode the write is
also recorded in the sync queue so the worker can retry it:

    on_failure  enqueue only when the direct write fails (default)
    always      enqueue alongside every direct write
    never       no queueing; drift is left to the reconciler
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple, Union

from techsync.config.settings import QUEUE_MODES
from techsync.core.datastores import RecordId, TargetDatastore
from techsync.core.exceptions import DeliveryError, PayloadValidationError, SyncError
from techsync.core.models import GatewayAction, GatewayResult, SyncOperation, SyncRequest
from techsync.core.queue_store import SyncQueueStore
from techsync.core.record_adapter import RecordAdapter


class DirectSyncGateway:
    """Writes one record straight to the target"""

    def __init__(self, target: TargetDatastore, adapter: Optional[RecordAdapter] = None,
                 queue: Optional[SyncQueueStore] = None, queue_mode: str = 'on_failure'):
        if queue_mode not in QUEUE_MODES:
            raise ValueError(f"Invalid queue_mode '{queue_mode}', expected one of {QUEUE_MODES}")

        self.target = target
        self.adapter = adapter or (queue.adapter if queue else RecordAdapter())
        self.queue = queue
        self.queue_mode = queue_mode if queue is not None else 'never'
        self.logger = logging.getLogger(__name__)

    async def sync(self, action: Union[GatewayAction, str], table: str,
                   record: Optional[Dict[str, Any]] = None,
                   record_id: Optional[RecordId] = None) -> GatewayResult:
        """
        Apply one change to the target and report the outcome.

        Raises PayloadValidationError for unknown actions and invalid
        records; every other failure is reported on the result.
        """
        action = _parse_action(action, table)
        operation = action.to_queue_operation()
        target_id, payload = self._prepare(operation, table, record, record_id)
        request = SyncRequest(
            operation=operation.value,
            table_name=table,
            record_id=target_id,
            payload=payload
        )

        result = GatewayResult(success=False, action=action.value, table=table, record_id=target_id)

        if self.queue_mode == 'always':
            (queued_id, queue_error), delivery_error = await asyncio.gather(
                self._enqueue(request), self._deliver(request)
            )
            result.queued_item_id = queued_id
        else:
            queue_error = None
            delivery_error = await self._deliver(request)
            if delivery_error and self.queue_mode == 'on_failure':
                result.queued_item_id, queue_error = await self._enqueue(request)

        result.success = delivery_error is None
        errors = [e for e in (delivery_error, queue_error) if e]
        result.error = "; ".join(errors) or None

        if result.success:
            self.logger.info(f"Direct {action.value} {table}/{target_id} applied")
        else:
            self.logger.warning(
                f"Direct {action.value} {table}/{target_id} failed: {delivery_error}"
                + (f" (queued as {result.queued_item_id})" if result.queued_item_id else "")
            )
        return result

    def _prepare(self, operation: SyncOperation, table: str,
                 record: Optional[Dict[str, Any]],
                 record_id: Optional[RecordId]) -> Tuple[str, Dict[str, Any]]:
        record = record or {}
        raw_id = record_id if record_id is not None else record.get('id')
        if raw_id is None:
            raise PayloadValidationError("record id is required", table=table, field='id')
        if record.get('id') is not None and str(record['id']) != str(raw_id):
            raise PayloadValidationError(
                f"record id {record['id']!r} does not match {raw_id!r}", table=table, field='id'
            )

        target_id = self.adapter.convert_id(table, raw_id)

        if operation.is_delete:
            payload = {'id': target_id}
        else:
            if not record:
                raise PayloadValidationError(f"{operation.value} needs a record", table=table, field='record')
            payload = self.adapter.clean_payload(table, record)
            payload['id'] = target_id

        self.adapter.validate(table, operation, target_id, payload)
        return target_id, payload

    async def _deliver(self, request: SyncRequest) -> Optional[str]:
        """None on success, the error message otherwise"""
        try:
            await self._write(request)
        except DeliveryError as e:
            return str(e)
        return None

    async def _write(self, request: SyncRequest):
        try:
            outcome = await self.target.deliver(request)
        except Exception as e:
            raise DeliveryError(f"{type(e).__name__}: {e}") from e

        if not outcome.success:
            raise DeliveryError(
                outcome.error or "delivery failed",
                status_code=outcome.status_code,
                retryable=outcome.retryable
            )

    async def _enqueue(self, request: SyncRequest) -> Tuple[Optional[str], Optional[str]]:
        """Best effort: (item id, None) or (None, error message)"""
        try:
            item_id = await self.queue.enqueue(
                request.table_name, request.operation, request.record_id, request.payload
            )
        except SyncError as e:
            self.logger.error(f"Could not queue {request.operation} {request.table_name}/{request.record_id}: {e}")
            return None, f"queue fallback failed: {e}"
        return item_id, None


def _parse_action(action: Union[GatewayAction, str], table: str) -> GatewayAction:
    if isinstance(action, GatewayAction):
        return action
    try:
        return GatewayAction(str(action).upper())
    except ValueError:
        raise PayloadValidationError(f"unknown action {action!r}", table=table, field='action')
