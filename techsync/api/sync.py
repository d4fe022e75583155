"""
Sync API Router
Scheduler webhooks, direct sync and queue administration endpoints
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from techsync.api.dependencies import get_sync_service, verify_api_key
from techsync.api.schemas import (
    DirectSyncRequest, EnqueueRequest, EnqueueResponse, GatewayResultResponse,
    QueueItemResponse, QueueListResponse, QueueStatsResponse, ReconcileRequest,
    ReconciliationReportResponse, RequeueResponse, WorkerResultResponse
)
from techsync.core.models import QueueStatus
from techsync.core.service import SyncService

router = APIRouter(dependencies=[Depends(verify_api_key)])
logger = logging.getLogger(__name__)


@router.post("/process", response_model=WorkerResultResponse)
async def process_queue(
    batch_size: Optional[int] = Query(None, ge=1, le=500),
    service: SyncService = Depends(get_sync_service)
):
    """Drain one batch of due queue items (scheduler webhook)"""
    result = await service.process_queue(batch_size)
    return result.to_dict()


@router.post("/reconcile", response_model=ReconciliationReportResponse)
async def reconcile(
    request: Optional[ReconcileRequest] = None,
    service: SyncService = Depends(get_sync_service)
):
    """Compare source and target and queue repairs (scheduler webhook)"""
    tables = request.tables if request else None
    report = await service.reconcile(tables)
    return report.to_dict()


@router.post("/direct", response_model=GatewayResultResponse)
async def direct_sync(
    request: DirectSyncRequest,
    service: SyncService = Depends(get_sync_service)
):
    """Write one record to the target synchronously"""
    result = await service.direct_sync(
        request.action, request.table, record=request.record, record_id=request.record_id
    )
    return result.to_dict()


@router.post("/queue", response_model=EnqueueResponse, status_code=status.HTTP_201_CREATED)
async def enqueue(
    request: EnqueueRequest,
    service: SyncService = Depends(get_sync_service)
):
    item_id = await service.enqueue(request.table, request.operation, request.record_id, request.payload)
    logger.info(f"Manually queued {request.operation.value} {request.table}/{request.record_id} as {item_id}")
    return EnqueueResponse(id=item_id)


@router.get("/queue/stats", response_model=QueueStatsResponse)
async def queue_stats(service: SyncService = Depends(get_sync_service)):
    counts = await service.queue_stats()
    return QueueStatsResponse(**counts, total=sum(counts.values()))


@router.get("/queue", response_model=QueueListResponse)
async def list_queue(
    status_filter: Optional[QueueStatus] = Query(None, alias="status"),
    table: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    service: SyncService = Depends(get_sync_service)
):
    items = await service.list_queue(status=status_filter, table=table, limit=limit)
    return QueueListResponse(
        items=[QueueItemResponse.model_validate(item) for item in items],
        count=len(items)
    )


@router.post("/queue/{item_id}/requeue", response_model=RequeueResponse)
async def requeue_item(item_id: str, service: SyncService = Depends(get_sync_service)):
    """Give a dead item a fresh retry budget"""
    requeued = await service.requeue(item_id)
    if not requeued:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Only dead items can be requeued")
    return RequeueResponse(success=True, id=item_id, message="Item requeued")
