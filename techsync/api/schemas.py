"""
API Schemas for TechSync
Request models, response models and the standard error envelope
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from techsync.core.models import GatewayAction, QueueStatus, SyncOperation, utc_now


# ==================== ERROR SCHEMAS ====================

class ErrorCode(str, Enum):
    """Standardized error codes for API responses"""
    UNAUTHORIZED = "UNAUTHORIZED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    NOT_CONFIGURED = "NOT_CONFIGURED"
    QUEUE_UNAVAILABLE = "QUEUE_UNAVAILABLE"
    DATASTORE_ERROR = "DATASTORE_ERROR"
    DELIVERY_ERROR = "DELIVERY_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class APIErrorDetail(BaseModel):
    """Detailed error information"""
    field: Optional[str] = Field(None, description="Field that caused the error")
    message: str = Field(..., description="Human-readable error message")
    code: Optional[str] = Field(None, description="Machine-readable error code")


class APIErrorResponse(BaseModel):
    """Standardized error response schema"""
    success: bool = Field(False, description="Always false for error responses")
    error: str = Field(..., description="Main error message")
    error_code: ErrorCode = Field(..., description="Standardized error code")
    details: Optional[List[APIErrorDetail]] = Field(None, description="Detailed error information")
    timestamp: datetime = Field(default_factory=utc_now, description="Error timestamp")
    request_id: Optional[str] = Field(None, description="Request tracking ID")


# ==================== REQUEST SCHEMAS ====================

class ReconcileRequest(BaseModel):
    tables: Optional[List[str]] = Field(None, description="Tables to reconcile, all configured tables when omitted")


class DirectSyncRequest(BaseModel):
    action: GatewayAction
    table: str = Field(..., min_length=1)
    record: Optional[Dict[str, Any]] = None
    record_id: Optional[Union[int, str]] = None


class EnqueueRequest(BaseModel):
    table: str = Field(..., min_length=1)
    operation: SyncOperation
    record_id: Union[int, str]
    payload: Dict[str, Any] = Field(default_factory=dict)


# ==================== RESPONSE SCHEMAS ====================

class WorkerResultResponse(BaseModel):
    processed: int
    sent: int
    failed: int
    dead: int
    reclaimed: int = 0
    errors: List[str] = []
    duration_ms: int = 0


class TableReconciliationResponse(BaseModel):
    table: str
    missing: int
    orphaned: int
    queued_for_insert: int
    queued_for_delete: int
    total_source: int
    total_target: int
    errors: List[str] = []
    duration_ms: int = 0
    in_sync: bool


class ReconciliationReportResponse(BaseModel):
    success: bool
    started_at: datetime
    duration_ms: int
    missing: int
    orphaned: int
    queued_for_insert: int
    queued_for_delete: int
    tables: List[TableReconciliationResponse]


class GatewayResultResponse(BaseModel):
    success: bool
    action: str
    table: str
    record_id: Optional[str] = None
    error: Optional[str] = None
    queued_item_id: Optional[str] = None


class EnqueueResponse(BaseModel):
    success: bool = True
    id: str


class QueueItemResponse(BaseModel):
    id: str
    table_name: str
    operation: SyncOperation
    record_id: str
    payload: Dict[str, Any]
    status: QueueStatus
    attempts: int
    max_attempts: int
    last_error: Optional[str] = None
    next_retry_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    created_at: datetime
    processed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QueueListResponse(BaseModel):
    items: List[QueueItemResponse]
    count: int


class QueueStatsResponse(BaseModel):
    pending: int = 0
    processing: int = 0
    sent: int = 0
    failed: int = 0
    dead: int = 0
    total: int = 0


class RequeueResponse(BaseModel):
    success: bool
    id: str
    message: str


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    source_configured: bool
    target_configured: bool
    timestamp: datetime
