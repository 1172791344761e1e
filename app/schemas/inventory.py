"""Inventory schemas for request/response validation."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.inventory import StockField
from app.models.stock_adjustment import ReasonCode
from app.schemas.types import Note, StockQuantity, UUIDStr


# Buckets


class BucketResponse(BaseModel):
    """One (product, warehouse, shelf, condition) balance."""

    id: UUIDStr
    product_id: UUIDStr
    warehouse_id: UUIDStr
    shelf_id: Optional[UUIDStr] = None
    condition: str
    on_hand: int
    on_loan: int
    last_in_at: Optional[datetime] = None
    last_out_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BucketListResponse(BaseModel):
    """Paginated bucket list response."""

    items: list[BucketResponse]
    total: int
    page: int
    page_size: int


# Movement requests


class StockInRequest(BaseModel):
    """Receive new units into a bucket (created on first receipt)."""

    product_id: UUID
    warehouse_id: UUID
    shelf_id: Optional[UUID] = None
    condition: str = Field("Good", max_length=20)
    quantity: StockQuantity
    note: Note = None


class TransferRequest(BaseModel):
    """Move units to another warehouse/shelf, keeping their condition."""

    warehouse_id: UUID
    shelf_id: Optional[UUID] = None
    quantity: StockQuantity
    note: Note = None


class ChangeConditionRequest(BaseModel):
    """Reclassify units; warehouse_id/shelf_id relocate them at the same time."""

    new_condition: str = Field(..., max_length=20)
    quantity: StockQuantity
    warehouse_id: Optional[UUID] = None
    shelf_id: Optional[UUID] = None
    note: Note = None


class AdjustRequest(BaseModel):
    """Signed correction on one field of one bucket."""

    field: StockField = StockField.on_hand
    delta: int = Field(..., description="Positive to add, negative to subtract, never 0")
    reason_code: ReasonCode = ReasonCode.manual_correction
    note: Note = None
    loan_number: Optional[str] = Field(None, max_length=50)


class LoanMovementRequest(BaseModel):
    """Loan bookkeeping on one bucket. revert=true undoes an earlier call of the same kind."""

    quantity: StockQuantity
    loan_number: Optional[str] = Field(None, max_length=50)
    revert: bool = False
    note: Note = None


class ReturnInRequest(LoanMovementRequest):
    """Return loaned units, optionally in another condition or to another warehouse/shelf."""

    new_condition: Optional[str] = Field(None, max_length=20)
    warehouse_id: Optional[UUID] = None
    shelf_id: Optional[UUID] = None


# Movement results


class MovementSource(BaseModel):
    bucket_id: UUIDStr
    remaining: int
    deleted: bool


class MovementDestination(BaseModel):
    bucket_id: UUIDStr
    added: int
    on_hand: int
    condition: str


class MovementResponse(BaseModel):
    """Outcome of a transfer or condition change."""

    model_config = ConfigDict(populate_by_name=True)

    correlation_id: UUIDStr
    source: MovementSource = Field(..., alias="from")
    destination: MovementDestination = Field(..., alias="to")


class AdjustResponse(BaseModel):
    bucket_id: UUIDStr
    field: str
    before: int
    after: int
    deleted: bool
    adjustment_id: UUIDStr
    correlation_id: UUIDStr


class LoanMovementResponse(BaseModel):
    bucket_id: UUIDStr
    on_hand: int
    on_loan: int
    deleted: bool
    correlation_id: UUIDStr
    to_bucket_id: Optional[UUIDStr] = None
    to_on_hand: Optional[int] = None


# Ledger


class StockAdjustmentResponse(BaseModel):
    """One ledger row. snapshot keeps it readable after its bucket is gone."""

    id: UUIDStr
    bucket_id: UUIDStr
    field: str
    delta: int
    before: int
    after: int
    reason_code: str
    reason_note: Optional[str] = None
    actor_kind: str
    actor_id: Optional[str] = None
    actor_name: str
    correlation_id: UUIDStr
    correlation: Optional[dict[str, Any]] = None
    loan_number: Optional[str] = None
    product_code: Optional[str] = None
    snapshot: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StockAdjustmentListResponse(BaseModel):
    """Paginated ledger response, newest first."""

    items: list[StockAdjustmentResponse]
    total: int
    page: int
    page_size: int
