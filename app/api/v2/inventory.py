"""Inventory API - stock buckets, movements, corrections and the ledger."""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.api.deps import DbSession, CurrentActor
from app.config import settings
from app.exceptions import ValidationError
from app.models.inventory import StockCondition, StockField
from app.models.stock_adjustment import ReasonCode
from app.schemas.inventory import (
    AdjustRequest,
    AdjustResponse,
    BucketListResponse,
    BucketResponse,
    ChangeConditionRequest,
    LoanMovementRequest,
    LoanMovementResponse,
    MovementResponse,
    ReturnInRequest,
    StockAdjustmentListResponse,
    StockAdjustmentResponse,
    StockInRequest,
    TransferRequest,
)
from app.services.inventory import (
    BalanceStore,
    BucketFilters,
    CorrectionEngine,
    LedgerFilters,
    LedgerWriter,
    Location,
    MovementEngine,
)

router = APIRouter()

balances = BalanceStore()
ledger = LedgerWriter()
movements = MovementEngine()
corrections = CorrectionEngine()


def _loan_refs(loan_number: Optional[str]) -> Optional[dict]:
    return {"loan_number": loan_number} if loan_number else None


@router.get("/buckets", response_model=BucketListResponse)
async def list_buckets(
    db: DbSession,
    actor: CurrentActor,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.LEDGER_DEFAULT_PAGE_SIZE, ge=1, le=100),
    product_id: Optional[UUID] = None,
    warehouse_id: Optional[UUID] = None,
    shelf_id: Optional[UUID] = None,
    condition: Optional[StockCondition] = None,
    in_stock_only: bool = False,
):
    """List stock buckets with pagination and filtering."""
    filters = BucketFilters(
        product_id=product_id,
        warehouse_id=warehouse_id,
        shelf_id=shelf_id,
        condition=condition,
        in_stock_only=in_stock_only,
    )
    items, total = await balances.find(db, filters, page=page, page_size=page_size)
    return {
        "items": items,
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.get("/buckets/{bucket_id}", response_model=BucketResponse)
async def get_bucket(
    bucket_id: UUID,
    db: DbSession,
    actor: CurrentActor,
):
    """Get a single stock bucket by ID."""
    return await balances.get(db, bucket_id)


@router.post("/stock-in", response_model=AdjustResponse, status_code=status.HTTP_201_CREATED)
async def stock_in(
    request: StockInRequest,
    db: DbSession,
    actor: CurrentActor,
):
    """Receive new units, creating the bucket on first receipt."""
    result = await corrections.stock_in(
        db,
        product_id=request.product_id,
        location=Location(request.warehouse_id, request.shelf_id),
        quantity=request.quantity,
        actor=actor,
        condition=request.condition,
        note=request.note,
    )
    return result.as_dict()


@router.post("/buckets/{bucket_id}/transfer", response_model=MovementResponse)
async def transfer_stock(
    bucket_id: UUID,
    request: TransferRequest,
    db: DbSession,
    actor: CurrentActor,
):
    """Move units to another warehouse/shelf."""
    result = await movements.transfer(
        db,
        bucket_id=bucket_id,
        destination=Location(request.warehouse_id, request.shelf_id),
        quantity=request.quantity,
        actor=actor,
        note=request.note,
    )
    return result.as_dict()


@router.post("/buckets/{bucket_id}/change-condition", response_model=MovementResponse)
async def change_condition(
    bucket_id: UUID,
    request: ChangeConditionRequest,
    db: DbSession,
    actor: CurrentActor,
):
    """Move units into another condition, optionally at another location."""
    destination = None
    if request.warehouse_id is not None:
        destination = Location(request.warehouse_id, request.shelf_id)

    result = await movements.change_condition(
        db,
        bucket_id=bucket_id,
        new_condition=request.new_condition,
        quantity=request.quantity,
        actor=actor,
        destination=destination,
        note=request.note,
    )
    return result.as_dict()


@router.post("/buckets/{bucket_id}/adjust", response_model=AdjustResponse)
async def adjust_stock(
    bucket_id: UUID,
    request: AdjustRequest,
    db: DbSession,
    actor: CurrentActor,
):
    """Signed correction of on_hand or on_loan (positive to add, negative to subtract)."""
    result = await corrections.adjust(
        db,
        bucket_id=bucket_id,
        field=request.field,
        delta=request.delta,
        reason_code=request.reason_code,
        actor=actor,
        note=request.note,
        correlation=_loan_refs(request.loan_number),
    )
    return result.as_dict()


@router.post("/buckets/{bucket_id}/loan-out", response_model=LoanMovementResponse)
async def loan_out(
    bucket_id: UUID,
    request: LoanMovementRequest,
    db: DbSession,
    actor: CurrentActor,
):
    """Lend Good units out (on_hand -> on_loan), or revert an earlier loan-out."""
    operation = corrections.revert_loan_out if request.revert else corrections.loan_out
    result = await operation(
        db, bucket_id, request.quantity, actor,
        correlation=_loan_refs(request.loan_number), note=request.note,
    )
    return result.as_dict()


@router.post("/buckets/{bucket_id}/return-in", response_model=LoanMovementResponse)
async def return_in(
    bucket_id: UUID,
    request: ReturnInRequest,
    db: DbSession,
    actor: CurrentActor,
):
    """
    Loaned units come back (on_loan -> on_hand), or revert an earlier return.

    new_condition and warehouse_id/shelf_id put the returned units into
    another bucket, e.g. when they come back damaged.
    """
    if request.shelf_id is not None and request.warehouse_id is None:
        raise ValidationError("warehouse_id is required when shelf_id is given")
    relocating = request.new_condition is not None or request.warehouse_id is not None
    if request.revert:
        if relocating:
            raise ValidationError("A reverted return cannot change condition or location")
        result = await corrections.revert_return(
            db, bucket_id, request.quantity, actor,
            correlation=_loan_refs(request.loan_number), note=request.note,
        )
        return result.as_dict()

    destination = None
    if request.warehouse_id is not None:
        destination = Location(request.warehouse_id, request.shelf_id)
    result = await corrections.return_in(
        db, bucket_id, request.quantity, actor,
        correlation=_loan_refs(request.loan_number),
        note=request.note,
        new_condition=request.new_condition,
        destination=destination,
    )
    return result.as_dict()


@router.post("/buckets/{bucket_id}/mark-lost", response_model=LoanMovementResponse)
async def mark_lost(
    bucket_id: UUID,
    request: LoanMovementRequest,
    db: DbSession,
    actor: CurrentActor,
):
    """Write off loaned units that will not come back, or revert a write-off."""
    operation = corrections.revert_mark_lost if request.revert else corrections.mark_lost
    result = await operation(
        db, bucket_id, request.quantity, actor,
        correlation=_loan_refs(request.loan_number), note=request.note,
    )
    return result.as_dict()


@router.get("/adjustments", response_model=StockAdjustmentListResponse)
async def list_adjustments(
    db: DbSession,
    actor: CurrentActor,
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.LEDGER_DEFAULT_PAGE_SIZE, ge=1, le=100),
    bucket_id: Optional[UUID] = None,
    correlation_id: Optional[UUID] = None,
    product_code: Optional[str] = None,
    loan_number: Optional[str] = None,
    reason_code: Optional[ReasonCode] = None,
    field: Optional[StockField] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
):
    """Stock ledger, newest first."""
    filters = LedgerFilters(
        bucket_id=bucket_id,
        correlation_id=correlation_id,
        product_code=product_code,
        loan_number=loan_number,
        reason_code=reason_code,
        field=field,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )
    items, total = await ledger.find(db, filters, page=page, page_size=page_size)
    return {
        "items": items,
        "total": total,
        "page": page,
        "page_size": page_size,
    }


@router.get("/adjustments/{adjustment_id}", response_model=StockAdjustmentResponse)
async def get_adjustment(
    adjustment_id: UUID,
    db: DbSession,
    actor: CurrentActor,
):
    """Get a single ledger row by ID."""
    return await ledger.get(db, adjustment_id)
