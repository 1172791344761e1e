"""
Ledger writer: appends StockAdjustment rows and answers audit-trail queries.

The writer records a change that BalanceStore has already applied; it never
decides whether the change is allowed. Rows are never updated or deleted.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Optional
from uuid import UUID, uuid4
import logging

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import LedgerIntegrityError, NotFoundError
from app.models.inventory import StockField
from app.models.stock_adjustment import ReasonCode, StockAdjustment
from app.services.inventory.actors import Actor, SystemActor
from app.services.inventory.balance_store import BalanceChange

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class Correlation:
    """Groups the ledger rows written by one engine call."""

    id: UUID
    refs: dict = field(default_factory=dict)

    @classmethod
    def new(cls, **refs) -> "Correlation":
        return cls(id=uuid4(), refs={k: _jsonable(v) for k, v in refs.items() if v is not None})

    def with_refs(self, **refs) -> "Correlation":
        merged = dict(self.refs)
        merged.update({k: _jsonable(v) for k, v in refs.items() if v is not None})
        return Correlation(id=self.id, refs=merged)

    @property
    def loan_number(self) -> Optional[str]:
        return self.refs.get("loan_number")


@dataclass
class LedgerFilters:
    bucket_id: Optional[UUID] = None
    correlation_id: Optional[UUID] = None
    product_code: Optional[str] = None
    loan_number: Optional[str] = None
    reason_code: Optional[ReasonCode] = None
    field: Optional[StockField] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    search: Optional[str] = None


class LedgerWriter:
    async def record(
        self,
        db: AsyncSession,
        change: BalanceChange,
        reason_code: ReasonCode,
        reason_note: Optional[str],
        actor: Actor,
        correlation: Correlation,
        snapshot: dict,
    ) -> StockAdjustment:
        """Append the audit row for *change*. Flushes so it joins the open transaction now."""
        if change.delta == 0 or change.after != change.before + change.delta or change.after < 0:
            raise LedgerIntegrityError(
                "balance change is inconsistent",
                context={
                    "bucket_id": str(change.bucket_id),
                    "field": change.field.value,
                    "before": change.before,
                    "delta": change.delta,
                    "after": change.after,
                },
            )

        row = StockAdjustment(
            id=uuid4(),
            bucket_id=change.bucket_id,
            field=change.field.value,
            delta=change.delta,
            before=change.before,
            after=change.after,
            reason_code=ReasonCode(reason_code).value,
            reason_note=reason_note or None,
            actor_kind=actor.kind,
            actor_id=None if isinstance(actor, SystemActor) else str(actor.id),
            actor_name=actor.name,
            correlation_id=correlation.id,
            correlation=dict(correlation.refs),
            loan_number=correlation.loan_number,
            snapshot=snapshot,
            product_code=snapshot.get("product_code"),
        )
        db.add(row)
        await db.flush()

        logger.debug(
            f"Ledger {row.reason_code} {row.field} {row.delta:+d} "
            f"({row.before}->{row.after}) bucket={row.bucket_id} correlation={row.correlation_id}"
        )
        return row

    async def get(self, db: AsyncSession, adjustment_id: UUID) -> StockAdjustment:
        row = await db.get(StockAdjustment, adjustment_id)
        if row is None:
            raise NotFoundError("Stock adjustment", adjustment_id)
        return row

    async def find(
        self,
        db: AsyncSession,
        filters: Optional[LedgerFilters] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[StockAdjustment], int]:
        """Audit trail, newest first."""
        filters = filters or LedgerFilters()
        query = select(StockAdjustment)

        if filters.bucket_id:
            query = query.where(StockAdjustment.bucket_id == filters.bucket_id)
        if filters.correlation_id:
            query = query.where(StockAdjustment.correlation_id == filters.correlation_id)
        if filters.product_code:
            query = query.where(StockAdjustment.product_code.ilike(f"%{filters.product_code}%"))
        if filters.loan_number:
            query = query.where(StockAdjustment.loan_number == filters.loan_number)
        if filters.reason_code:
            query = query.where(StockAdjustment.reason_code == ReasonCode(filters.reason_code).value)
        if filters.field:
            query = query.where(StockAdjustment.field == StockField(filters.field).value)
        if filters.start_date:
            start = datetime.combine(filters.start_date, time.min, tzinfo=timezone.utc)
            query = query.where(StockAdjustment.created_at >= start)
        if filters.end_date:
            # End date is inclusive up to the last microsecond of that day
            end = datetime.combine(filters.end_date, time.max, tzinfo=timezone.utc)
            query = query.where(StockAdjustment.created_at <= end)
        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.where(
                or_(
                    StockAdjustment.reason_code.ilike(pattern),
                    StockAdjustment.reason_note.ilike(pattern),
                    StockAdjustment.product_code.ilike(pattern),
                    StockAdjustment.actor_name.ilike(pattern),
                )
            )

        count_query = select(func.count()).select_from(query.subquery())
        total = (await db.execute(count_query)).scalar() or 0

        offset = (page - 1) * page_size
        query = (
            query.order_by(StockAdjustment.created_at.desc(), StockAdjustment.field)
            .offset(offset)
            .limit(page_size)
        )
        result = await db.execute(query)
        return list(result.scalars().all()), total

    async def replay(self, db: AsyncSession, bucket_id: UUID, field: StockField) -> int:
        """Sum of every delta recorded against bucket+field."""
        result = await db.execute(
            select(func.coalesce(func.sum(StockAdjustment.delta), 0)).where(
                StockAdjustment.bucket_id == bucket_id,
                StockAdjustment.field == StockField(field).value,
            )
        )
        return int(result.scalar() or 0)
