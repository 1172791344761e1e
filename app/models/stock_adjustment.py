"""Append-only ledger of every change to a bucket's on_hand / on_loan."""
import enum
import uuid

from sqlalchemy import Column, String, Integer, DateTime, Index, JSON, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID

from app.database import Base
from app.models.inventory import utcnow


class ReasonCode(str, enum.Enum):
    stock_in = "STOCK_IN"
    loan_out = "LOAN_OUT"
    revert_loan_out = "REVERT_LOAN_OUT"
    return_in = "RETURN_IN"
    revert_return = "REVERT_RETURN"
    mark_lost = "MARK_LOST"
    revert_mark_lost = "REVERT_MARK_LOST"
    move_internal = "MOVE_INTERNAL"
    manual_edit = "MANUAL_EDIT"
    manual_correction = "MANUAL_CORRECTION"
    system_correction = "SYSTEM_CORRECTION"
    change_condition = "CHANGE_CONDITION"


class StockAdjustment(Base):
    """
    One before/after change on one bucket field.

    bucket_id is deliberately not a foreign key: buckets are deleted when they
    empty out and their history must stay. The snapshot carries the names
    needed to read the row afterwards.
    """

    __tablename__ = "stock_adjustments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bucket_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    field = Column(String(10), nullable=False)  # ON_HAND, ON_LOAN
    delta = Column(Integer, nullable=False)
    before = Column("qty_before", Integer, nullable=False)
    after = Column("qty_after", Integer, nullable=False)

    reason_code = Column(String(30), nullable=False, index=True)
    reason_note = Column(String(500), nullable=True)

    # Who
    actor_kind = Column(String(20), nullable=False)  # employee, admin, system
    actor_id = Column(String(64), nullable=True)
    actor_name = Column(String(200), nullable=False)

    # Grouping of related rows (both sides of a movement share correlation_id)
    correlation_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    correlation = Column(JSON, nullable=False, default=dict)
    loan_number = Column(String(50), nullable=True, index=True)

    # Names captured at write time
    snapshot = Column(JSON, nullable=False, default=dict)
    product_code = Column(String(100), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("delta <> 0", name="ck_stock_adjustments_delta_non_zero"),
        CheckConstraint("qty_after = qty_before + delta", name="ck_stock_adjustments_after_matches"),
        Index("ix_stock_adjustments_created_at", created_at.desc()),
        Index("ix_stock_adjustments_bucket_field", "bucket_id", "field"),
    )

    def __repr__(self):
        return f"<StockAdjustment {self.reason_code} {self.field} {self.delta:+d} bucket={self.bucket_id}>"
