"""Inventory bucket model: stock of one product in one place and condition."""
from datetime import datetime, timezone
import enum
import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StockCondition(str, enum.Enum):
    good = "Good"
    damaged = "Damaged"
    maintenance = "Maintenance"
    lost = "Lost"


class StockField(str, enum.Enum):
    on_hand = "ON_HAND"
    on_loan = "ON_LOAN"

    @property
    def column_name(self) -> str:
        return self.value.lower()


def make_bucket_key(product_id, warehouse_id, shelf_id, condition) -> str:
    """Natural key as a single string so a missing shelf still takes part in uniqueness."""
    condition = StockCondition(condition)
    return f"{product_id}:{warehouse_id}:{shelf_id or '-'}:{condition.value}"


class InventoryBucket(Base):
    """On-hand and on-loan quantity for (product, warehouse, shelf, condition)."""

    __tablename__ = "inventory_buckets"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = Column(UUID(as_uuid=True), ForeignKey("warehouses.id"), nullable=False, index=True)
    shelf_id = Column(UUID(as_uuid=True), ForeignKey("shelves.id"), nullable=True, index=True)
    condition = Column(String(20), nullable=False, default=StockCondition.good.value)  # Good, Damaged, Maintenance, Lost

    # Unique natural key, see make_bucket_key
    bucket_key = Column(String(160), nullable=False, unique=True)

    on_hand = Column(Integer, nullable=False, default=0)
    on_loan = Column(Integer, nullable=False, default=0)

    last_in_at = Column(DateTime(timezone=True), nullable=True)
    last_out_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    product = relationship("Product", lazy="raise")
    warehouse = relationship("Warehouse", lazy="raise")
    shelf = relationship("Shelf", lazy="raise")

    __table_args__ = (
        CheckConstraint("on_hand >= 0", name="ck_inventory_buckets_on_hand_non_negative"),
        CheckConstraint("on_loan >= 0", name="ck_inventory_buckets_on_loan_non_negative"),
        Index("ix_inventory_buckets_location", "warehouse_id", "shelf_id"),
    )

    def __repr__(self):
        return f"<InventoryBucket {self.bucket_key} on_hand={self.on_hand} on_loan={self.on_loan}>"

    @property
    def location(self) -> tuple:
        return (self.warehouse_id, self.shelf_id)

    @property
    def is_empty(self) -> bool:
        return (self.on_hand or 0) == 0 and (self.on_loan or 0) == 0

    def quantity(self, field: StockField) -> int:
        return getattr(self, StockField(field).column_name) or 0
