"""Reference data the stock ledger points at: products, warehouses, shelves."""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
import uuid

from app.database import Base
from app.models.inventory import utcnow


class Product(Base):
    __tablename__ = "products"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    product_code = Column(String(100), unique=True, nullable=False, index=True)
    brand = Column(String(255), nullable=False)
    type = Column(String(255), nullable=True)  # model / variant
    category = Column(String(100), nullable=True, index=True)  # Bor, CPTU, Sondir, Topography, ...
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<Product {self.product_code} - {self.brand}>"

    @property
    def display_name(self) -> str:
        return " ".join(part for part in (self.brand, self.type) if part)


class Warehouse(Base):
    __tablename__ = "warehouses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    warehouse_code = Column(String(50), unique=True, nullable=False)
    warehouse_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    shelves = relationship("Shelf", back_populates="warehouse", lazy="selectin")

    def __repr__(self):
        return f"<Warehouse {self.warehouse_code}>"


class Shelf(Base):
    __tablename__ = "shelves"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shelf_code = Column(String(50), unique=True, nullable=False)
    shelf_name = Column(String(255), nullable=False)
    warehouse_id = Column(UUID(as_uuid=True), ForeignKey("warehouses.id"), nullable=False, index=True)
    description = Column(Text, nullable=True)

    warehouse = relationship("Warehouse", back_populates="shelves", lazy="raise")

    def __repr__(self):
        return f"<Shelf {self.shelf_code}>"
