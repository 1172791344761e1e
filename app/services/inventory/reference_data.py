"""Product / warehouse / shelf lookups used to validate keys and build ledger snapshots."""

from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError, ValidationError
from app.models.catalog import Product, Warehouse, Shelf


class ReferenceData:
    """Reads reference rows on demand. Nothing is cached between calls."""

    async def get_product(self, db: AsyncSession, product_id: UUID) -> Product:
        product = await db.get(Product, product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    async def get_warehouse(self, db: AsyncSession, warehouse_id: UUID) -> Warehouse:
        warehouse = await db.get(Warehouse, warehouse_id)
        if warehouse is None:
            raise NotFoundError("Warehouse", warehouse_id)
        return warehouse

    async def get_shelf(self, db: AsyncSession, shelf_id: UUID) -> Shelf:
        shelf = await db.get(Shelf, shelf_id)
        if shelf is None:
            raise NotFoundError("Shelf", shelf_id)
        return shelf

    async def check_location(
        self,
        db: AsyncSession,
        warehouse_id: UUID,
        shelf_id: Optional[UUID],
    ) -> None:
        """Both must exist and the shelf must sit in that warehouse."""
        await self.get_warehouse(db, warehouse_id)
        if shelf_id is None:
            return
        shelf = await self.get_shelf(db, shelf_id)
        if shelf.warehouse_id != warehouse_id:
            raise ValidationError(
                f"Shelf {shelf.shelf_code} does not belong to warehouse {warehouse_id}",
                errors=[{"field": "shelf_id", "message": "shelf is in another warehouse", "type": "value_error"}],
            )

    async def snapshot(
        self,
        db: AsyncSession,
        product_id: UUID,
        warehouse_id: UUID,
        shelf_id: Optional[UUID],
        condition: str,
    ) -> dict:
        """Denormalized names stored on each ledger row."""
        product = await self.get_product(db, product_id)
        warehouse = await self.get_warehouse(db, warehouse_id)
        shelf = await self.get_shelf(db, shelf_id) if shelf_id else None

        return {
            "product_id": str(product.id),
            "product_code": product.product_code,
            "product_name": product.display_name,
            "category": product.category,
            "warehouse_id": str(warehouse.id),
            "warehouse_code": warehouse.warehouse_code,
            "warehouse_name": warehouse.warehouse_name,
            "shelf_id": str(shelf.id) if shelf else None,
            "shelf_code": shelf.shelf_code if shelf else None,
            "shelf_name": shelf.shelf_name if shelf else None,
            "condition": condition,
        }
