"""
Balance store: the only code that reads or writes bucket quantities.

Quantities are changed with a single conditional UPDATE ... RETURNING, so
the non-negativity check and the write happen in one statement and the row
lock taken by it serializes concurrent writers on the same bucket.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID, uuid4
import logging

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConflictError, InsufficientStockError, NotFoundError
from app.models.inventory import (
    InventoryBucket,
    StockCondition,
    StockField,
    make_bucket_key,
    utcnow,
)
from app.utils.upsert import dialect_insert

logger = logging.getLogger(__name__)

buckets = InventoryBucket.__table__


@dataclass(frozen=True)
class BalanceChange:
    """Result of one apply_delta call."""

    bucket_id: UUID
    field: StockField
    delta: int
    before: int
    after: int


@dataclass
class BucketFilters:
    product_id: Optional[UUID] = None
    warehouse_id: Optional[UUID] = None
    shelf_id: Optional[UUID] = None
    condition: Optional[StockCondition] = None
    in_stock_only: bool = False


class BalanceStore:
    """Bucket state access. Methods expect to run inside a unit of work."""

    async def get(self, db: AsyncSession, bucket_id: UUID) -> InventoryBucket:
        """Load a bucket fresh from the database (never from the identity map)."""
        result = await db.execute(
            select(InventoryBucket)
            .where(InventoryBucket.id == bucket_id)
            .execution_options(populate_existing=True)
        )
        bucket = result.scalar_one_or_none()
        if bucket is None:
            raise NotFoundError("Inventory bucket", bucket_id)
        return bucket

    async def find_by_key(
        self,
        db: AsyncSession,
        product_id: UUID,
        warehouse_id: UUID,
        shelf_id: Optional[UUID],
        condition: StockCondition,
    ) -> Optional[InventoryBucket]:
        key = make_bucket_key(product_id, warehouse_id, shelf_id, condition)
        result = await db.execute(
            select(InventoryBucket)
            .where(InventoryBucket.bucket_key == key)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create(
        self,
        db: AsyncSession,
        product_id: UUID,
        warehouse_id: UUID,
        shelf_id: Optional[UUID],
        condition: StockCondition,
    ) -> InventoryBucket:
        """
        Upsert the bucket for a natural key with zeroed balances.

        INSERT ... ON CONFLICT DO NOTHING means a racing creator never
        overwrites the balances of the bucket that got there first.
        """
        condition = StockCondition(condition)
        key = make_bucket_key(product_id, warehouse_id, shelf_id, condition)

        stmt = (
            dialect_insert(db, InventoryBucket)
            .values(
                id=uuid4(),
                product_id=product_id,
                warehouse_id=warehouse_id,
                shelf_id=shelf_id,
                condition=condition.value,
                bucket_key=key,
                on_hand=0,
                on_loan=0,
                created_at=utcnow(),
            )
            .on_conflict_do_nothing(index_elements=["bucket_key"])
        )
        result = await db.execute(stmt)
        if result.rowcount:
            logger.info(f"Created inventory bucket {key}")

        bucket = await self.find_by_key(db, product_id, warehouse_id, shelf_id, condition)
        if bucket is None:
            # Garbage-collected by a concurrent transaction between the insert and the read
            logger.info(f"Inventory bucket {key} vanished during upsert")
            raise ConflictError()
        return bucket

    async def apply_delta(
        self,
        db: AsyncSession,
        bucket_id: UUID,
        field: StockField,
        delta: int,
    ) -> BalanceChange:
        """
        Add *delta* to one field and return before/after from the same statement.

        Raises:
            InsufficientStockError: the field would go below zero
            ConflictError: the bucket was removed by a concurrent transaction
        """
        field = StockField(field)
        column = buckets.c[field.column_name]
        now = utcnow()

        values = {field.column_name: column + delta, "updated_at": now}
        if field is StockField.on_hand:
            values["last_in_at" if delta > 0 else "last_out_at"] = now

        stmt = (
            update(buckets)
            .where(buckets.c.id == bucket_id, column + delta >= 0)
            .values(**values)
            .returning(column)
        )
        after = (await db.execute(stmt)).scalar_one_or_none()

        if after is None:
            current = await self.read_field(db, bucket_id, field)
            if current is None:
                # Callers load the bucket earlier in the same unit of work, so a
                # missing row means a concurrent transaction garbage-collected it
                logger.info(f"Inventory bucket {bucket_id} vanished before {field.value} update")
                raise ConflictError()
            raise InsufficientStockError(
                remaining=current,
                requested=-delta,
                field=field.column_name,
            )

        return BalanceChange(
            bucket_id=bucket_id,
            field=field,
            delta=delta,
            before=after - delta,
            after=after,
        )

    async def read_field(self, db: AsyncSession, bucket_id: UUID, field: StockField) -> Optional[int]:
        """Current persisted value of one field, None if the bucket is gone."""
        column = buckets.c[StockField(field).column_name]
        result = await db.execute(select(column).where(buckets.c.id == bucket_id))
        return result.scalar_one_or_none()

    async def delete_if_empty(self, db: AsyncSession, bucket_id: UUID) -> bool:
        """Remove the bucket only when on_hand and on_loan are both 0."""
        result = await db.execute(
            delete(buckets).where(
                buckets.c.id == bucket_id,
                buckets.c.on_hand == 0,
                buckets.c.on_loan == 0,
            )
        )
        deleted = bool(result.rowcount)
        if deleted:
            logger.info(f"Garbage-collected empty inventory bucket {bucket_id}")
        return deleted

    async def find(
        self,
        db: AsyncSession,
        filters: Optional[BucketFilters] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[InventoryBucket], int]:
        """Read-only listing for reports, newest buckets first."""
        filters = filters or BucketFilters()
        query = select(InventoryBucket)

        if filters.product_id:
            query = query.where(InventoryBucket.product_id == filters.product_id)
        if filters.warehouse_id:
            query = query.where(InventoryBucket.warehouse_id == filters.warehouse_id)
        if filters.shelf_id:
            query = query.where(InventoryBucket.shelf_id == filters.shelf_id)
        if filters.condition:
            query = query.where(InventoryBucket.condition == StockCondition(filters.condition).value)
        if filters.in_stock_only:
            query = query.where(InventoryBucket.on_hand > 0)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await db.execute(count_query)).scalar() or 0

        offset = (page - 1) * page_size
        query = (
            query.order_by(InventoryBucket.created_at.desc(), InventoryBucket.bucket_key)
            .offset(offset)
            .limit(page_size)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(query)
        return list(result.scalars().all()), total
