"""
Concurrent withdrawals from one bucket.

Two transfers of 6 from a bucket holding 10: at most one may succeed and the
balance never goes negative. The first test runs two real sessions against a
file-backed SQLite database; the second pins down the interleaving by feeding
the engine a stale read, so the conditional UPDATE is the only guard left.
"""

import asyncio
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.database import Base
from app.exceptions import ConflictError, InsufficientStockError
from app.models import InventoryBucket, Product, Shelf, StockField, Warehouse
from app.services.inventory import (
    BalanceStore,
    CorrectionEngine,
    LedgerFilters,
    LedgerWriter,
    Location,
    MovementEngine,
    StockPoster,
)
from tests.factories import EmployeeFactory, ProductFactory, ShelfFactory, WarehouseFactory


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """File-backed database so each session gets its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'stock.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 10},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


async def _seed(db):
    product = Product(**ProductFactory())
    w1 = Warehouse(**WarehouseFactory())
    w2 = Warehouse(**WarehouseFactory())
    db.add_all([product, w1, w2])
    await db.flush()
    shelf = Shelf(**ShelfFactory(warehouse_id=w1.id))
    db.add(shelf)
    await db.commit()
    return SimpleNamespace(product=product, w1=w1, w2=w2, shelf=shelf)


@pytest.mark.asyncio
async def test_two_concurrent_transfers_cannot_overdraw(session_factory):
    actor = EmployeeFactory()
    async with session_factory() as db:
        catalog = await _seed(db)
        stocked = await CorrectionEngine().stock_in(
            db, catalog.product.id, Location(catalog.w1.id, catalog.shelf.id), 10, actor
        )
    source_id = stocked.bucket_id

    async def withdraw():
        async with session_factory() as db:
            engine = MovementEngine(max_retries=5)
            return await engine.transfer(db, source_id, Location(catalog.w2.id), 6, actor)

    outcomes = await asyncio.gather(withdraw(), withdraw(), return_exceptions=True)

    successes = [o for o in outcomes if not isinstance(o, Exception)]
    failures = [o for o in outcomes if isinstance(o, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], (InsufficientStockError, ConflictError))

    async with session_factory() as db:
        source = await BalanceStore().get(db, source_id)
        assert source.on_hand == 4
        destination = await BalanceStore().get(db, successes[0].to_bucket_id)
        assert destination.on_hand == 6
        assert await LedgerWriter().replay(db, source_id, StockField.on_hand) == 4


class StaleBalanceStore(BalanceStore):
    """Serves the source bucket as it looked before a competing withdrawal."""

    def __init__(self, stale_on_hand):
        self.stale_on_hand = stale_on_hand

    async def get(self, db, bucket_id):
        bucket = await super().get(db, bucket_id)
        return SimpleNamespace(
            id=bucket.id,
            product_id=bucket.product_id,
            warehouse_id=bucket.warehouse_id,
            shelf_id=bucket.shelf_id,
            condition=bucket.condition,
            location=bucket.location,
            on_hand=self.stale_on_hand,
            on_loan=bucket.on_loan,
        )


@pytest.mark.asyncio
async def test_conditional_update_catches_stale_read(test_db, catalog, actor, stock):
    source_id = await stock(10)
    await MovementEngine().transfer(test_db, source_id, Location(catalog.w2.id), 6, actor)

    late = MovementEngine(poster=StockPoster(balances=StaleBalanceStore(stale_on_hand=10)))
    with pytest.raises(InsufficientStockError) as exc_info:
        await late.transfer(test_db, source_id, Location(catalog.w2.id), 6, actor)

    assert exc_info.value.remaining == 4
    source = await BalanceStore().get(test_db, source_id)
    assert source.on_hand == 4
    assert await LedgerWriter().replay(test_db, source_id, StockField.on_hand) == 4


class VanishingDestinationStore(BalanceStore):
    """Deletes the destination once right after finding it, like a GC committed in between."""

    def __init__(self):
        self.vanished = False

    async def get_or_create(self, db, *args, **kwargs):
        bucket = await super().get_or_create(db, *args, **kwargs)
        if not self.vanished:
            self.vanished = True
            await db.execute(
                delete(InventoryBucket)
                .where(InventoryBucket.id == bucket.id)
                .execution_options(synchronize_session=False)
            )
        return bucket


@pytest.mark.asyncio
async def test_destination_removed_mid_transfer_is_retried(test_db, catalog, actor, stock):
    source_id = await stock(10)
    w2_id = catalog.w2.id
    store = VanishingDestinationStore()
    engine = MovementEngine(poster=StockPoster(balances=store), max_retries=3)

    result = await engine.transfer(test_db, source_id, Location(w2_id), 4, actor)

    assert store.vanished is True
    assert result.remaining == 6
    assert result.destination_on_hand == 4
    assert (await BalanceStore().get(test_db, result.to_bucket_id)).on_hand == 4
    rows, total = await LedgerWriter().find(test_db, LedgerFilters(correlation_id=result.correlation_id))
    assert total == 2
    _, total = await LedgerWriter().find(test_db)
    assert total == 3
