"""
Tests for BalanceStore: bucket upsert, conditional deltas and garbage collection.

BalanceStore is exercised directly here, outside the engines, so each test
commits or rolls back the session itself.
"""

import uuid

import pytest

from app.exceptions import ConflictError, InsufficientStockError, NotFoundError
from app.models import StockCondition, StockField
from app.services.inventory import BalanceStore, BucketFilters


@pytest.fixture
def store():
    return BalanceStore()


@pytest.mark.asyncio
async def test_get_missing_bucket_raises_not_found(test_db, store):
    with pytest.raises(NotFoundError) as exc_info:
        await store.get(test_db, uuid.uuid4())
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_get_or_create_is_idempotent_per_key(test_db, catalog, store):
    first = await store.get_or_create(
        test_db, catalog.product.id, catalog.w1.id, catalog.s1.id, StockCondition.good
    )
    second = await store.get_or_create(
        test_db, catalog.product.id, catalog.w1.id, catalog.s1.id, StockCondition.good
    )
    await test_db.commit()

    assert first.id == second.id
    assert second.on_hand == 0
    assert second.on_loan == 0


@pytest.mark.asyncio
async def test_get_or_create_without_shelf_still_unique(test_db, catalog, store):
    first = await store.get_or_create(test_db, catalog.product.id, catalog.w2.id, None, "Good")
    second = await store.get_or_create(test_db, catalog.product.id, catalog.w2.id, None, "Good")
    await test_db.commit()

    assert first.id == second.id
    assert first.shelf_id is None


@pytest.mark.asyncio
async def test_get_or_create_condition_is_part_of_key(test_db, catalog, store):
    good = await store.get_or_create(test_db, catalog.product.id, catalog.w1.id, catalog.s1.id, "Good")
    damaged = await store.get_or_create(test_db, catalog.product.id, catalog.w1.id, catalog.s1.id, "Damaged")
    await test_db.commit()

    assert good.id != damaged.id
    assert damaged.condition == "Damaged"


@pytest.mark.asyncio
async def test_get_or_create_does_not_reset_existing_balance(test_db, catalog, store):
    bucket = await store.get_or_create(test_db, catalog.product.id, catalog.w1.id, catalog.s1.id, "Good")
    await store.apply_delta(test_db, bucket.id, StockField.on_hand, 7)

    again = await store.get_or_create(test_db, catalog.product.id, catalog.w1.id, catalog.s1.id, "Good")
    await test_db.commit()

    assert again.on_hand == 7


@pytest.mark.asyncio
async def test_apply_delta_returns_before_and_after(test_db, catalog, store):
    bucket = await store.get_or_create(test_db, catalog.product.id, catalog.w1.id, catalog.s1.id, "Good")

    change = await store.apply_delta(test_db, bucket.id, StockField.on_hand, 10)
    assert (change.before, change.after, change.delta) == (0, 10, 10)

    change = await store.apply_delta(test_db, bucket.id, StockField.on_hand, -4)
    assert (change.before, change.after) == (10, 6)
    await test_db.commit()

    reloaded = await store.get(test_db, bucket.id)
    assert reloaded.on_hand == 6
    assert reloaded.last_in_at is not None
    assert reloaded.last_out_at is not None


@pytest.mark.asyncio
async def test_apply_delta_refuses_to_go_negative(test_db, catalog, store):
    bucket = await store.get_or_create(test_db, catalog.product.id, catalog.w1.id, catalog.s1.id, "Good")
    await store.apply_delta(test_db, bucket.id, StockField.on_hand, 3)

    with pytest.raises(InsufficientStockError) as exc_info:
        await store.apply_delta(test_db, bucket.id, StockField.on_hand, -5)

    assert exc_info.value.remaining == 3
    assert exc_info.value.requested == 5
    assert exc_info.value.detail == "Insufficient stock, remaining: 3"
    assert await store.read_field(test_db, bucket.id, StockField.on_hand) == 3


@pytest.mark.asyncio
async def test_apply_delta_on_loan_is_guarded_too(test_db, catalog, store):
    bucket = await store.get_or_create(test_db, catalog.product.id, catalog.w1.id, catalog.s1.id, "Good")

    with pytest.raises(InsufficientStockError) as exc_info:
        await store.apply_delta(test_db, bucket.id, StockField.on_loan, -1)
    assert exc_info.value.field == "on_loan"


@pytest.mark.asyncio
async def test_apply_delta_on_vanished_bucket_is_a_conflict(test_db, store):
    with pytest.raises(ConflictError) as exc_info:
        await store.apply_delta(test_db, uuid.uuid4(), StockField.on_hand, 1)
    assert exc_info.value.status_code == 409


class BlindKeyStore(BalanceStore):
    """Never finds the row it just upserted, as if a concurrent GC deleted it."""

    async def find_by_key(self, db, *args, **kwargs):
        return None


@pytest.mark.asyncio
async def test_get_or_create_of_vanished_bucket_is_a_conflict(test_db, catalog):
    with pytest.raises(ConflictError):
        await BlindKeyStore().get_or_create(
            test_db, catalog.product.id, catalog.w1.id, catalog.s1.id, "Good"
        )


@pytest.mark.asyncio
async def test_delete_if_empty_only_removes_empty_buckets(test_db, catalog, store):
    bucket = await store.get_or_create(test_db, catalog.product.id, catalog.w1.id, catalog.s1.id, "Good")
    await store.apply_delta(test_db, bucket.id, StockField.on_loan, 2)

    assert await store.delete_if_empty(test_db, bucket.id) is False

    await store.apply_delta(test_db, bucket.id, StockField.on_loan, -2)
    assert await store.delete_if_empty(test_db, bucket.id) is True
    await test_db.commit()

    assert await store.find_by_key(
        test_db, catalog.product.id, catalog.w1.id, catalog.s1.id, StockCondition.good
    ) is None


@pytest.mark.asyncio
async def test_find_filters_and_paginates(test_db, catalog, store):
    good = await store.get_or_create(test_db, catalog.product.id, catalog.w1.id, catalog.s1.id, "Good")
    await store.get_or_create(test_db, catalog.product.id, catalog.w1.id, catalog.s2.id, "Good")
    damaged = await store.get_or_create(test_db, catalog.product.id, catalog.w2.id, catalog.s3.id, "Damaged")
    await store.apply_delta(test_db, good.id, StockField.on_hand, 5)
    await store.apply_delta(test_db, damaged.id, StockField.on_hand, 1)
    await test_db.commit()

    items, total = await store.find(test_db, BucketFilters(warehouse_id=catalog.w1.id))
    assert total == 2
    assert {b.warehouse_id for b in items} == {catalog.w1.id}

    items, total = await store.find(test_db, BucketFilters(condition=StockCondition.damaged))
    assert total == 1
    assert items[0].id == damaged.id

    items, total = await store.find(test_db, BucketFilters(in_stock_only=True))
    assert total == 2

    items, total = await store.find(test_db, page=2, page_size=2)
    assert total == 3
    assert len(items) == 1
