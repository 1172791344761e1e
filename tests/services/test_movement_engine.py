"""
Tests for MovementEngine: transfers and condition changes between buckets.
"""

import uuid

import pytest

from app.exceptions import (
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.models import ReasonCode, StockCondition, StockField
from app.services.inventory import (
    BalanceStore,
    BucketFilters,
    LedgerFilters,
    LedgerWriter,
    Location,
    MovementEngine,
    StockPoster,
)


@pytest.fixture
def engine():
    return MovementEngine()


async def _bucket(db, bucket_id):
    return await BalanceStore().get(db, bucket_id)


@pytest.mark.asyncio
async def test_partial_transfer_moves_stock_and_writes_paired_rows(test_db, catalog, actor, stock, engine):
    source_id = await stock(10)

    result = await engine.transfer(test_db, source_id, Location(catalog.w2.id, catalog.s3.id), 4, actor)

    assert result.remaining == 6
    assert result.source_deleted is False
    assert result.added == 4
    assert result.destination_on_hand == 4
    assert (await _bucket(test_db, source_id)).on_hand == 6
    destination = await _bucket(test_db, result.to_bucket_id)
    assert destination.on_hand == 4
    assert destination.condition == "Good"
    assert destination.location == (catalog.w2.id, catalog.s3.id)

    rows, total = await LedgerWriter().find(test_db, LedgerFilters(correlation_id=result.correlation_id))
    assert total == 2
    by_bucket = {r.bucket_id: r for r in rows}
    assert by_bucket[source_id].delta == -4
    assert (by_bucket[source_id].before, by_bucket[source_id].after) == (10, 6)
    assert by_bucket[result.to_bucket_id].delta == 4
    assert all(r.reason_code == ReasonCode.move_internal.value for r in rows)
    assert all(r.correlation["from_bucket_id"] == str(source_id) for r in rows)
    assert all(r.correlation["to_bucket_id"] == str(result.to_bucket_id) for r in rows)


@pytest.mark.asyncio
async def test_over_transfer_is_rejected_without_changes(test_db, catalog, actor, stock, engine):
    source_id = await stock(10)
    destination_id = await stock(2, warehouse=catalog.w2, shelf=catalog.s3)

    with pytest.raises(InsufficientStockError) as exc_info:
        await engine.transfer(test_db, source_id, Location(catalog.w2.id, catalog.s3.id), 15, actor)

    assert exc_info.value.remaining == 10
    assert (await _bucket(test_db, source_id)).on_hand == 10
    assert (await _bucket(test_db, destination_id)).on_hand == 2
    _, total = await LedgerWriter().find(test_db)
    assert total == 2


@pytest.mark.asyncio
async def test_change_condition_creates_damaged_bucket(test_db, catalog, actor, stock, engine):
    source_id = await stock(10)

    result = await engine.change_condition(test_db, source_id, StockCondition.damaged, 3, actor)

    assert (await _bucket(test_db, source_id)).on_hand == 7
    damaged = await _bucket(test_db, result.to_bucket_id)
    assert damaged.condition == "Damaged"
    assert damaged.on_hand == 3
    assert damaged.location == (catalog.w1.id, catalog.s1.id)
    assert result.destination_condition == "Damaged"

    rows, _ = await LedgerWriter().find(test_db, LedgerFilters(correlation_id=result.correlation_id))
    assert {r.reason_code for r in rows} == {ReasonCode.change_condition.value}


@pytest.mark.asyncio
async def test_change_condition_adds_to_existing_bucket(test_db, catalog, actor, stock, engine):
    source_id = await stock(10)
    damaged_id = await stock(2, condition=StockCondition.damaged)

    result = await engine.change_condition(test_db, source_id, "Damaged", 3, actor)

    assert result.to_bucket_id == damaged_id
    assert (await _bucket(test_db, damaged_id)).on_hand == 5


@pytest.mark.asyncio
async def test_change_condition_with_relocation(test_db, catalog, actor, stock, engine):
    source_id = await stock(4)

    result = await engine.change_condition(
        test_db, source_id, "Maintenance", 4, actor, destination=Location(catalog.w2.id, None)
    )

    assert result.source_deleted is True
    target = await _bucket(test_db, result.to_bucket_id)
    assert target.condition == "Maintenance"
    assert target.location == (catalog.w2.id, None)


@pytest.mark.asyncio
async def test_full_transfer_garbage_collects_source(test_db, catalog, actor, stock, engine):
    source_id = await stock(5)

    result = await engine.transfer(test_db, source_id, Location(catalog.w1.id, catalog.s2.id), 5, actor)

    assert result.remaining == 0
    assert result.source_deleted is True
    with pytest.raises(NotFoundError):
        await _bucket(test_db, source_id)

    # History of the deleted bucket is still readable through its snapshot
    rows, total = await LedgerWriter().find(test_db, LedgerFilters(bucket_id=source_id))
    assert total == 2
    assert all(r.snapshot["shelf_code"] == catalog.s1.shelf_code for r in rows)
    assert all(r.snapshot["product_code"] == catalog.product.product_code for r in rows)


@pytest.mark.asyncio
async def test_transfer_to_same_location_is_invalid(test_db, catalog, actor, stock, engine):
    source_id = await stock(10)

    with pytest.raises(InvalidTransitionError) as exc_info:
        await engine.transfer(test_db, source_id, Location(catalog.w1.id, catalog.s1.id), 1, actor)
    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "Destination is the same location as the source"


@pytest.mark.asyncio
async def test_change_to_same_condition_is_invalid(test_db, catalog, actor, stock, engine):
    source_id = await stock(10)

    with pytest.raises(InvalidTransitionError):
        await engine.change_condition(test_db, source_id, "Good", 1, actor)


@pytest.mark.asyncio
async def test_unknown_condition_is_invalid(test_db, catalog, actor, stock, engine):
    source_id = await stock(10)

    with pytest.raises(InvalidTransitionError):
        await engine.change_condition(test_db, source_id, "Broken", 1, actor)


@pytest.mark.asyncio
async def test_shelf_from_other_warehouse_is_rejected(test_db, catalog, actor, stock, engine):
    source_id = await stock(10)

    with pytest.raises(ValidationError):
        await engine.transfer(test_db, source_id, Location(catalog.w2.id, catalog.s1.id), 1, actor)
    assert (await _bucket(test_db, source_id)).on_hand == 10


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -3, 1.5, True])
async def test_quantity_must_be_positive_integer(test_db, catalog, actor, stock, engine, quantity):
    source_id = await stock(10)

    with pytest.raises(ValidationError):
        await engine.transfer(test_db, source_id, Location(catalog.w2.id), quantity, actor)


@pytest.mark.asyncio
async def test_missing_actor_is_rejected(test_db, catalog, stock, engine):
    source_id = await stock(10)

    with pytest.raises(ValidationError):
        await engine.transfer(test_db, source_id, Location(catalog.w2.id), 1, None)


@pytest.mark.asyncio
async def test_unknown_bucket_is_not_found(test_db, catalog, actor, engine):
    with pytest.raises(NotFoundError):
        await engine.transfer(test_db, uuid.uuid4(), Location(catalog.w2.id), 1, actor)


class FailingCreditPoster(StockPoster):
    """Blows up on the credit side, after the debit was applied and recorded."""

    async def post(self, db, bucket, field, delta, *args, **kwargs):
        if delta > 0:
            raise RuntimeError("connection dropped")
        return await super().post(db, bucket, field, delta, *args, **kwargs)


@pytest.mark.asyncio
async def test_failure_between_debit_and_credit_rolls_back_everything(test_db, catalog, actor, stock):
    source_id = await stock(10)
    w2_id, s3_id = catalog.w2.id, catalog.s3.id
    engine = MovementEngine(poster=FailingCreditPoster())

    with pytest.raises(RuntimeError):
        await engine.transfer(test_db, source_id, Location(w2_id, s3_id), 4, actor)

    assert (await _bucket(test_db, source_id)).on_hand == 10
    buckets, total = await BalanceStore().find(test_db, BucketFilters(warehouse_id=w2_id))
    assert total == 0
    _, total = await LedgerWriter().find(test_db)
    assert total == 1


@pytest.mark.asyncio
async def test_ledger_replays_to_balances_after_movements(test_db, catalog, actor, stock, engine):
    source_id = await stock(10)
    first = await engine.transfer(test_db, source_id, Location(catalog.w2.id, catalog.s3.id), 4, actor)
    second = await engine.change_condition(test_db, source_id, "Damaged", 2, actor)
    await engine.transfer(test_db, first.to_bucket_id, Location(catalog.w1.id, catalog.s2.id), 1, actor)

    ledger = LedgerWriter()
    for bucket_id in (source_id, first.to_bucket_id, second.to_bucket_id):
        bucket = await _bucket(test_db, bucket_id)
        assert await ledger.replay(test_db, bucket_id, StockField.on_hand) == bucket.on_hand
