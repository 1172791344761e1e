"""
Movement engine: moves on_hand quantity from one bucket into another.

A transfer changes the location (warehouse/shelf), a condition change
changes the condition and optionally the location. Either way the source is
debited, the destination credited, both ledger rows share a correlation id,
and an emptied source bucket is garbage-collected, all in one unit of work.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import InsufficientStockError, InvalidTransitionError, ValidationError
from app.models.inventory import StockCondition, StockField
from app.models.stock_adjustment import ReasonCode
from app.services.inventory.actors import Actor, require_actor
from app.services.inventory.ledger_writer import Correlation
from app.services.inventory.posting import StockPoster
from app.services.inventory.unit_of_work import run_unit_of_work

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Location:
    warehouse_id: UUID
    shelf_id: Optional[UUID] = None

    def as_tuple(self) -> tuple:
        return (self.warehouse_id, self.shelf_id)


@dataclass(frozen=True)
class MovementResult:
    correlation_id: UUID
    from_bucket_id: UUID
    remaining: int
    source_deleted: bool
    to_bucket_id: UUID
    added: int
    destination_on_hand: int
    destination_condition: str

    def as_dict(self) -> dict:
        return {
            "correlation_id": str(self.correlation_id),
            "from": {
                "bucket_id": str(self.from_bucket_id),
                "remaining": self.remaining,
                "deleted": self.source_deleted,
            },
            "to": {
                "bucket_id": str(self.to_bucket_id),
                "added": self.added,
                "on_hand": self.destination_on_hand,
                "condition": self.destination_condition,
            },
        }


def validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError(
            "Quantity must be a positive integer",
            errors=[{"field": "quantity", "message": "must be > 0", "type": "value_error"}],
        )
    return quantity


def parse_condition(condition) -> StockCondition:
    try:
        return StockCondition(condition)
    except ValueError:
        allowed = ", ".join(c.value for c in StockCondition)
        raise InvalidTransitionError(f"Unknown condition {condition!r}, expected one of: {allowed}")


class MovementEngine:
    def __init__(self, poster: Optional[StockPoster] = None, max_retries: Optional[int] = None):
        self.poster = poster or StockPoster()
        self.max_retries = max_retries

    @property
    def balances(self):
        return self.poster.balances

    @property
    def reference(self):
        return self.poster.reference

    async def transfer(
        self,
        db: AsyncSession,
        bucket_id: UUID,
        destination: Location,
        quantity: int,
        actor: Actor,
        note: Optional[str] = None,
    ) -> MovementResult:
        """Move *quantity* units to another warehouse/shelf, keeping the condition."""
        quantity = validate_quantity(quantity)
        actor = require_actor(actor)
        if destination is None or destination.warehouse_id is None:
            raise ValidationError(
                "Destination warehouse is required",
                errors=[{"field": "destination", "message": "missing destination", "type": "missing"}],
            )

        async def work(session: AsyncSession) -> MovementResult:
            source = await self.balances.get(session, bucket_id)
            if destination.as_tuple() == source.location:
                raise InvalidTransitionError("Destination is the same location as the source")
            return await self._move(
                session,
                source=source,
                quantity=quantity,
                condition=StockCondition(source.condition),
                location=destination,
                reason_code=ReasonCode.move_internal,
                actor=actor,
                note=note,
            )

        result = await run_unit_of_work(db, work, operation="transfer", max_retries=self.max_retries)
        logger.info(
            f"Transferred {quantity} from bucket {result.from_bucket_id} to {result.to_bucket_id} "
            f"by {actor.kind}:{actor.name}"
        )
        return result

    async def change_condition(
        self,
        db: AsyncSession,
        bucket_id: UUID,
        new_condition: StockCondition,
        quantity: int,
        actor: Actor,
        destination: Optional[Location] = None,
        note: Optional[str] = None,
    ) -> MovementResult:
        """Reclassify *quantity* units into another condition, optionally relocating them too."""
        quantity = validate_quantity(quantity)
        condition = parse_condition(new_condition)
        actor = require_actor(actor)

        async def work(session: AsyncSession) -> MovementResult:
            source = await self.balances.get(session, bucket_id)
            location = destination or Location(source.warehouse_id, source.shelf_id)
            if condition.value == source.condition and location.as_tuple() == source.location:
                raise InvalidTransitionError("Stock is already in that condition at that location")
            return await self._move(
                session,
                source=source,
                quantity=quantity,
                condition=condition,
                location=location,
                reason_code=ReasonCode.change_condition,
                actor=actor,
                note=note,
            )

        result = await run_unit_of_work(db, work, operation="change_condition", max_retries=self.max_retries)
        logger.info(
            f"Changed condition of {quantity} from bucket {result.from_bucket_id} "
            f"to {condition.value} in {result.to_bucket_id}"
        )
        return result

    async def _move(
        self,
        db: AsyncSession,
        *,
        source,
        quantity: int,
        condition: StockCondition,
        location: Location,
        reason_code: ReasonCode,
        actor: Actor,
        note: Optional[str],
    ) -> MovementResult:
        if quantity > source.on_hand:
            raise InsufficientStockError(remaining=source.on_hand, requested=quantity)

        await self.reference.check_location(db, location.warehouse_id, location.shelf_id)
        target = await self.balances.get_or_create(
            db, source.product_id, location.warehouse_id, location.shelf_id, condition
        )

        correlation = Correlation.new(
            product_id=source.product_id,
            from_bucket_id=source.id,
            to_bucket_id=target.id,
        )
        source_snapshot = await self.poster.snapshot_for(db, source)
        target_snapshot = await self.poster.snapshot_for(db, target)

        debit = await self.poster.post(
            db, source, StockField.on_hand, -quantity, reason_code, actor,
            correlation, note=note, snapshot=source_snapshot,
        )
        credit = await self.poster.post(
            db, target, StockField.on_hand, quantity, reason_code, actor,
            correlation, note=note, snapshot=target_snapshot,
        )

        deleted = await self.balances.delete_if_empty(db, source.id)

        return MovementResult(
            correlation_id=correlation.id,
            from_bucket_id=source.id,
            remaining=debit.change.after,
            source_deleted=deleted,
            to_bucket_id=target.id,
            added=quantity,
            destination_on_hand=credit.change.after,
            destination_condition=condition.value,
        )
