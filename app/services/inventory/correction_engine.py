"""
Correction engine: single-bucket stock changes.

adjust() is the generic signed correction on one field. The loan helpers
cover the bookkeeping the loan and return flows do on one bucket (shift
between on_hand and on_loan, write off lost units, and their reverts).
stock_in() receives new units into a bucket, creating it if needed.
return_in() may land units in another condition or location bucket.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import InvalidTransitionError, ValidationError
from app.models.inventory import StockCondition, StockField
from app.models.stock_adjustment import ReasonCode
from app.services.document_numbers import next_document_number
from app.services.inventory.actors import Actor, require_actor
from app.services.inventory.ledger_writer import Correlation
from app.services.inventory.movement_engine import Location, parse_condition, validate_quantity
from app.services.inventory.posting import StockPoster
from app.services.inventory.unit_of_work import run_unit_of_work

logger = logging.getLogger(__name__)

LOAN_NUMBER_PREFIX = "LOAN"


@dataclass(frozen=True)
class AdjustmentResult:
    bucket_id: UUID
    field: StockField
    before: int
    after: int
    deleted: bool
    adjustment_id: UUID
    correlation_id: UUID

    def as_dict(self) -> dict:
        return {
            "bucket_id": str(self.bucket_id),
            "field": self.field.value,
            "before": self.before,
            "after": self.after,
            "deleted": self.deleted,
            "adjustment_id": str(self.adjustment_id),
            "correlation_id": str(self.correlation_id),
        }


@dataclass(frozen=True)
class ShiftResult:
    """Outcome of a loan bookkeeping call on one bucket."""

    bucket_id: UUID
    on_hand: int
    on_loan: int
    deleted: bool
    correlation_id: UUID
    # set when a return landed in another bucket
    to_bucket_id: Optional[UUID] = None
    to_on_hand: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            "bucket_id": str(self.bucket_id),
            "on_hand": self.on_hand,
            "on_loan": self.on_loan,
            "deleted": self.deleted,
            "correlation_id": str(self.correlation_id),
            "to_bucket_id": str(self.to_bucket_id) if self.to_bucket_id else None,
            "to_on_hand": self.to_on_hand,
        }


def _correlation_from(refs: Optional[dict], **extra) -> Correlation:
    return Correlation.new(**{**(refs or {}), **extra})


class CorrectionEngine:
    def __init__(self, poster: Optional[StockPoster] = None, max_retries: Optional[int] = None):
        self.poster = poster or StockPoster()
        self.max_retries = max_retries

    @property
    def balances(self):
        return self.poster.balances

    async def adjust(
        self,
        db: AsyncSession,
        bucket_id: UUID,
        field: StockField,
        delta: int,
        reason_code: ReasonCode,
        actor: Actor,
        note: Optional[str] = None,
        correlation: Optional[dict] = None,
    ) -> AdjustmentResult:
        """Apply one signed delta to one field of one bucket."""
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValidationError(
                "Delta must be a non-zero integer",
                errors=[{"field": "delta", "message": "must not be 0", "type": "value_error"}],
            )
        try:
            field = StockField(field)
            reason_code = ReasonCode(reason_code)
        except ValueError as e:
            raise ValidationError(str(e))
        actor = require_actor(actor)

        async def work(session: AsyncSession) -> AdjustmentResult:
            bucket = await self.balances.get(session, bucket_id)
            corr = _correlation_from(correlation, product_id=bucket.product_id, bucket_id=bucket.id)
            posting = await self.poster.post(
                session, bucket, field, delta, reason_code, actor, corr, note=note
            )
            deleted = False
            if delta < 0:
                deleted = await self.balances.delete_if_empty(session, bucket.id)
            return AdjustmentResult(
                bucket_id=bucket.id,
                field=field,
                before=posting.change.before,
                after=posting.change.after,
                deleted=deleted,
                adjustment_id=posting.adjustment.id,
                correlation_id=corr.id,
            )

        result = await run_unit_of_work(db, work, operation="adjust", max_retries=self.max_retries)
        logger.info(
            f"Adjusted {field.value} of bucket {bucket_id} by {delta:+d} "
            f"({reason_code.value}) by {actor.kind}:{actor.name}"
        )
        return result

    async def stock_in(
        self,
        db: AsyncSession,
        product_id: UUID,
        location: Location,
        quantity: int,
        actor: Actor,
        condition: StockCondition = StockCondition.good,
        note: Optional[str] = None,
        correlation: Optional[dict] = None,
    ) -> AdjustmentResult:
        """Receive units into the bucket for this key, creating the bucket on first receipt."""
        quantity = validate_quantity(quantity)
        condition = parse_condition(condition)
        actor = require_actor(actor)
        if location is None or location.warehouse_id is None:
            raise ValidationError(
                "Warehouse is required",
                errors=[{"field": "warehouse_id", "message": "missing warehouse", "type": "missing"}],
            )

        async def work(session: AsyncSession) -> AdjustmentResult:
            await self.poster.reference.get_product(session, product_id)
            await self.poster.reference.check_location(session, location.warehouse_id, location.shelf_id)
            bucket = await self.balances.get_or_create(
                session, product_id, location.warehouse_id, location.shelf_id, condition
            )
            corr = _correlation_from(correlation, product_id=product_id, bucket_id=bucket.id)
            posting = await self.poster.post(
                session, bucket, StockField.on_hand, quantity, ReasonCode.stock_in, actor, corr, note=note
            )
            return AdjustmentResult(
                bucket_id=bucket.id,
                field=StockField.on_hand,
                before=posting.change.before,
                after=posting.change.after,
                deleted=False,
                adjustment_id=posting.adjustment.id,
                correlation_id=corr.id,
            )

        result = await run_unit_of_work(db, work, operation="stock_in", max_retries=self.max_retries)
        logger.info(f"Stocked in {quantity} of product {product_id} into bucket {result.bucket_id}")
        return result

    async def loan_out(self, db, bucket_id, quantity, actor, correlation=None, note=None) -> ShiftResult:
        """Units leave the shelf on a loan: on_hand -> on_loan. Only Good stock can be lent."""
        return await self._shift(
            db, bucket_id, quantity, actor,
            steps=((StockField.on_hand, -1), (StockField.on_loan, +1)),
            reason_code=ReasonCode.loan_out,
            correlation=correlation, note=note,
            require_good=True,
            number_prefix=LOAN_NUMBER_PREFIX,
        )

    async def revert_loan_out(self, db, bucket_id, quantity, actor, correlation=None, note=None) -> ShiftResult:
        return await self._shift(
            db, bucket_id, quantity, actor,
            steps=((StockField.on_loan, -1), (StockField.on_hand, +1)),
            reason_code=ReasonCode.revert_loan_out,
            correlation=correlation, note=note,
        )

    async def return_in(
        self,
        db: AsyncSession,
        bucket_id: UUID,
        quantity: int,
        actor: Actor,
        correlation: Optional[dict] = None,
        note: Optional[str] = None,
        new_condition: Optional[StockCondition] = None,
        destination: Optional[Location] = None,
    ) -> ShiftResult:
        """
        Loaned units come back: on_loan -> on_hand.

        With new_condition and/or destination the units land in the bucket
        for that condition and location instead of the one they were lent
        from, which is how returned stock comes back Damaged or under
        Maintenance. Both rows share one correlation and the loan bucket is
        deleted once empty.
        """
        quantity = validate_quantity(quantity)
        condition = parse_condition(new_condition) if new_condition is not None else None
        actor = require_actor(actor)
        if destination is not None and destination.warehouse_id is None:
            raise ValidationError(
                "Return warehouse is required when returning to another location",
                errors=[{"field": "warehouse_id", "message": "missing warehouse", "type": "missing"}],
            )

        async def work(session: AsyncSession) -> ShiftResult:
            source = await self.balances.get(session, bucket_id)
            target_condition = condition or StockCondition(source.condition)
            location = destination or Location(source.warehouse_id, source.shelf_id)

            target = source
            if target_condition.value != source.condition or location.as_tuple() != source.location:
                await self.poster.reference.check_location(session, location.warehouse_id, location.shelf_id)
                target = await self.balances.get_or_create(
                    session, source.product_id, location.warehouse_id, location.shelf_id, target_condition
                )
            moved = target.id != source.id

            refs = {"to_bucket_id": target.id} if moved else {}
            corr = _correlation_from(correlation, product_id=source.product_id, bucket_id=source.id, **refs)
            source_snapshot = await self.poster.snapshot_for(session, source)
            target_snapshot = await self.poster.snapshot_for(session, target) if moved else source_snapshot

            debit = await self.poster.post(
                session, source, StockField.on_loan, -quantity, ReasonCode.return_in, actor, corr,
                note=note, snapshot=source_snapshot,
            )
            credit = await self.poster.post(
                session, target, StockField.on_hand, quantity, ReasonCode.return_in, actor, corr,
                note=note, snapshot=target_snapshot,
            )
            deleted = await self.balances.delete_if_empty(session, source.id)

            return ShiftResult(
                bucket_id=source.id,
                on_hand=source.on_hand if moved else credit.change.after,
                on_loan=debit.change.after,
                deleted=deleted,
                correlation_id=corr.id,
                to_bucket_id=target.id if moved else None,
                to_on_hand=credit.change.after if moved else None,
            )

        result = await run_unit_of_work(db, work, operation="return_in", max_retries=self.max_retries)
        logger.info(
            f"RETURN_IN: {quantity} on bucket {bucket_id} into {result.to_bucket_id or bucket_id} "
            f"by {actor.kind}:{actor.name}"
        )
        return result

    async def revert_return(self, db, bucket_id, quantity, actor, correlation=None, note=None) -> ShiftResult:
        return await self._shift(
            db, bucket_id, quantity, actor,
            steps=((StockField.on_hand, -1), (StockField.on_loan, +1)),
            reason_code=ReasonCode.revert_return,
            correlation=correlation, note=note,
        )

    async def mark_lost(self, db, bucket_id, quantity, actor, correlation=None, note=None) -> ShiftResult:
        """Loaned units that never came back are written off on_loan."""
        return await self._shift(
            db, bucket_id, quantity, actor,
            steps=((StockField.on_loan, -1),),
            reason_code=ReasonCode.mark_lost,
            correlation=correlation, note=note,
        )

    async def revert_mark_lost(self, db, bucket_id, quantity, actor, correlation=None, note=None) -> ShiftResult:
        return await self._shift(
            db, bucket_id, quantity, actor,
            steps=((StockField.on_loan, +1),),
            reason_code=ReasonCode.revert_mark_lost,
            correlation=correlation, note=note,
        )

    async def _shift(
        self,
        db: AsyncSession,
        bucket_id: UUID,
        quantity: int,
        actor: Actor,
        *,
        steps: tuple,
        reason_code: ReasonCode,
        correlation: Optional[dict],
        note: Optional[str],
        require_good: bool = False,
        number_prefix: Optional[str] = None,
    ) -> ShiftResult:
        quantity = validate_quantity(quantity)
        actor = require_actor(actor)
        operation = reason_code.value.lower()

        async def work(session: AsyncSession) -> ShiftResult:
            bucket = await self.balances.get(session, bucket_id)
            if require_good and bucket.condition != StockCondition.good.value:
                raise InvalidTransitionError(
                    f"Stock in condition {bucket.condition} cannot be lent out"
                )
            refs = dict(correlation or {})
            if number_prefix and not refs.get("loan_number"):
                refs["loan_number"] = await next_document_number(session, number_prefix)
            corr = _correlation_from(refs, product_id=bucket.product_id, bucket_id=bucket.id)
            snapshot = await self.poster.snapshot_for(session, bucket)

            values = {StockField.on_hand: bucket.on_hand, StockField.on_loan: bucket.on_loan}
            for field, sign in steps:
                posting = await self.poster.post(
                    session, bucket, field, sign * quantity, reason_code, actor, corr,
                    note=note, snapshot=snapshot,
                )
                values[field] = posting.change.after

            deleted = False
            if any(sign < 0 for _, sign in steps):
                deleted = await self.balances.delete_if_empty(session, bucket.id)

            return ShiftResult(
                bucket_id=bucket.id,
                on_hand=values[StockField.on_hand],
                on_loan=values[StockField.on_loan],
                deleted=deleted,
                correlation_id=corr.id,
            )

        result = await run_unit_of_work(db, work, operation=operation, max_retries=self.max_retries)
        logger.info(f"{reason_code.value}: {quantity} on bucket {bucket_id} by {actor.kind}:{actor.name}")
        return result
