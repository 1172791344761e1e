"""
Posting primitive: the one way to change a stock balance.

post() applies the delta and appends its ledger row in the caller's
transaction, then checks that the persisted value matches the row. The
engines never call BalanceStore.apply_delta directly.
"""

from dataclasses import dataclass
from typing import Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import LedgerIntegrityError
from app.models.inventory import InventoryBucket, StockField
from app.models.stock_adjustment import ReasonCode, StockAdjustment
from app.services.inventory.actors import Actor
from app.services.inventory.balance_store import BalanceChange, BalanceStore
from app.services.inventory.ledger_writer import Correlation, LedgerWriter
from app.services.inventory.reference_data import ReferenceData

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Posting:
    change: BalanceChange
    adjustment: StockAdjustment


class StockPoster:
    def __init__(
        self,
        balances: Optional[BalanceStore] = None,
        ledger: Optional[LedgerWriter] = None,
        reference: Optional[ReferenceData] = None,
    ):
        self.balances = balances or BalanceStore()
        self.ledger = ledger or LedgerWriter()
        self.reference = reference or ReferenceData()

    async def snapshot_for(self, db: AsyncSession, bucket: InventoryBucket) -> dict:
        return await self.reference.snapshot(
            db, bucket.product_id, bucket.warehouse_id, bucket.shelf_id, bucket.condition
        )

    async def post(
        self,
        db: AsyncSession,
        bucket: InventoryBucket,
        field: StockField,
        delta: int,
        reason_code: ReasonCode,
        actor: Actor,
        correlation: Correlation,
        note: Optional[str] = None,
        snapshot: Optional[dict] = None,
    ) -> Posting:
        """Apply *delta* to bucket.field and record it. Must run inside run_unit_of_work."""
        if snapshot is None:
            snapshot = await self.snapshot_for(db, bucket)

        change = await self.balances.apply_delta(db, bucket.id, field, delta)
        adjustment = await self.ledger.record(
            db,
            change,
            reason_code=reason_code,
            reason_note=note,
            actor=actor,
            correlation=correlation,
            snapshot=snapshot,
        )

        persisted = await self.balances.read_field(db, bucket.id, field)
        if persisted != change.after:
            raise LedgerIntegrityError(
                "persisted balance differs from ledger row",
                context={
                    "bucket_id": str(bucket.id),
                    "field": StockField(field).value,
                    "ledger_after": change.after,
                    "persisted": persisted,
                    "adjustment_id": str(adjustment.id),
                },
            )
        return Posting(change=change, adjustment=adjustment)
