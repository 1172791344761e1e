"""
Sequential document numbers (LOAN-0001, RET-0042, ...).

The counter row for a prefix is created on first use and incremented with a
single INSERT ... ON CONFLICT DO UPDATE ... RETURNING, so two callers can
never be handed the same number. The increment joins the caller's
transaction: if that rolls back, the number is not consumed.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.document_counter import DocumentCounter
from app.utils.upsert import dialect_insert

logger = logging.getLogger(__name__)

counters = DocumentCounter.__table__


def format_document_number(prefix: str, seq: int) -> str:
    return f"{prefix}-{seq:04d}"


async def next_document_number(db: AsyncSession, prefix: str) -> str:
    """Increment the counter for *prefix* and return the formatted number."""
    prefix = (prefix or "").strip().upper()
    if not prefix:
        raise ValueError("Document prefix must not be empty")

    insert = dialect_insert(db, DocumentCounter)
    stmt = (
        insert.values(prefix=prefix, seq=1)
        .on_conflict_do_update(
            index_elements=["prefix"],
            set_={"seq": counters.c.seq + 1},
        )
        .returning(counters.c.seq)
    )
    seq = (await db.execute(stmt)).scalar_one()
    number = format_document_number(prefix, seq)
    logger.debug(f"Issued document number {number}")
    return number
