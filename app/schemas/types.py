"""
Shared Pydantic types for the stock schemas.

UUIDStr: bucket, ledger and correlation ids come back from SQLAlchemy as
uuid.UUID; responses serialise them as plain strings.
StockQuantity: unit counts carried by movement requests, whole and positive.
"""

from typing import Annotated, Optional

from pydantic import BeforeValidator, Field

UUIDStr = Annotated[str, BeforeValidator(lambda v: str(v) if not isinstance(v, str) else v)]

StockQuantity = Annotated[int, Field(gt=0, strict=True)]

Note = Optional[Annotated[str, Field(max_length=500)]]
