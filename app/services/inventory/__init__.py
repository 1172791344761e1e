from app.services.inventory.actors import Actor, AdminUser, Employee, SystemActor, require_actor
from app.services.inventory.balance_store import BalanceChange, BalanceStore, BucketFilters
from app.services.inventory.correction_engine import AdjustmentResult, CorrectionEngine, ShiftResult
from app.services.inventory.ledger_writer import Correlation, LedgerFilters, LedgerWriter
from app.services.inventory.movement_engine import Location, MovementEngine, MovementResult
from app.services.inventory.posting import Posting, StockPoster
from app.services.inventory.reference_data import ReferenceData
from app.services.inventory.unit_of_work import run_unit_of_work

__all__ = [
    "Actor",
    "AdminUser",
    "Employee",
    "SystemActor",
    "require_actor",
    "BalanceChange",
    "BalanceStore",
    "BucketFilters",
    "AdjustmentResult",
    "CorrectionEngine",
    "ShiftResult",
    "Correlation",
    "LedgerFilters",
    "LedgerWriter",
    "Location",
    "MovementEngine",
    "MovementResult",
    "Posting",
    "StockPoster",
    "ReferenceData",
    "run_unit_of_work",
]
