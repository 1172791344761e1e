from app.models.catalog import Product, Warehouse, Shelf
from app.models.inventory import InventoryBucket, StockCondition, StockField
from app.models.stock_adjustment import StockAdjustment, ReasonCode
from app.models.document_counter import DocumentCounter

__all__ = [
    "Product",
    "Warehouse",
    "Shelf",
    "InventoryBucket",
    "StockCondition",
    "StockField",
    "StockAdjustment",
    "ReasonCode",
    "DocumentCounter",
]
