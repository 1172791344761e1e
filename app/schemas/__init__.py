from app.schemas.inventory import (
    BucketResponse,
    BucketListResponse,
    StockInRequest,
    TransferRequest,
    ChangeConditionRequest,
    AdjustRequest,
    LoanMovementRequest,
    MovementResponse,
    AdjustResponse,
    LoanMovementResponse,
    ReturnInRequest,
    StockAdjustmentResponse,
    StockAdjustmentListResponse,
)

__all__ = [
    "BucketResponse",
    "BucketListResponse",
    "StockInRequest",
    "TransferRequest",
    "ChangeConditionRequest",
    "AdjustRequest",
    "LoanMovementRequest",
    "MovementResponse",
    "AdjustResponse",
    "LoanMovementResponse",
    "ReturnInRequest",
    "StockAdjustmentResponse",
    "StockAdjustmentListResponse",
]
