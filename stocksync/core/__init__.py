"""
Core module exports.
"""
from .enums import (
    InventoryUnit,
    TransactionSource,
    MembershipType,
    InventoryDataset,
    AdjustDirection,
    StockFilter,
    SyncStatus
)

from .exceptions import (
    BaseServiceError,
    ValidationError,
    MalformedRecordError,
    ProductServiceError,
    ProductNotFoundError,
    SyncError,
    SyncFailure,
    StoreReadError,
    StockLedgerError,
    InvalidAdjustment,
    NegativeStockRejected,
    StockWriteError,
    PartialWriteFailure
)

from .utils import (
    now_ms,
    start_of_day_ms,
    normalize_children
)
