from typing import Optional


class BaseServiceError(Exception):
    """Base exception for all service-related errors."""
    pass


class ValidationError(BaseServiceError):
    """Raised when data validation fails."""
    pass


class MalformedRecordError(ValidationError):
    """Raised when a store record cannot be normalized."""
    pass


class ProductServiceError(BaseServiceError):
    """Base exception for product errors."""
    pass


class ProductNotFoundError(ProductServiceError):
    """Raised when a product is absent from the store at read time."""

    def __init__(self, product_id: str, message: Optional[str] = None):
        self.product_id = product_id
        super().__init__(message or f"Product {product_id} not found")


class SyncError(BaseServiceError):
    """Base exception for realtime synchronization errors."""
    pass


class SyncFailure(SyncError):
    """Raised when a subscription or refresh could not deliver data.

    The last good cache snapshot is kept when this is raised.
    """
    pass


class StoreReadError(BaseServiceError):
    """Raised when a point read against the remote store fails."""
    pass


class StockLedgerError(BaseServiceError):
    """Base exception for stock adjustment errors."""
    pass


class InvalidAdjustment(ValidationError, StockLedgerError):
    """Raised when a quantity delta is zero, non-finite or not a positive magnitude."""
    pass


class NegativeStockRejected(StockLedgerError):
    """Raised when an adjustment would take stock below zero. Nothing is written."""

    def __init__(self, product_id: str, current_stock: float, quantity_change: float, resulting_stock: float):
        self.product_id = product_id
        self.current_stock = current_stock
        self.quantity_change = quantity_change
        self.resulting_stock = resulting_stock
        super().__init__(
            f"Stock cannot be negative: product {product_id} has {current_stock}, "
            f"change of {quantity_change} would leave {resulting_stock}"
        )


class StockWriteError(StockLedgerError):
    """Raised when the adjustment could not be written."""
    pass


class PartialWriteFailure(StockWriteError):
    """Raised when the history entry was committed but the aggregate update failed.

    The committed entry is not rolled back; ``reconcile`` can repair the aggregate.
    """

    def __init__(self, product_id: str, transaction_id: str, message: Optional[str] = None):
        self.product_id = product_id
        self.transaction_id = transaction_id
        super().__init__(
            message or f"Failed to update stock for product {product_id} "
            f"after recording transaction {transaction_id}"
        )
