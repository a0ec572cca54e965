"""
Purpose: Defines the data structure for events produced by the stock ledger.
Contents:
StockAdjustedEvent (Pydantic Model): Represents a committed stock adjustment on one product:
the ledger entry that was appended and the aggregate stock before and after. It is returned
to the caller of an adjustment and broadcast to connected clients.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from stocksync.core.enums import InventoryDataset
from stocksync.schemas.transaction import Transaction


class StockAdjustedEvent(BaseModel):
    product_id: str
    dataset: InventoryDataset
    previous_stock: float
    new_stock: float
    transaction: Transaction
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def transaction_id(self) -> str:
        return self.transaction.id

    @property
    def quantity_change(self) -> float:
        return self.transaction.quantity_change

    def to_message(self) -> dict:
        """JSON-ready payload for websocket clients"""
        return {
            "type": "stock_adjusted",
            "dataset": self.dataset.value,
            "product_id": self.product_id,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "transaction": self.transaction.model_dump(mode="json", by_alias=True),
            "timestamp": self.timestamp.isoformat(),
        }
