"""
Read-side views handed to consumers.
"""
from typing import List, Optional

from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

from stocksync.core.enums import InventoryDataset, SyncStatus
from stocksync.schemas.base import BaseSchema
from stocksync.schemas.group import InventoryGroup
from stocksync.schemas.product import Product
from stocksync.schemas.transaction import Transaction


class InventorySnapshot(BaseSchema):
    """
    What a consumer renders at one point in time.

    ``products`` is the disclosed prefix of ``total_count`` cached products.
    """
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, frozen=True)

    dataset: InventoryDataset
    products: List[Product] = []
    total_count: int = 0
    limit: Optional[int] = None      # None when chunking is disabled
    has_more: bool = False
    expanding: bool = False
    groups: List[InventoryGroup] = []
    loading: bool = True
    status: SyncStatus = SyncStatus.PENDING
    error: Optional[str] = None
    last_updated: Optional[int] = None


class ReconciliationReport(BaseSchema):
    product_id: str
    aggregate_stock: float
    ledger_stock: float
    drift: float
    transaction_count: int
    applied: bool = False

    @property
    def consistent(self) -> bool:
        return self.drift == 0


class StockAnalytics(BaseSchema):
    total_value: float = 0.0
    total_items: int = 0
    total_units: float = 0.0
    today_added_value: float = 0.0
    today_reduced_value: float = 0.0
    today_net_change: float = 0.0
    manual_count: int = 0
    catalog_count: int = 0
    manual_value: float = 0.0
    catalog_value: float = 0.0
    recent_products: List[Product] = []
    recent_transactions: List[Transaction] = []
