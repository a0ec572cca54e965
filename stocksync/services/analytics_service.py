# stocksync/services/analytics_service.py
"""
Stock Analytics Service

Batch summary of both product datasets and the whole transaction history:
stock value, unit counts, per-dataset totals and today's movement.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional

from stocksync.core.config import Settings
from stocksync.core.enums import InventoryDataset
from stocksync.core.exceptions import StoreReadError
from stocksync.core.utils import start_of_day_ms
from stocksync.integrations.base import RemoteStoreAdapter
from stocksync.schemas.product import Product, normalize_products
from stocksync.schemas.snapshot import StockAnalytics
from stocksync.schemas.transaction import Transaction
from stocksync.services.history_reader import HistoryReader

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


def product_value(product: Product) -> float:
    """Stock valued at the product's rate, falling back to its cost."""
    return product.stock * (product.rate or product.cost or 0.0)


def _entry_rate(transaction: Transaction, candidates: List[Product]) -> float:
    """
    Rate used to value a ledger entry.

    When the id is shared by a manual and a catalog product, the one whose
    name matches the name captured on the entry wins; otherwise manual first.
    """
    if not candidates:
        return 0.0
    product = next((p for p in candidates if p.product_name == transaction.product_name), candidates[0])
    return product.rate or product.cost or 0.0


class StockAnalyticsService:
    """
    Reads are authoritative (straight from the store, not the shared cache)
    so the summary can be computed without any open consumer.
    """

    def __init__(self, store: RemoteStoreAdapter, history: HistoryReader, settings: Settings):
        self.store = store
        self.history = history
        self.settings = settings

    async def compute(self, now: Optional[datetime] = None) -> StockAnalytics:
        datasets = list(InventoryDataset)
        try:
            raw_collections = await asyncio.gather(
                *(self.store.get(self.settings.products_path(ds)) for ds in datasets)
            )
        except Exception as e:
            logger.error(f"Error loading products for analytics: {e}")
            raise StoreReadError("Failed to load inventory for analytics") from e

        by_dataset: Dict[InventoryDataset, List[Product]] = {
            ds: normalize_products(raw, ds) for ds, raw in zip(datasets, raw_collections)
        }
        transactions = await self.history.history_for_all()
        return self.summarize(by_dataset, transactions, now=now)

    def summarize(
        self,
        by_dataset: Dict[InventoryDataset, List[Product]],
        transactions: List[Transaction],
        now: Optional[datetime] = None,
    ) -> StockAnalytics:
        """
        Args:
            by_dataset: Products per dataset
            transactions: Ledger entries, newest first
            now: Reference time for "today" (default: current local time)
        """
        manual = by_dataset.get(InventoryDataset.MANUAL, [])
        catalog = by_dataset.get(InventoryDataset.CATALOG, [])
        products = catalog + manual

        manual_value = sum(product_value(p) for p in manual)
        catalog_value = sum(product_value(p) for p in catalog)

        # History is keyed by product id alone, so an id can exist in both datasets
        by_id: Dict[str, List[Product]] = {}
        for product in manual + catalog:
            by_id.setdefault(product.id, []).append(product)
        start = start_of_day_ms(now)
        end = start + DAY_MS

        added = 0.0
        reduced = 0.0
        for transaction in transactions:
            if not start <= transaction.created_at < end:
                continue
            rate = _entry_rate(transaction, by_id.get(transaction.product_id, []))
            value = abs(transaction.quantity_change) * rate
            if transaction.is_increase:
                added += value
            else:
                reduced += value

        recent_products = sorted(products, key=lambda p: p.updated_at, reverse=True)

        return StockAnalytics(
            total_value=manual_value + catalog_value,
            total_items=len(products),
            total_units=sum(p.stock for p in products),
            today_added_value=added,
            today_reduced_value=reduced,
            today_net_change=added - reduced,
            manual_count=len(manual),
            catalog_count=len(catalog),
            manual_value=manual_value,
            catalog_value=catalog_value,
            recent_products=recent_products[:self.settings.RECENT_PRODUCTS_LIMIT],
            recent_transactions=transactions[:self.settings.RECENT_TRANSACTIONS_LIMIT],
        )
