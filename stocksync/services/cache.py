# stocksync/services/cache.py
"""
The process-wide cache of the last known product and group collections.

One SharedCache is built per InventorySyncService. It is written by the
SubscriptionManager's push handlers and by the StockLedger's optimistic patch;
consumers only ever read copies of its lists.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from stocksync.core.enums import InventoryDataset, SyncStatus
from stocksync.core.utils import now_ms
from stocksync.schemas.group import InventoryGroup
from stocksync.schemas.product import Product

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached state of one product dataset."""
    display_limit: int
    products: Optional[List[Product]] = None    # None: never fetched, or invalidated
    last_updated: Optional[int] = None
    listening: bool = False
    status: SyncStatus = SyncStatus.PENDING

    @property
    def is_valid(self) -> bool:
        return self.products is not None


class SharedCache:
    def __init__(self, initial_display_limit: int):
        self.initial_display_limit = initial_display_limit
        self._entries: Dict[InventoryDataset, CacheEntry] = {}
        # Groups live at one path shared by both datasets, so they are cached once
        self.groups: Optional[List[InventoryGroup]] = None
        self.groups_updated: Optional[int] = None

    def entry(self, dataset: InventoryDataset) -> CacheEntry:
        entry = self._entries.get(dataset)
        if entry is None:
            entry = CacheEntry(display_limit=self.initial_display_limit)
            self._entries[dataset] = entry
        return entry

    def entries(self) -> Dict[InventoryDataset, CacheEntry]:
        return dict(self._entries)

    def products(self, dataset: InventoryDataset) -> List[Product]:
        return list(self.entry(dataset).products or [])

    def find_product(self, dataset: InventoryDataset, product_id: str) -> Optional[Product]:
        for product in self.entry(dataset).products or []:
            if product.id == product_id:
                return product
        return None

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------
    def store_products(self, dataset: InventoryDataset, products: List[Product], fresh: bool) -> CacheEntry:
        """
        Replace a dataset's products.

        A fresh push restarts progressive disclosure at the initial chunk.
        """
        entry = self.entry(dataset)
        entry.products = list(products)
        entry.last_updated = now_ms()
        entry.status = SyncStatus.SYNCED
        if fresh:
            entry.display_limit = self.initial_display_limit
        return entry

    def store_groups(self, groups: List[InventoryGroup]) -> None:
        self.groups = list(groups)
        self.groups_updated = now_ms()

    def remember_display_limit(self, dataset: InventoryDataset, limit: int) -> None:
        self.entry(dataset).display_limit = limit

    def patch_product(self, dataset: InventoryDataset, product_id: str, **changes) -> bool:
        """
        Optimistically apply ``changes`` to one cached product.

        The next authoritative push replaces the patched copy. Returns False
        when the dataset is not cached or does not hold the product.
        """
        entry = self.entry(dataset)
        if not entry.products:
            return False

        patched = False
        updated = []
        for product in entry.products:
            if product.id == product_id:
                product = product.model_copy(update=changes)
                patched = True
            updated.append(product)

        if patched:
            entry.products = updated
            logger.debug(f"Optimistically patched {dataset.value} product {product_id}: {changes}")
        return patched

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def invalidate(self) -> None:
        """Forget cached data but keep subscription flags."""
        for entry in self._entries.values():
            entry.products = None
            entry.last_updated = None
        self.groups = None
        self.groups_updated = None
        logger.info("Inventory cache invalidated")

    def reset(self) -> None:
        """Forget everything, including subscription flags and display limits."""
        self._entries.clear()
        self.groups = None
        self.groups_updated = None
