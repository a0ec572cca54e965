# stocksync/services/consumer.py
"""
InventoryConsumer: what one screen, socket or job sees of a dataset.

It pairs a ConsumerView (live cached data from the SubscriptionManager) with
its own ProgressiveDisclosureController and exposes snapshots, stock
adjustments and history. Every callback checks ``alive`` first, so nothing
changes after ``close``.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Union

from stocksync.core.config import Settings
from stocksync.core.enums import AdjustDirection, InventoryUnit, StockFilter
from stocksync.integrations.events import StockAdjustedEvent
from stocksync.schemas.group import InventoryGroup
from stocksync.schemas.product import Product
from stocksync.schemas.snapshot import InventorySnapshot
from stocksync.schemas.transaction import Transaction
from stocksync.services.cache import SharedCache
from stocksync.services.disclosure import ProgressiveDisclosureController
from stocksync.services.history_reader import HistoryReader
from stocksync.services.stock_ledger import StockLedger, signed_quantity
from stocksync.services.subscription_manager import (
    PATCH,
    PUSH,
    REFRESH,
    SEED,
    ConsumerView,
    SubscriptionManager,
)

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[InventorySnapshot], None]
AdjustFunc = Callable[..., Awaitable[StockAdjustedEvent]]


class InventoryConsumer:
    def __init__(
        self,
        view: ConsumerView,
        manager: SubscriptionManager,
        cache: SharedCache,
        ledger: StockLedger,
        history: HistoryReader,
        settings: Settings,
        chunked: bool = True,
        adjust: Optional[AdjustFunc] = None,
    ):
        """
        Args:
            view: Live view returned by ``SubscriptionManager.start``
            chunked: False exposes the whole dataset at once
            adjust: Adjustment entry point; defaults to ``ledger.adjust``
        """
        self.view = view
        self.dataset = view.dataset
        self.manager = manager
        self.cache = cache
        self.ledger = ledger
        self.history = history
        self.settings = settings
        self.alive = True
        self._adjust = adjust or ledger.adjust
        self._subscribers: List[SnapshotCallback] = []

        self.disclosure = ProgressiveDisclosureController(
            initial_chunk=settings.CHUNK_SIZE,
            increment=settings.CHUNK_INCREMENT,
            auto_expand_delay=settings.initial_load_delay,
            settle_delay=settings.settle_delay,
            enabled=chunked,
            initial_limit=cache.entry(self.dataset).display_limit,
            on_change=self._notify,
            on_limit=self._remember_limit,
        )
        self._remove_listener = view.add_listener(self._on_view_change)

        # The view may already hold data (cache seed, or a push during start)
        if not view.loading:
            self.disclosure.dataset_arrived(len(view.products), fresh=False)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def get_snapshot(self) -> InventorySnapshot:
        products = self.view.products
        return InventorySnapshot(
            dataset=self.dataset,
            products=self.disclosure.displayed(products),
            total_count=len(products),
            limit=self.disclosure.limit,
            has_more=self.disclosure.has_more(len(products)),
            expanding=self.disclosure.expanding,
            groups=self.view.groups,
            loading=self.view.loading,
            status=self.view.status,
            error=str(self.view.error) if self.view.error else None,
            last_updated=self.view.last_updated,
        )

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """Call ``callback`` with a new snapshot on every visible change."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def wait_until_loaded(self, timeout: Optional[float] = None) -> InventorySnapshot:
        """
        Wait for the first delivery (or a sync failure) after opening.

        Raises:
            asyncio.TimeoutError: nothing arrived within ``timeout`` seconds
        """
        if self.view.loading:
            loaded = asyncio.Event()

            def on_change(view: ConsumerView, reason: str) -> None:
                if not view.loading:
                    loaded.set()

            remove = self.view.add_listener(on_change)
            try:
                await asyncio.wait_for(loaded.wait(), timeout)
            finally:
                remove()
        return self.get_snapshot()

    def request_more(self) -> Optional[asyncio.Task]:
        if not self.alive:
            return None
        return self.disclosure.request_more()

    async def refresh(self) -> InventorySnapshot:
        """Re-read the dataset; raises SyncFailure and keeps the old data on failure."""
        await self.manager.refresh(self.dataset)
        return self.get_snapshot()

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------
    async def adjust_stock(
        self,
        product_id: str,
        quantity_change: float,
        unit: Optional[Union[InventoryUnit, str]] = None,
        note: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> StockAdjustedEvent:
        return await self._adjust(
            product_id,
            quantity_change,
            unit=unit,
            note=note,
            performed_by=performed_by,
        )

    async def adjust_stock_by(
        self,
        product_id: str,
        magnitude: Union[str, float, int],
        direction: AdjustDirection,
        note: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> StockAdjustedEvent:
        """Adjust from a positive magnitude and an add/reduce direction."""
        return await self.adjust_stock(
            product_id,
            signed_quantity(magnitude, direction),
            note=note,
            performed_by=performed_by,
        )

    async def get_history(self, product_id: str) -> List[Transaction]:
        """
        Ledger entries of one product, newest first.

        Raises:
            ProductNotFoundError: the product is not in this consumer's dataset
        """
        await self.ledger.read_product(product_id)
        return await self.history.history_for(product_id)

    # ------------------------------------------------------------------
    # Search and filters (over the whole cached dataset, not the window)
    # ------------------------------------------------------------------
    def search_products(self, term: Optional[str]) -> List[Product]:
        products = self.view.products
        if not term or not term.strip():
            return list(products)
        return [p for p in products if p.matches(term)]

    def find_group(self, group_id: str) -> Optional[InventoryGroup]:
        for group in self.view.groups:
            if group.id == group_id:
                return group
        return None

    def group_products(self, group_id: str) -> List[Product]:
        """Products that are members of ``group_id``, in dataset order."""
        group = self.find_group(group_id)
        if group is None:
            return []
        members = group.member_ids()
        return [p for p in self.view.products if p.id in members or p.product_id in members]

    def filter_products(
        self,
        stock_filter: StockFilter = StockFilter.ALL,
        group_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Product]:
        products = self.search_products(search)

        if group_id:
            in_group = {p.id for p in self.group_products(group_id)}
            products = [p for p in products if p.id in in_group]

        stock_filter = StockFilter(stock_filter)
        threshold = self.settings.LOW_STOCK_THRESHOLD
        if stock_filter == StockFilter.LOW:
            products = [p for p in products if 0 < p.stock <= threshold]
        elif stock_filter == StockFilter.OUT:
            products = [p for p in products if p.stock == 0]
        return products

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self) -> None:
        """Stop receiving updates and cancel disclosure timers. Idempotent."""
        if not self.alive:
            return
        self.alive = False
        self.disclosure.close()
        self._remove_listener()
        self._subscribers.clear()
        self.view.stop()
        logger.debug(f"{self.dataset.value} consumer closed")

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------
    def _on_view_change(self, view: ConsumerView, reason: str) -> None:
        if not self.alive:
            return
        length = len(view.products)
        if reason == PUSH:
            self.disclosure.dataset_arrived(length, fresh=True)
        elif reason in (SEED, REFRESH):
            self.disclosure.dataset_arrived(length, fresh=False)
        elif reason == PATCH:
            self.disclosure.dataset_resized(length)
        self._notify()

    def _remember_limit(self, limit: int) -> None:
        if self.alive:
            self.cache.remember_display_limit(self.dataset, limit)

    def _notify(self) -> None:
        if not self.alive or not self._subscribers:
            return
        snapshot = self.get_snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception(f"Snapshot subscriber failed for {self.dataset.value} consumer")
