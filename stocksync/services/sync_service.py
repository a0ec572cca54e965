# stocksync/services/sync_service.py
"""
InventorySyncService: the process-wide container.

Owns the one SharedCache, the SubscriptionManager, a StockLedger per dataset,
the HistoryReader and the analytics service. Built once per process (or per
test) with an explicit ``init()`` / ``dispose()`` pair.
"""
import inspect
import logging
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Union

from stocksync.core.config import Settings, get_settings
from stocksync.core.enums import InventoryDataset, InventoryUnit, MembershipType
from stocksync.integrations.base import RemoteStoreAdapter
from stocksync.integrations.events import StockAdjustedEvent
from stocksync.schemas.product import Product
from stocksync.schemas.snapshot import ReconciliationReport, StockAnalytics
from stocksync.schemas.transaction import Transaction
from stocksync.services.analytics_service import StockAnalyticsService
from stocksync.services.cache import SharedCache
from stocksync.services.consumer import InventoryConsumer
from stocksync.services.history_reader import HistoryReader
from stocksync.services.stock_ledger import StockLedger
from stocksync.services.subscription_manager import SubscriptionManager

logger = logging.getLogger(__name__)

AdjustmentListener = Callable[[StockAdjustedEvent], Any]


class InventorySyncService:
    def __init__(self, store: RemoteStoreAdapter, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()
        self.cache: Optional[SharedCache] = None
        self.manager: Optional[SubscriptionManager] = None
        self.history: Optional[HistoryReader] = None
        self.analytics: Optional[StockAnalyticsService] = None
        self._ledgers: Dict[InventoryDataset, StockLedger] = {}
        self._consumers: List[InventoryConsumer] = []
        self._adjustment_listeners: List[AdjustmentListener] = []

    @property
    def initialized(self) -> bool:
        return self.manager is not None

    def init(self) -> "InventorySyncService":
        if self.initialized:
            return self
        self.cache = SharedCache(self.settings.CHUNK_SIZE)
        self.manager = SubscriptionManager(self.store, self.cache, self.settings)
        self.history = HistoryReader(self.store, self.settings)
        self.analytics = StockAnalyticsService(self.store, self.history, self.settings)
        self._ledgers = {
            dataset: StockLedger(self.store, self.cache, dataset, self.settings, on_patch=self.manager.republish)
            for dataset in InventoryDataset
        }
        logger.info("Inventory sync service initialized")
        return self

    def dispose(self) -> None:
        """Close every consumer and release every remote subscription."""
        if not self.initialized:
            return
        for consumer in list(self._consumers):
            consumer.close()
        self._consumers.clear()
        self.manager.cleanup()
        self.manager = None
        self.cache = None
        self.history = None
        self.analytics = None
        self._ledgers = {}
        logger.info("Inventory sync service disposed")

    def _require_init(self) -> None:
        if not self.initialized:
            raise RuntimeError("InventorySyncService.init() has not been called")

    # ------------------------------------------------------------------
    # Consumers
    # ------------------------------------------------------------------
    async def open_consumer(
        self,
        dataset: InventoryDataset,
        chunked: bool = True,
        membership: Optional[MembershipType] = None,
    ) -> InventoryConsumer:
        self._require_init()
        dataset = InventoryDataset(dataset)
        view = await self.manager.start(dataset, membership)
        consumer = InventoryConsumer(
            view,
            self.manager,
            self.cache,
            self.ledger(dataset),
            self.history,
            self.settings,
            chunked=chunked,
            adjust=partial(self.adjust, dataset),
        )
        self._consumers.append(consumer)
        return consumer

    def release_consumer(self, consumer: InventoryConsumer) -> None:
        consumer.close()
        if consumer in self._consumers:
            self._consumers.remove(consumer)

    @property
    def consumers(self) -> List[InventoryConsumer]:
        return [c for c in self._consumers if c.alive]

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------
    def ledger(self, dataset: InventoryDataset) -> StockLedger:
        self._require_init()
        return self._ledgers[InventoryDataset(dataset)]

    def add_adjustment_listener(self, listener: AdjustmentListener) -> Callable[[], None]:
        """``listener`` runs after every committed adjustment; it may be a coroutine function."""
        self._adjustment_listeners.append(listener)

        def remove():
            if listener in self._adjustment_listeners:
                self._adjustment_listeners.remove(listener)

        return remove

    async def adjust(
        self,
        dataset: InventoryDataset,
        product_id: str,
        quantity_change: float,
        unit: Optional[Union[InventoryUnit, str]] = None,
        note: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> StockAdjustedEvent:
        event = await self.ledger(dataset).adjust(
            product_id,
            quantity_change,
            unit=unit,
            note=note,
            performed_by=performed_by,
        )
        await self._publish(event)
        return event

    async def _publish(self, event: StockAdjustedEvent) -> None:
        # The adjustment is committed; listener failures are logged only
        for listener in list(self._adjustment_listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Adjustment listener failed for transaction {event.transaction_id}")

    async def reconcile(self, dataset: InventoryDataset, product_id: str, apply: bool = False) -> ReconciliationReport:
        return await self.ledger(dataset).reconcile(product_id, apply=apply)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def cached_products(self, dataset: InventoryDataset) -> List[Product]:
        self._require_init()
        return self.cache.products(InventoryDataset(dataset))

    async def refresh(self, dataset: InventoryDataset) -> List[Product]:
        self._require_init()
        return await self.manager.refresh(InventoryDataset(dataset))

    async def history_for(self, product_id: str) -> List[Transaction]:
        self._require_init()
        return await self.history.history_for(product_id)

    async def history_for_all(self, product_ids=None) -> List[Transaction]:
        self._require_init()
        return await self.history.history_for_all(product_ids)

    async def compute_analytics(self) -> StockAnalytics:
        self._require_init()
        return await self.analytics.compute()

    def clear_cache(self) -> None:
        self._require_init()
        self.manager.clear_cache()
