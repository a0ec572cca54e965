# stocksync/services/subscription_manager.py
"""
Keeps at most one live remote subscription per monitored path and fans pushes
out to the SharedCache and to every registered ConsumerView.

Consumers come and go (``start``/``stop``); remote subscriptions are only
released by an explicit ``cleanup``, so a consumer that is recreated picks the
cached data up again without resubscribing.
"""
import asyncio
import logging
from collections import defaultdict
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from stocksync.core.config import Settings
from stocksync.core.enums import InventoryDataset, MembershipType, SyncStatus
from stocksync.core.exceptions import SyncFailure
from stocksync.integrations.base import RemoteStoreAdapter, Unsubscribe
from stocksync.schemas.group import InventoryGroup, filter_groups, normalize_groups
from stocksync.schemas.product import Product, normalize_products
from stocksync.services.cache import SharedCache

logger = logging.getLogger(__name__)

# Reasons a view changed
SEED = "seed"          # Handed the cached state on start
PUSH = "push"          # Fresh product push from the store
GROUPS = "groups"      # Group push from the store
REFRESH = "refresh"    # Explicit re-read
PATCH = "patch"        # Optimistic local update
ERROR = "error"        # Sync failure surfaced

ViewListener = Callable[["ConsumerView", str], None]


class ConsumerView:
    """
    One consumer's live view of a dataset.

    ``groups`` only holds groups with members of this view's membership type,
    pruned to those members. Every update is dropped once the view is stopped.
    """

    def __init__(self, dataset: InventoryDataset, membership: MembershipType, on_stop: Callable[["ConsumerView"], None]):
        self.dataset = dataset
        self.membership = membership
        self.alive = True
        self.products: List[Product] = []
        self.groups: List[InventoryGroup] = []
        self.loading = True
        self.error: Optional[SyncFailure] = None
        self.status = SyncStatus.PENDING
        self.last_updated: Optional[int] = None
        self._listeners: List[ViewListener] = []
        self._on_stop = on_stop

    def add_listener(self, listener: ViewListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def stop(self) -> None:
        if not self.alive:
            return
        self.alive = False
        self._listeners.clear()
        self._on_stop(self)

    # ------------------------------------------------------------------
    # Called by SubscriptionManager only
    # ------------------------------------------------------------------
    def _apply(
        self,
        reason: str,
        products: Optional[List[Product]] = None,
        groups: Optional[List[InventoryGroup]] = None,
        last_updated: Optional[int] = None,
    ) -> None:
        if not self.alive:
            return
        if products is not None:
            self.products = list(products)
            self.loading = False
        if groups is not None:
            self.groups = filter_groups(groups, self.membership)
        if last_updated is not None:
            self.last_updated = last_updated
        if reason in (SEED, PUSH, GROUPS, REFRESH) and not self.loading:
            self.error = None
            self.status = SyncStatus.SYNCED
        self._emit(reason)

    def _fail(self, failure: SyncFailure) -> None:
        if not self.alive:
            return
        self.error = failure
        self.status = SyncStatus.ERROR
        self.loading = False
        self._emit(ERROR)

    def _release(self) -> None:
        self.status = SyncStatus.RELEASED

    def _emit(self, reason: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(self, reason)
            except Exception:
                logger.exception(f"Listener failed while handling {reason} for {self.dataset.value} view")


class SubscriptionManager:
    def __init__(self, store: RemoteStoreAdapter, cache: SharedCache, settings: Settings):
        self.store = store
        self.cache = cache
        self.settings = settings
        self._unsubscribers: Dict[str, Unsubscribe] = {}
        self._pending: Dict[InventoryDataset, asyncio.Future] = {}
        self._views: Dict[InventoryDataset, List[ConsumerView]] = defaultdict(list)

    @property
    def subscribed_paths(self) -> List[str]:
        return list(self._unsubscribers)

    def is_listening(self, dataset: InventoryDataset) -> bool:
        return self.cache.entry(dataset).listening

    def views(self, dataset: Optional[InventoryDataset] = None) -> List[ConsumerView]:
        if dataset is not None:
            return list(self._views.get(dataset, []))
        return [view for views in self._views.values() for view in views]

    # ------------------------------------------------------------------
    # Consumer lifecycle
    # ------------------------------------------------------------------
    async def start(self, dataset: InventoryDataset, membership: Optional[MembershipType] = None) -> ConsumerView:
        """
        Return a live view of ``dataset``, subscribing on first use.

        Concurrent first calls share one subscription attempt. A failed
        attempt is surfaced on the view (``view.error``) and leaves the cache
        untouched.
        """
        view = ConsumerView(dataset, membership or dataset.membership_type, self.stop)
        self._views[dataset].append(view)
        entry = self.cache.entry(dataset)

        if entry.listening:
            if entry.products is None:
                # Cache was cleared while listening; no push is due, so read it back
                try:
                    await self.refresh(dataset)
                except SyncFailure:
                    pass  # already surfaced on the view
                return view
            # Already listening: hand over the cache synchronously
            self._seed(view)
            return view

        pending = self._pending.get(dataset)
        if pending is None:
            pending = asyncio.ensure_future(self._listen(dataset))
            self._pending[dataset] = pending
            pending.add_done_callback(partial(self._forget_pending, dataset))

        try:
            await asyncio.shield(pending)
        except SyncFailure as failure:
            view._fail(failure)
            return view
        except asyncio.CancelledError:
            if not pending.cancelled():
                raise
            view._fail(SyncFailure(f"{dataset.value} inventory listeners were cleaned up"))
            return view

        if view.loading:
            self._seed(view)
        return view

    def _forget_pending(self, dataset: InventoryDataset, future: asyncio.Future) -> None:
        if self._pending.get(dataset) is future:
            del self._pending[dataset]

    def stop(self, view: ConsumerView) -> None:
        """Forget a consumer. The remote subscription stays up until ``cleanup``."""
        view.alive = False
        views = self._views.get(view.dataset, [])
        if view in views:
            views.remove(view)
            logger.debug(f"{view.dataset.value} view stopped; {len(views)} remaining")

    def _seed(self, view: ConsumerView) -> None:
        entry = self.cache.entry(view.dataset)
        if entry.products is None and self.cache.groups is None:
            return
        view._apply(
            SEED,
            products=entry.products,
            groups=self.cache.groups,
            last_updated=entry.last_updated,
        )

    # ------------------------------------------------------------------
    # Remote subscriptions
    # ------------------------------------------------------------------
    async def _listen(self, dataset: InventoryDataset) -> None:
        products_path = self.settings.products_path(dataset)
        groups_path = self.settings.groups_path()
        try:
            if products_path not in self._unsubscribers:
                self._unsubscribers[products_path] = await self.store.subscribe(
                    products_path,
                    partial(self._handle_products, dataset),
                    partial(self._handle_products_error, dataset, products_path),
                )
                logger.info(f"Subscribed to {products_path}")
            if groups_path not in self._unsubscribers:
                self._unsubscribers[groups_path] = await self.store.subscribe(
                    groups_path,
                    self._handle_groups,
                    partial(self._handle_groups_error, groups_path),
                )
                logger.info(f"Subscribed to {groups_path}")
        except Exception as e:
            logger.error(f"Error setting up {dataset.value} inventory listeners: {e}")
            self.cache.entry(dataset).status = SyncStatus.ERROR
            raise SyncFailure(f"Failed to initialize {dataset.value} inventory data") from e

        self.cache.entry(dataset).listening = True

    def _handle_products(self, dataset: InventoryDataset, raw: Any) -> None:
        products = normalize_products(raw, dataset)
        entry = self.cache.store_products(dataset, products, fresh=True)
        logger.debug(f"Received {len(products)} {dataset.value} products")
        for view in self.views(dataset):
            view._apply(PUSH, products=products, last_updated=entry.last_updated)

    def _handle_groups(self, raw: Any) -> None:
        groups = normalize_groups(raw)
        self.cache.store_groups(groups)
        logger.debug(f"Received {len(groups)} inventory groups")
        for view in self.views():
            view._apply(GROUPS, groups=groups)

    def _handle_products_error(self, dataset: InventoryDataset, path: str, error: Exception) -> None:
        logger.error(f"Error in {dataset.value} products listener: {error}")
        self._drop_subscription(path, [dataset])
        self._fail_views([dataset], SyncFailure(f"Failed to sync {dataset.value} products in realtime"))

    def _handle_groups_error(self, path: str, error: Exception) -> None:
        logger.error(f"Error in groups listener: {error}")
        affected = [ds for ds, entry in self.cache.entries().items() if entry.listening]
        self._drop_subscription(path, affected)
        self._fail_views(affected, SyncFailure("Failed to sync groups in realtime"))

    def _drop_subscription(self, path: str, datasets: List[InventoryDataset]) -> None:
        # The store has already cancelled the watch; the next start() subscribes again
        self._unsubscribers.pop(path, None)
        for dataset in datasets:
            entry = self.cache.entry(dataset)
            entry.listening = False
            entry.status = SyncStatus.ERROR

    def _fail_views(self, datasets: List[InventoryDataset], failure: SyncFailure) -> None:
        for dataset in datasets:
            for view in self.views(dataset):
                view._fail(failure)

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------
    async def refresh(self, dataset: InventoryDataset) -> List[Product]:
        """
        Re-read products and groups from the store.

        The cache is only replaced once both reads succeed; on failure the
        previous snapshot stays in place and SyncFailure is raised.
        """
        products_path = self.settings.products_path(dataset)
        groups_path = self.settings.groups_path()
        try:
            raw_products, raw_groups = await asyncio.gather(
                self.store.get(products_path),
                self.store.get(groups_path),
            )
        except Exception as e:
            logger.error(f"Error refreshing {dataset.value} inventory: {e}")
            failure = SyncFailure("Failed to refresh data")
            self.cache.entry(dataset).status = SyncStatus.ERROR
            self._fail_views([dataset], failure)
            raise failure from e

        products = normalize_products(raw_products, dataset)
        groups = normalize_groups(raw_groups)
        entry = self.cache.store_products(dataset, products, fresh=False)
        self.cache.store_groups(groups)
        for view in self.views(dataset):
            view._apply(REFRESH, products=products, groups=groups, last_updated=entry.last_updated)
        for view in self.views():
            if view.dataset != dataset:
                view._apply(GROUPS, groups=groups)
        return products

    def republish(self, dataset: InventoryDataset) -> None:
        """Hand the (optimistically patched) cached products to every view."""
        products = self.cache.products(dataset)
        for view in self.views(dataset):
            view._apply(PATCH, products=products)

    def clear_cache(self) -> None:
        self.cache.invalidate()

    def cleanup(self) -> None:
        """Release every remote subscription and forget all cached state."""
        logger.info("Cleaning up inventory listeners...")
        for path, unsubscribe in list(self._unsubscribers.items()):
            try:
                unsubscribe()
            except Exception as e:
                logger.warning(f"Error unsubscribing from {path}: {e}")
        self._unsubscribers.clear()

        for pending in list(self._pending.values()):
            pending.cancel()
        self._pending.clear()

        for view in self.views():
            view._release()
        self._views.clear()
        self.cache.reset()
