# stocksync/services/stock_ledger.py
"""
The stock write path.

An adjustment is two dependent writes against the remote store:

1. append an immutable ledger entry under the product's history path, then
2. update the product's aggregate ``stock`` and ``updatedAt``.

The store gives no cross-path atomicity. If step 2 fails after step 1 the
entry stays recorded and PartialWriteFailure is raised; ``reconcile`` can
recompute the aggregate from the history later.

Two concurrent adjustments of the same product both check the invariant
against the stock they read, and the later aggregate write wins. Both ledger
entries are kept, so ``reconcile`` exposes the lost update as drift.
"""
import logging
import math
from typing import Callable, Optional, Union

from stocksync.core.config import Settings
from stocksync.core.enums import AdjustDirection, InventoryDataset, InventoryUnit, TransactionSource
from stocksync.core.exceptions import (
    InvalidAdjustment,
    MalformedRecordError,
    NegativeStockRejected,
    PartialWriteFailure,
    ProductNotFoundError,
    StockWriteError,
    StoreReadError,
)
from stocksync.core.utils import is_finite_number, now_ms, round_stock
from stocksync.integrations.base import RemoteStoreAdapter
from stocksync.integrations.events import StockAdjustedEvent
from stocksync.schemas.product import Product
from stocksync.schemas.snapshot import ReconciliationReport
from stocksync.schemas.transaction import Transaction, normalize_transactions
from stocksync.services.cache import SharedCache

logger = logging.getLogger(__name__)


def signed_quantity(magnitude: Union[str, float, int], direction: AdjustDirection) -> float:
    """
    Turn a positive magnitude and a direction into a signed delta.

    Raises:
        InvalidAdjustment: ``magnitude`` is not a positive finite number
    """
    try:
        value = float(magnitude)
    except (TypeError, ValueError):
        raise InvalidAdjustment("Please enter a valid positive quantity")
    if isinstance(magnitude, bool) or not math.isfinite(value) or value <= 0:
        raise InvalidAdjustment("Please enter a valid positive quantity")
    return -value if AdjustDirection(direction) == AdjustDirection.REDUCE else value


class StockLedger:
    def __init__(
        self,
        store: RemoteStoreAdapter,
        cache: SharedCache,
        dataset: InventoryDataset,
        settings: Settings,
        on_patch: Optional[Callable[[InventoryDataset], None]] = None,
    ):
        self.store = store
        self.cache = cache
        self.dataset = dataset
        self.settings = settings
        self._on_patch = on_patch

    async def adjust(
        self,
        product_id: str,
        quantity_change: float,
        unit: Optional[Union[InventoryUnit, str]] = None,
        note: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> StockAdjustedEvent:
        """
        Record ``quantity_change`` against a product and update its stock.

        Args:
            product_id: Store key of the product
            quantity_change: Signed delta, rounded to ``STOCK_PRECISION`` places
                before it is validated and recorded
            unit: Unit the caller believes the product uses; only recorded
                when the product itself has none
            note: Free text; a blank note is replaced by a generated one
            performed_by: Actor identifier / display string

        Returns:
            StockAdjustedEvent carrying the committed ledger entry

        Raises:
            InvalidAdjustment: delta is not a finite number or rounds to zero
                (no store call made)
            ProductNotFoundError: no such product in this dataset
            NegativeStockRejected: resulting stock would be below zero (nothing written)
            StockWriteError: the ledger entry could not be appended (nothing written)
            PartialWriteFailure: the entry was appended but the aggregate update failed
        """
        quantity_change = self._validate_delta(quantity_change)

        product = await self.read_product(product_id)
        previous_stock = product.stock
        new_stock = round_stock(previous_stock + quantity_change, self.settings.STOCK_PRECISION)

        if new_stock < 0:
            logger.warning(
                f"Rejected adjustment of {quantity_change} on {self.dataset.value} product {product_id}: "
                f"stock {previous_stock} would become {new_stock}"
            )
            raise NegativeStockRejected(product_id, previous_stock, quantity_change, new_stock)

        actor = performed_by or self.settings.DEFAULT_ACTOR
        timestamp = now_ms()
        transaction = Transaction(
            id="",
            product_id=product_id,
            product_name=product.product_name,
            quantity_change=quantity_change,
            unit=self._resolve_unit(product, unit),
            source=TransactionSource.MANUAL,
            note=self._resolve_note(note, quantity_change, actor),
            performed_by=actor,
            created_at=timestamp,
        )

        history_path = self.settings.history_path(product_id)
        try:
            transaction_id = await self.store.push(history_path, transaction.to_store())
        except Exception as e:
            logger.error(f"Transaction error for {self.dataset.value} product {product_id}: {e}")
            raise StockWriteError("Failed to update stock") from e
        transaction = transaction.model_copy(update={"id": transaction_id})

        try:
            await self.store.update(
                self.settings.product_path(self.dataset, product_id),
                {"stock": new_stock, "updatedAt": timestamp},
            )
        except Exception as e:
            logger.error(
                f"Stock update failed for {self.dataset.value} product {product_id} after recording "
                f"transaction {transaction_id}; aggregate is now behind the ledger: {e}"
            )
            raise PartialWriteFailure(product_id, transaction_id) from e

        logger.info(
            f"Adjusted {self.dataset.value} product {product_id} by {quantity_change}: "
            f"{previous_stock} -> {new_stock} (transaction {transaction_id})"
        )

        if self.cache.patch_product(self.dataset, product_id, stock=new_stock, updated_at=timestamp):
            if self._on_patch:
                self._on_patch(self.dataset)

        return StockAdjustedEvent(
            product_id=product_id,
            dataset=self.dataset,
            previous_stock=previous_stock,
            new_stock=new_stock,
            transaction=transaction,
        )

    async def adjust_by(
        self,
        product_id: str,
        magnitude: Union[str, float, int],
        direction: AdjustDirection,
        note: Optional[str] = None,
        performed_by: Optional[str] = None,
    ) -> StockAdjustedEvent:
        """Adjust using a positive magnitude and an add/reduce direction."""
        return await self.adjust(
            product_id,
            signed_quantity(magnitude, direction),
            note=note,
            performed_by=performed_by,
        )

    async def reconcile(self, product_id: str, apply: bool = False) -> ReconciliationReport:
        """
        Compare the aggregate stock with the sum of the product's ledger.

        With ``apply`` the aggregate is rewritten to the ledger sum, unless
        that sum is negative. Assumes the history holds every change since the
        product was created.
        """
        product = await self.read_product(product_id)
        try:
            raw_history = await self.store.get(self.settings.history_path(product_id))
        except Exception as e:
            logger.error(f"Error loading transactions for {product_id}: {e}")
            raise StoreReadError("Failed to load history") from e

        transactions = normalize_transactions(raw_history, product_id)
        precision = self.settings.STOCK_PRECISION
        ledger_stock = round_stock(sum(t.quantity_change for t in transactions), precision)
        drift = round_stock(product.stock - ledger_stock, precision)

        report = ReconciliationReport(
            product_id=product_id,
            aggregate_stock=product.stock,
            ledger_stock=ledger_stock,
            drift=drift,
            transaction_count=len(transactions),
        )
        if drift == 0:
            return report

        logger.warning(
            f"{self.dataset.value} product {product_id} aggregate {product.stock} "
            f"differs from ledger sum {ledger_stock} by {drift}"
        )
        if not apply:
            return report
        if ledger_stock < 0:
            logger.warning(f"Not applying negative ledger sum {ledger_stock} to product {product_id}")
            return report

        timestamp = now_ms()
        try:
            await self.store.update(
                self.settings.product_path(self.dataset, product_id),
                {"stock": ledger_stock, "updatedAt": timestamp},
            )
        except Exception as e:
            logger.error(f"Failed to apply reconciliation for {product_id}: {e}")
            raise StockWriteError("Failed to update stock") from e

        logger.info(f"Reconciled {self.dataset.value} product {product_id} stock to {ledger_stock}")
        if self.cache.patch_product(self.dataset, product_id, stock=ledger_stock, updated_at=timestamp):
            if self._on_patch:
                self._on_patch(self.dataset)
        return report.model_copy(update={"applied": True})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _validate_delta(self, quantity_change) -> float:
        """Return the delta rounded to stock precision, which is what the ledger records."""
        if not is_finite_number(quantity_change):
            logger.warning(f"Rejected non-numeric or non-finite quantity change: {quantity_change!r}")
            raise InvalidAdjustment(f"Quantity change must be a finite number, got: {quantity_change!r}")
        rounded = round_stock(quantity_change, self.settings.STOCK_PRECISION)
        if rounded == 0:
            logger.warning(f"Rejected quantity change {quantity_change!r}: zero at stock precision")
            raise InvalidAdjustment("Quantity change must not be zero")
        return rounded

    async def read_product(self, product_id: str) -> Product:
        """Authoritative read of one product, never from the cache."""
        try:
            raw = await self.store.get(self.settings.product_path(self.dataset, product_id))
        except Exception as e:
            logger.error(f"Error reading {self.dataset.value} product {product_id}: {e}")
            raise StoreReadError(f"Failed to read product {product_id}") from e
        if not isinstance(raw, dict):
            raise ProductNotFoundError(product_id)
        try:
            return Product.from_dataset(self.dataset, product_id, raw)
        except ValueError as e:
            # pydantic's ValidationError is a ValueError
            raise MalformedRecordError(f"Product {product_id} cannot be read: {e}") from e

    def _resolve_unit(self, product: Product, unit) -> InventoryUnit:
        if unit:
            try:
                requested = InventoryUnit(str(getattr(unit, "value", unit)).strip().lower())
            except ValueError:
                logger.warning(f"Ignoring unknown unit {unit!r} for product {product.id}")
                return product.unit
            if requested != product.unit:
                logger.warning(
                    f"Unit {requested.value} given for product {product.id} which uses "
                    f"{product.unit.value}; recording {product.unit.value}"
                )
        return product.unit

    @staticmethod
    def _resolve_note(note: Optional[str], quantity_change: float, actor: str) -> str:
        if note and note.strip():
            return note
        return f"{'Added' if quantity_change > 0 else 'Removed'} stock (By: {actor})"
