# stocksync/services/history_reader.py
import logging
from typing import Iterable, List, Optional

from stocksync.core.config import Settings
from stocksync.core.exceptions import StoreReadError
from stocksync.integrations.base import RemoteStoreAdapter
from stocksync.schemas.transaction import Transaction, normalize_transactions, sort_newest_first

logger = logging.getLogger(__name__)


class HistoryReader:
    """Reads ledger entries back out of the store, newest first."""

    def __init__(self, store: RemoteStoreAdapter, settings: Settings):
        self.store = store
        self.settings = settings

    async def history_for(self, product_id: str) -> List[Transaction]:
        """
        All entries recorded against one product.

        A product without history yields an empty list, never an error.
        """
        try:
            raw = await self.store.get(self.settings.history_path(product_id))
        except Exception as e:
            logger.error(f"Error loading transactions for {product_id}: {e}")
            raise StoreReadError(f"Failed to load history for {product_id}") from e
        return normalize_transactions(raw, product_id)

    async def history_for_all(self, product_ids: Optional[Iterable[str]] = None) -> List[Transaction]:
        """
        Every entry under the history root merged into one newest-first list.

        Batch path: reads the whole history subtree. ``product_ids`` narrows
        the result to those products.
        """
        try:
            raw = await self.store.get(self.settings.history_root())
        except Exception as e:
            logger.error(f"Error loading all transactions: {e}")
            raise StoreReadError("Failed to load transaction history") from e

        if not isinstance(raw, dict):
            return []

        wanted = set(product_ids) if product_ids is not None else None
        transactions: List[Transaction] = []
        for product_id, entries in raw.items():
            if wanted is not None and product_id not in wanted:
                continue
            transactions.extend(normalize_transactions(entries, product_id))

        logger.debug(f"Loaded {len(transactions)} transactions across {len(raw)} products")
        return sort_newest_first(transactions)
