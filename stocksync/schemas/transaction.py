"""
Ledger entries: immutable, append-only signed stock changes.
"""

import math
from typing import Any, List, Optional

from pydantic import field_validator

from stocksync.core.enums import InventoryUnit, TransactionSource
from stocksync.core.utils import normalize_children
from stocksync.schemas.base import StoreRecord
from stocksync.schemas.product import UNKNOWN_PRODUCT_NAME, _coerce_unit


class Transaction(StoreRecord):
    """
    One signed quantity change recorded under a product's history.

    ``product_name`` and ``unit`` are captured when the entry is written and
    are never re-derived from the product afterwards.
    """
    product_id: str = ""
    product_name: str = UNKNOWN_PRODUCT_NAME
    quantity_change: float
    unit: Optional[InventoryUnit] = None
    source: TransactionSource = TransactionSource.MANUAL
    quotation_id: Optional[str] = None
    purchase_id: Optional[str] = None
    note: Optional[str] = None
    performed_by: Optional[str] = None
    created_at: int = 0

    @field_validator('quantity_change', mode='before')
    @classmethod
    def validate_quantity_change(cls, v):
        if isinstance(v, bool):
            raise ValueError('Quantity change must be a number')
        try:
            value = float(v)
        except (ValueError, TypeError):
            raise ValueError(f'Quantity change must be a valid number, got: {v}')
        if not math.isfinite(value):
            raise ValueError('Quantity change must be finite')
        return value

    @field_validator('unit', mode='before')
    @classmethod
    def validate_unit(cls, v):
        if v is None or v == '':
            return None
        return _coerce_unit(v)

    @field_validator('product_id', 'quotation_id', 'purchase_id', mode='before')
    @classmethod
    def validate_identifier(cls, v):
        return v if v is None else str(v)

    @field_validator('created_at', mode='before')
    @classmethod
    def validate_created_at(cls, v):
        if v is None or v == '':
            return 0
        return int(float(v))

    @property
    def is_increase(self) -> bool:
        return self.quantity_change > 0


def sort_newest_first(transactions: List[Transaction]) -> List[Transaction]:
    """Newest first; equal timestamps fall back to the (time-ordered) store key."""
    return sorted(transactions, key=lambda t: (t.created_at, t.id), reverse=True)


def normalize_transactions(raw: Any, product_id: Optional[str] = None) -> List[Transaction]:
    """
    Normalize the entries under one product's history path.

    Entries missing an owning product take it from the history path.
    """
    def build(key, value):
        if product_id and not value.get("productId"):
            value = {**value, "productId": product_id}
        return Transaction.from_store(key, value)

    return sort_newest_first(normalize_children(raw, build, "transaction"))
