"""
Product records kept in the two product collections.
"""

from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from stocksync.core.enums import InventoryDataset, InventoryUnit
from stocksync.core.utils import normalize_children
from stocksync.schemas.base import TimestampedRecord

UNKNOWN_PRODUCT_NAME = "Unknown Product"


def _coerce_unit(v):
    if isinstance(v, str):
        return v.strip().lower()
    return v


class Product(TimestampedRecord):
    """A product and its aggregate stock level."""
    product_id: str = ""
    product_name: str = UNKNOWN_PRODUCT_NAME
    stock: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    unit: InventoryUnit = InventoryUnit.PIECE

    # Optional details
    rate: Optional[float] = None
    cost: Optional[float] = None
    notes: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator('stock', mode='before')
    @classmethod
    def validate_stock(cls, v):
        if v is None or v == '':
            return 0.0
        if isinstance(v, bool):
            raise ValueError('Stock must be a number')
        try:
            return float(v)
        except (ValueError, TypeError):
            raise ValueError(f'Stock must be a valid number, got: {v}')

    @field_validator('rate', 'cost', mode='before')
    @classmethod
    def validate_price(cls, v):
        if v is None or v == '':
            return None
        try:
            return float(v)
        except (ValueError, TypeError):
            raise ValueError('Price must be a valid number')

    @field_validator('unit', mode='before')
    @classmethod
    def validate_unit(cls, v):
        return _coerce_unit(v)

    @field_validator('product_id', mode='before')
    @classmethod
    def validate_product_code(cls, v):
        return '' if v is None else str(v)

    @field_validator('product_name', mode='before')
    @classmethod
    def validate_name(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return UNKNOWN_PRODUCT_NAME
        return str(v)

    @classmethod
    def from_dataset(cls, dataset: InventoryDataset, key: str, raw: Dict[str, Any]) -> "Product":
        """
        Normalize one raw product from ``dataset``.

        Fills the defaults the store may leave out: product code falls back to
        the store key, a missing unit to the dataset's default unit.
        """
        values = dict(raw)
        if not values.get("productId"):
            values["productId"] = key
        if not values.get("unit"):
            values["unit"] = dataset.default_unit.value
        return cls.from_store(key, values)

    def matches(self, term: str) -> bool:
        term = term.strip().lower()
        return term in self.product_name.lower() or term in self.product_id.lower()


def normalize_products(raw: Any, dataset: InventoryDataset) -> List[Product]:
    """Normalize a whole product collection, most recently updated first."""
    products = normalize_children(
        raw,
        lambda key, value: Product.from_dataset(dataset, key, value),
        f"{dataset.value} product",
    )
    # sorted() is stable, so equal timestamps keep store key order
    return sorted(products, key=lambda p: p.updated_at, reverse=True)
