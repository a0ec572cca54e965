"""
Schemas for the stock adjustment endpoint.
"""

from typing import Optional

from pydantic import model_validator

from stocksync.core.enums import AdjustDirection, InventoryUnit
from stocksync.schemas.base import BaseSchema


class StockAdjustRequest(BaseSchema):
    """
    Either a signed ``quantity_change``, or a positive ``magnitude`` with a
    ``direction`` (the form the stock dialog submits).
    """
    quantity_change: Optional[float] = None
    magnitude: Optional[float] = None
    direction: Optional[AdjustDirection] = None
    unit: Optional[InventoryUnit] = None
    note: Optional[str] = None
    performed_by: Optional[str] = None

    @model_validator(mode='after')
    def check_quantity(self):
        if self.quantity_change is None and (self.magnitude is None or self.direction is None):
            raise ValueError('Provide quantityChange, or magnitude together with direction')
        return self
