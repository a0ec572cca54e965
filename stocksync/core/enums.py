"""
Shared enums and constants used across the application.
"""

from enum import Enum


class InventoryUnit(str, Enum):
    """Unit-of-measure tags a product can carry"""
    PIECE = "piece"
    METER = "meter"
    FOOT = "foot"
    LENGTH = "length"
    BOX = "box"
    SQFT = "sqft"
    PCS = "pcs"
    KGS = "kgs"
    PKT = "pkt"
    ROLL = "roll"
    SET = "set"
    CARTON = "carton"
    BUNDLE = "bundle"
    DOZEN = "dozen"
    KG = "kg"
    INCH = "inch"
    CM = "cm"
    MM = "mm"


class TransactionSource(str, Enum):
    """Where a ledger entry came from"""
    MANUAL = "manual"
    QUOTATION = "quotation"
    PURCHASE = "purchase"


class MembershipType(str, Enum):
    """How a product joined an inventory group"""
    PRODUCT = "product"   # Catalog-linked
    MANUAL = "manual"     # Entered by hand


class InventoryDataset(str, Enum):
    """The two parallel product collections kept in the remote store"""
    MANUAL = "manual"
    CATALOG = "catalog"

    @property
    def membership_type(self) -> MembershipType:
        # Catalog products show up in groups as "product" members
        return MembershipType.MANUAL if self is InventoryDataset.MANUAL else MembershipType.PRODUCT

    @property
    def default_unit(self) -> InventoryUnit:
        return InventoryUnit.PIECE if self is InventoryDataset.MANUAL else InventoryUnit.PCS


class AdjustDirection(str, Enum):
    ADD = "add"
    REDUCE = "reduce"


class StockFilter(str, Enum):
    ALL = "all"
    LOW = "low"
    OUT = "out"


class SyncStatus(str, Enum):
    """Lifecycle of a dataset subscription."""
    PENDING = "pending"      # Subscription requested, no data yet
    SYNCED = "synced"        # Last push applied
    ERROR = "error"          # Last push or refresh failed; cache kept
    RELEASED = "released"    # Subscription torn down by cleanup
