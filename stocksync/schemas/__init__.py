from .base import BaseSchema, StoreRecord, TimestampedRecord
from .product import Product, normalize_products
from .transaction import Transaction, normalize_transactions, sort_newest_first
from .group import GroupMember, InventoryGroup, normalize_groups, filter_groups
from .snapshot import InventorySnapshot, StockAnalytics, ReconciliationReport
from .adjustment import StockAdjustRequest
