from .cache import SharedCache, CacheEntry
from .disclosure import ProgressiveDisclosureController
from .subscription_manager import SubscriptionManager, ConsumerView
from .stock_ledger import StockLedger, signed_quantity
from .history_reader import HistoryReader
from .analytics_service import StockAnalyticsService
from .consumer import InventoryConsumer
from .sync_service import InventorySyncService
