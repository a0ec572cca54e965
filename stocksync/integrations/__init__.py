from .base import RemoteStoreAdapter
from .events import StockAdjustedEvent
from .memory_store import InMemoryRemoteStore, PushKeyGenerator
