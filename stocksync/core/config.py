# stocksync/core/config.py

import os
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from stocksync.core.enums import InventoryDataset


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Remote store layout
    STORE_ROOT: str = "quotations"
    MANUAL_PRODUCTS_PATH: str = "manualInventory"
    CATALOG_PRODUCTS_PATH: str = "inventory"
    GROUPS_PATH: str = "inventoryGrp"
    TRANSACTIONS_PATH: str = "inventoryTransactions"

    # Progressive disclosure
    CHUNK_SIZE: int = 30            # Items exposed right after a fresh push
    CHUNK_INCREMENT: int = 20       # Items added per expansion
    INITIAL_LOAD_DELAY_MS: int = 2000
    SETTLE_DELAY_MS: int = 300

    # Stock ledger
    STOCK_PRECISION: int = 6
    DEFAULT_ACTOR: str = "Unknown User"

    # Filters and analytics
    LOW_STOCK_THRESHOLD: float = 10.0
    RECENT_PRODUCTS_LIMIT: int = 8
    RECENT_TRANSACTIONS_LIMIT: int = 10

    # HTTP binding
    LOAD_TIMEOUT_SECONDS: float = 10.0   # Wait for the first delivery before answering
    STORE_SEED_FILE: Optional[str] = None  # JSON document loaded into the in-memory store on startup

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Key paths
    # ------------------------------------------------------------------
    def _join(self, *parts: str) -> str:
        return "/".join(p.strip("/") for p in parts if p)

    def products_path(self, dataset: InventoryDataset) -> str:
        leaf = self.MANUAL_PRODUCTS_PATH if dataset == InventoryDataset.MANUAL else self.CATALOG_PRODUCTS_PATH
        return self._join(self.STORE_ROOT, leaf)

    def product_path(self, dataset: InventoryDataset, product_id: str) -> str:
        return self._join(self.products_path(dataset), product_id)

    def groups_path(self) -> str:
        return self._join(self.STORE_ROOT, self.GROUPS_PATH)

    def history_root(self) -> str:
        return self._join(self.STORE_ROOT, self.TRANSACTIONS_PATH)

    def history_path(self, product_id: str) -> str:
        return self._join(self.history_root(), product_id)

    @property
    def initial_load_delay(self) -> float:
        return self.INITIAL_LOAD_DELAY_MS / 1000.0

    @property
    def settle_delay(self) -> float:
        return self.SETTLE_DELAY_MS / 1000.0


@lru_cache()
def get_settings():
    """Cached settings to avoid re-reading the environment on every lookup"""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()


def get_test_settings(**overrides) -> Settings:
    """Settings with short timers, used by the test suite."""
    values = {
        "INITIAL_LOAD_DELAY_MS": 20,
        "SETTLE_DELAY_MS": 5,
        "ENVIRONMENT": "test",
    }
    values.update(overrides)
    return Settings(**values)
