# tests/conftest.py
import pytest

from stocksync.core.config import get_test_settings
from stocksync.services.sync_service import InventorySyncService
from tests.mocks.mock_store import FlakyStore

# Millisecond timestamps used by the seed data (oldest first)
T0 = 1_700_000_000_000


def make_product(name: str, stock: float, updated_at: int, **extra) -> dict:
    record = {"productName": name, "stock": stock, "updatedAt": updated_at, "createdAt": T0}
    record.update(extra)
    return record


def make_products(count: int, prefix: str = "p") -> dict:
    """``count`` products; the highest index is the most recently updated."""
    return {
        f"{prefix}{i:03d}": make_product(f"Product {i}", 20, T0 + i)
        for i in range(count)
    }


def seed_data() -> dict:
    return {
        "quotations": {
            "manualInventory": {
                "m1": make_product("Cement", 10, T0 + 30, unit="kg", productId="CEM-1", rate=5),
                "m2": make_product("Sand", 3, T0 + 20, unit="kg", rate=2),
                "m3": make_product("Bricks", 0, T0 + 10, unit="piece"),
            },
            "inventory": {
                "c1": make_product("Drill", 25, T0 + 40, rate=100, product="Drill"),
                "c2": make_product("Hammer", 8, T0 + 50, cost=15),
            },
            "inventoryGrp": {
                "g1": {
                    "name": "Masonry",
                    "items": [
                        {"productId": "m1", "productName": "Cement", "inventoryType": "manual"},
                        {"productId": "m3", "productName": "Bricks", "inventoryType": "manual"},
                        {"productId": "c1", "productName": "Drill", "inventoryType": "product"},
                    ],
                },
                "g2": {
                    "name": "Tools",
                    "items": [
                        {"productId": "c1", "productName": "Drill", "inventoryType": "product"},
                        {"productId": "c2", "productName": "Hammer", "inventoryType": "product"},
                    ],
                },
            },
        }
    }


@pytest.fixture
def settings():
    """Provide test settings (short disclosure timers)"""
    return get_test_settings()


@pytest.fixture
def store():
    return FlakyStore(seed_data())


@pytest.fixture
async def service(store, settings):
    service = InventorySyncService(store, settings).init()
    yield service
    service.dispose()
