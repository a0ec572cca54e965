from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from stocksync.core.config import get_test_settings
from stocksync.core.exceptions import StoreReadError
from stocksync.main import create_app
from stocksync.services.subscription_manager import SubscriptionManager
from tests.conftest import seed_data
from tests.mocks.mock_store import FlakyStore


@pytest.fixture
def store():
    return FlakyStore(seed_data())


@pytest.fixture
def client(store):
    app = create_app(store=store, settings=get_test_settings(LOAD_TIMEOUT_SECONDS=2))
    with TestClient(app) as client:
        yield client


# --- Health ---

def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_sync_health_reports_subscriptions(client):
    client.get("/inventory/manual/products")
    data = client.get("/health/sync").json()

    assert data["datasets"]["manual"]["listening"] is True
    assert data["datasets"]["manual"]["cached_products"] == 3
    assert data["datasets"]["catalog"]["listening"] is False
    assert "quotations/manualInventory" in data["subscriptions"]


# --- Products ---

def test_list_products(client):
    response = client.get("/inventory/manual/products")
    assert response.status_code == 200

    data = response.json()
    assert data["total"] == 3
    assert [p["id"] for p in data["products"]] == ["m1", "m2", "m3"]
    assert data["products"][0]["productName"] == "Cement"
    assert data["products"][0]["productId"] == "CEM-1"


@pytest.mark.parametrize(
    "query,expected",
    [
        ("stock_filter=low", ["m1", "m2"]),
        ("stock_filter=out", ["m3"]),
        ("search=sand", ["m2"]),
        ("group_id=g1&search=brick", ["m3"]),
    ],
)
def test_list_products_filters(client, query, expected):
    data = client.get(f"/inventory/manual/products?{query}").json()
    assert [p["id"] for p in data["products"]] == expected
    assert data["total"] == 3


def test_unknown_dataset_is_rejected(client):
    assert client.get("/inventory/warehouse/products").status_code == 422


def test_list_groups(client):
    data = client.get("/inventory/catalog/groups").json()
    assert [g["id"] for g in data["groups"]] == ["g1", "g2"]
    assert [i["productId"] for i in data["groups"][0]["items"]] == ["c1"]


def test_list_products_fails_when_nothing_cached(client, store):
    store.fail_ops = {"subscribe"}
    response = client.get("/inventory/catalog/products")
    assert response.status_code == 503


# --- Adjustments ---

def test_adjust_stock(client):
    response = client.post(
        "/inventory/manual/products/m1/adjust",
        json={"quantityChange": 5, "performedBy": "alice"},
    )
    assert response.status_code == 200

    data = response.json()
    assert data["previousStock"] == 10
    assert data["newStock"] == 15
    assert data["transaction"]["note"] == "Added stock (By: alice)"
    assert data["transaction"]["unit"] == "kg"


def test_adjust_with_magnitude_and_direction(client):
    response = client.post(
        "/inventory/catalog/products/c2/adjust",
        json={"magnitude": 2, "direction": "reduce"},
    )
    assert response.status_code == 200
    assert response.json()["newStock"] == 6


def test_negative_stock_is_a_conflict(client, store):
    response = client.post("/inventory/manual/products/m2/adjust", json={"quantityChange": -5})

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["currentStock"] == 3
    assert detail["resultingStock"] == -2
    assert store.dump()["quotations"]["manualInventory"]["m2"]["stock"] == 3


@pytest.mark.parametrize(
    "payload",
    [
        {"quantityChange": 0},
        {"magnitude": -1, "direction": "add"},
        {"magnitude": 1},
        {},
    ],
)
def test_invalid_adjustments(client, payload):
    response = client.post("/inventory/manual/products/m1/adjust", json=payload)
    assert response.status_code == 422


def test_adjust_unknown_product(client):
    response = client.post("/inventory/manual/products/nope/adjust", json={"quantityChange": 1})
    assert response.status_code == 404


def test_partial_write_reports_transaction(client, store):
    store.fail_ops = {"update"}
    response = client.post("/inventory/manual/products/m1/adjust", json={"quantityChange": 1})

    assert response.status_code == 502
    transaction_id = response.json()["detail"]["transactionId"]
    assert transaction_id in store.dump()["quotations"]["inventoryTransactions"]["m1"]


# --- History and reconciliation ---

def test_product_history(client):
    client.post("/inventory/manual/products/m1/adjust", json={"quantityChange": 1})
    client.post("/inventory/manual/products/m1/adjust", json={"quantityChange": -2})

    data = client.get("/inventory/manual/products/m1/history").json()
    assert data["count"] == 2
    assert [t["quantityChange"] for t in data["transactions"]] == [-2.0, 1.0]

    assert client.get("/inventory/manual/products/m2/history").json()["count"] == 0
    assert client.get("/inventory/manual/products/nope/history").status_code == 404


def test_all_history(client):
    client.post("/inventory/manual/products/m1/adjust", json={"quantityChange": 1})
    client.post("/inventory/catalog/products/c1/adjust", json={"quantityChange": 1})

    data = client.get("/inventory/history").json()
    assert [t["productId"] for t in data["transactions"]] == ["c1", "m1"]
    assert client.get("/inventory/history?product_id=m1").json()["count"] == 1
    assert client.get("/inventory/history?limit=1").json()["count"] == 1


def test_reconcile(client):
    client.post("/inventory/manual/products/m3/adjust", json={"quantityChange": 4})

    data = client.get("/inventory/manual/products/m3/reconcile").json()
    assert data["ledgerStock"] == 4
    assert data["drift"] == 0
    assert data["applied"] is False


def test_history_read_failure(client, store):
    store.fail_ops = {"get"}
    assert client.get("/inventory/history").status_code == 502


# --- Refresh and analytics ---

def test_refresh(client):
    response = client.post("/inventory/manual/refresh")
    assert response.status_code == 200
    assert response.json()["count"] == 3


def test_refresh_failure(client, store):
    store.fail_ops = {"get"}
    response = client.post("/inventory/manual/refresh")
    assert response.status_code == 503
    assert response.json()["detail"] == "Failed to refresh data"


def test_analytics(client):
    data = client.get("/inventory/analytics").json()
    assert data["totalItems"] == 5
    assert data["manualCount"] == 3
    assert data["catalogCount"] == 2
    assert data["totalValue"] == 10 * 5 + 3 * 2 + 25 * 100 + 8 * 15


# --- WebSocket feed ---

def test_websocket_feed(client):
    with client.websocket_connect("/ws/inventory/manual") as websocket:
        first = websocket.receive_json()
        assert first["type"] == "snapshot"
        assert first["totalCount"] == 3
        assert first["loading"] is False

        client.post("/inventory/manual/products/m1/adjust", json={"quantityChange": 5})
        messages = [websocket.receive_json() for _ in range(3)]

        types = [m["type"] for m in messages]
        assert "stock_adjusted" in types
        adjusted = next(m for m in messages if m["type"] == "stock_adjusted")
        assert adjusted["new_stock"] == 15
        snapshot = next(m for m in messages if m["type"] == "snapshot")
        assert snapshot["products"][0]["stock"] == 15


def test_websocket_rejects_unknown_action(client):
    with client.websocket_connect("/ws/inventory/catalog") as websocket:
        websocket.receive_json()
        websocket.send_json({"action": "dance"})
        assert websocket.receive_json() == {"type": "error", "message": "Unknown action: dance"}


def test_websocket_reports_non_json_frames(client):
    with client.websocket_connect("/ws/inventory/catalog") as websocket:
        websocket.receive_json()
        websocket.send_text("not json")
        assert websocket.receive_json() == {"type": "error", "message": "Messages must be JSON"}

        # The connection stays usable
        websocket.send_json({"action": "dance"})
        assert websocket.receive_json()["message"] == "Unknown action: dance"


def test_websocket_reports_refresh_errors(client, mocker):
    mocker.patch.object(
        SubscriptionManager, "refresh", AsyncMock(side_effect=StoreReadError("Failed to read inventory"))
    )
    with client.websocket_connect("/ws/inventory/manual") as websocket:
        websocket.receive_json()
        websocket.send_json({"action": "refresh"})
        assert websocket.receive_json() == {"type": "error", "message": "Failed to read inventory"}


def test_websocket_unknown_dataset(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/inventory/warehouse") as websocket:
            websocket.receive_json()
