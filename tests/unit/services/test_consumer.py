# tests/unit/services/test_consumer.py
import asyncio

import pytest

from stocksync.core.enums import AdjustDirection, InventoryDataset, StockFilter, SyncStatus
from stocksync.core.exceptions import ProductNotFoundError, SyncFailure
from stocksync.services.sync_service import InventorySyncService
from tests.conftest import make_products
from tests.mocks.mock_store import FlakyStore

MANUAL = InventoryDataset.MANUAL
CATALOG = InventoryDataset.CATALOG
WAIT = 0.3  # longer than the test load + settle delays


async def open_loaded(service, dataset=MANUAL, **kwargs):
    consumer = await service.open_consumer(dataset, **kwargs)
    await consumer.wait_until_loaded(timeout=1)
    return consumer


@pytest.fixture
async def big(settings):
    """45 manual products, no groups."""
    store = FlakyStore({"quotations": {"manualInventory": make_products(45)}})
    service = InventorySyncService(store, settings).init()
    yield service, store
    service.dispose()


# --- Snapshots ---

@pytest.mark.asyncio
async def test_snapshot_after_load(service):
    consumer = await open_loaded(service)
    snapshot = consumer.get_snapshot()

    assert [p.id for p in snapshot.products] == ["m1", "m2", "m3"]
    assert snapshot.total_count == 3
    assert snapshot.limit == 30
    assert not snapshot.has_more
    assert not snapshot.loading
    assert snapshot.status == SyncStatus.SYNCED
    assert snapshot.error is None
    assert [g.id for g in snapshot.groups] == ["g1"]


@pytest.mark.asyncio
async def test_snapshot_while_loading(service):
    consumer = await service.open_consumer(MANUAL)
    snapshot = consumer.get_snapshot()

    assert snapshot.loading
    assert snapshot.products == []
    assert snapshot.status == SyncStatus.PENDING


@pytest.mark.asyncio
async def test_progressive_disclosure_of_45_products(big):
    service, store = big
    consumer = await open_loaded(service)

    snapshot = consumer.get_snapshot()
    assert len(snapshot.products) == 30
    assert snapshot.has_more

    await asyncio.sleep(WAIT)
    snapshot = consumer.get_snapshot()
    assert len(snapshot.products) == 45
    assert not snapshot.has_more


@pytest.mark.asyncio
async def test_fresh_push_restarts_disclosure(big):
    service, store = big
    consumer = await open_loaded(service)
    await asyncio.sleep(WAIT)
    assert consumer.get_snapshot().limit == 45

    await store.set("quotations/manualInventory", make_products(50))
    await store.flush()

    snapshot = consumer.get_snapshot()
    assert snapshot.limit == 30
    assert len(snapshot.products) == 30
    assert snapshot.total_count == 50


@pytest.mark.asyncio
async def test_reopened_consumer_resumes_window(big):
    service, store = big
    first = await open_loaded(service)
    await asyncio.sleep(WAIT)
    first.close()

    second = await service.open_consumer(MANUAL)
    # Seeded from the cache synchronously, window remembered
    assert not second.get_snapshot().loading
    assert len(second.get_snapshot().products) == 45
    assert store.subscribe_calls.count("quotations/manualInventory") == 1


@pytest.mark.asyncio
async def test_request_more_on_demand(big, settings):
    service, store = big
    consumer = await open_loaded(service)

    task = consumer.request_more()
    assert consumer.get_snapshot().expanding
    assert consumer.request_more() is None
    await task

    assert consumer.get_snapshot().limit == 45


@pytest.mark.asyncio
async def test_unchunked_consumer_sees_everything(big):
    service, store = big
    consumer = await open_loaded(service, chunked=False)
    snapshot = consumer.get_snapshot()

    assert len(snapshot.products) == 45
    assert snapshot.limit is None
    assert not snapshot.has_more
    assert consumer.request_more() is None


@pytest.mark.asyncio
async def test_subscribers_get_snapshots_until_unsubscribed(service, store):
    consumer = await open_loaded(service)
    received = []
    unsubscribe = consumer.subscribe(received.append)

    await store.update("quotations/manualInventory/m3", {"stock": 4})
    await store.flush()
    assert received[-1].products[2].stock == 4

    unsubscribe()
    count = len(received)
    await store.update("quotations/manualInventory/m3", {"stock": 5})
    await store.flush()
    assert len(received) == count


# --- Stock ---

@pytest.mark.asyncio
async def test_adjust_stock_updates_snapshot_and_notifies(service):
    consumer = await open_loaded(service)
    events = []
    service.add_adjustment_listener(events.append)
    snapshots = []
    consumer.subscribe(snapshots.append)

    event = await consumer.adjust_stock("m2", -1, note="sold", performed_by="dana")

    assert events == [event]
    assert snapshots[-1].products[1].stock == 2
    assert event.transaction.note == "sold"


@pytest.mark.asyncio
async def test_adjust_stock_by_direction(service):
    consumer = await open_loaded(service)
    event = await consumer.adjust_stock_by("m1", 2, AdjustDirection.ADD)
    assert event.new_stock == 12


@pytest.mark.asyncio
async def test_get_history_requires_product_in_dataset(service):
    consumer = await open_loaded(service)
    await consumer.adjust_stock("m1", 3)

    history = await consumer.get_history("m1")
    assert [t.quantity_change for t in history] == [3.0]
    assert await consumer.get_history("m2") == []

    with pytest.raises(ProductNotFoundError):
        await consumer.get_history("c1")


# --- Search and filters ---

@pytest.mark.asyncio
async def test_search_products(service):
    consumer = await open_loaded(service)

    assert [p.id for p in consumer.search_products("SAND")] == ["m2"]
    assert [p.id for p in consumer.search_products("cem-1")] == ["m1"]
    assert len(consumer.search_products("  ")) == 3


@pytest.mark.asyncio
async def test_stock_filters(service):
    consumer = await open_loaded(service)

    assert [p.id for p in consumer.filter_products(StockFilter.LOW)] == ["m1", "m2"]
    assert [p.id for p in consumer.filter_products(StockFilter.OUT)] == ["m3"]
    assert len(consumer.filter_products(StockFilter.ALL)) == 3
    assert [p.id for p in consumer.filter_products("low", group_id="g1")] == ["m1"]
    assert [p.id for p in consumer.filter_products(group_id="g1", search="brick")] == ["m3"]


@pytest.mark.asyncio
async def test_group_products_restricted_to_dataset(service):
    manual = await open_loaded(service)
    catalog = await open_loaded(service, CATALOG)

    assert [p.id for p in manual.group_products("g1")] == ["m1", "m3"]
    assert manual.group_products("g2") == []
    assert [p.id for p in catalog.group_products("g1")] == ["c1"]
    assert [p.id for p in catalog.group_products("g2")] == ["c2", "c1"]


# --- Failures and lifecycle ---

@pytest.mark.asyncio
async def test_failed_refresh_keeps_snapshot(service, store):
    consumer = await open_loaded(service)
    store.fail_ops = {"get"}

    with pytest.raises(SyncFailure):
        await consumer.refresh()

    snapshot = consumer.get_snapshot()
    assert snapshot.total_count == 3
    assert snapshot.error == "Failed to refresh data"
    assert snapshot.status == SyncStatus.ERROR


@pytest.mark.asyncio
async def test_close_stops_updates_and_timers(big):
    service, store = big
    consumer = await open_loaded(service)
    received = []
    consumer.subscribe(received.append)

    consumer.close()
    consumer.close()
    await asyncio.sleep(WAIT)
    await store.update("quotations/manualInventory/p001", {"stock": 1})
    await store.flush()

    assert received == []
    assert consumer.get_snapshot().limit == 30
    assert consumer not in service.consumers
    assert service.manager.views(MANUAL) == []
