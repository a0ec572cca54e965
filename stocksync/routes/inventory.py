# stocksync/routes/inventory.py
import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from stocksync.core.enums import InventoryDataset, StockFilter
from stocksync.core.exceptions import (
    BaseServiceError,
    NegativeStockRejected,
    PartialWriteFailure,
    ProductNotFoundError,
    StockWriteError,
    StoreReadError,
    SyncFailure,
    ValidationError,
)
from stocksync.dependencies import get_sync_service
from stocksync.schemas.adjustment import StockAdjustRequest
from stocksync.services.consumer import InventoryConsumer
from stocksync.services.stock_ledger import signed_quantity
from stocksync.services.sync_service import InventorySyncService

logger = logging.getLogger(__name__)

router = APIRouter()


def http_error(e: BaseServiceError) -> HTTPException:
    """Map a service error to the HTTP status the API reports it with."""
    if isinstance(e, ProductNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, NegativeStockRejected):
        return HTTPException(
            status_code=409,
            detail={
                "message": str(e),
                "currentStock": e.current_stock,
                "quantityChange": e.quantity_change,
                "resultingStock": e.resulting_stock,
            },
        )
    if isinstance(e, ValidationError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, SyncFailure):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, PartialWriteFailure):
        return HTTPException(
            status_code=502,
            detail={"message": str(e), "transactionId": e.transaction_id},
        )
    if isinstance(e, (StockWriteError, StoreReadError)):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _dump(models) -> List[dict]:
    return [m.model_dump(mode="json", by_alias=True) for m in models]


async def _open_loaded(service: InventorySyncService, dataset: InventoryDataset) -> InventoryConsumer:
    """A short-lived unchunked consumer holding the whole cached dataset."""
    consumer = await service.open_consumer(dataset, chunked=False)
    try:
        await consumer.wait_until_loaded(timeout=service.settings.LOAD_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        service.release_consumer(consumer)
        raise HTTPException(status_code=504, detail=f"Timed out loading {dataset.value} inventory")
    # Stale data is still served; only a failure with nothing cached is an error
    if consumer.view.error is not None and not service.cache.entry(dataset).is_valid:
        error = consumer.view.error
        service.release_consumer(consumer)
        raise http_error(error)
    return consumer


# ------------------------------------------------------------------
# Cross-dataset reads
# ------------------------------------------------------------------
@router.get("/history")
async def all_history(
    product_id: Optional[List[str]] = Query(default=None),
    limit: Optional[int] = Query(default=None, ge=1),
    service: InventorySyncService = Depends(get_sync_service),
):
    """Every ledger entry, newest first (batch read)."""
    try:
        transactions = await service.history_for_all(product_id)
    except BaseServiceError as e:
        raise http_error(e)
    if limit is not None:
        transactions = transactions[:limit]
    return {"count": len(transactions), "transactions": _dump(transactions)}


@router.get("/analytics")
async def stock_analytics(service: InventorySyncService = Depends(get_sync_service)):
    try:
        analytics = await service.compute_analytics()
    except BaseServiceError as e:
        raise http_error(e)
    return analytics.model_dump(mode="json", by_alias=True)


# ------------------------------------------------------------------
# Per-dataset
# ------------------------------------------------------------------
@router.get("/{dataset}/products")
async def list_products(
    dataset: InventoryDataset,
    search: Optional[str] = None,
    stock_filter: StockFilter = StockFilter.ALL,
    group_id: Optional[str] = None,
    service: InventorySyncService = Depends(get_sync_service),
):
    consumer = await _open_loaded(service, dataset)
    try:
        products = consumer.filter_products(stock_filter, group_id=group_id, search=search)
        snapshot = consumer.get_snapshot()
    finally:
        service.release_consumer(consumer)

    return {
        "dataset": dataset.value,
        "total": snapshot.total_count,
        "count": len(products),
        "lastUpdated": snapshot.last_updated,
        "products": _dump(products),
    }


@router.get("/{dataset}/groups")
async def list_groups(dataset: InventoryDataset, service: InventorySyncService = Depends(get_sync_service)):
    """Groups with members of this dataset, pruned to those members."""
    consumer = await _open_loaded(service, dataset)
    try:
        groups = consumer.view.groups
    finally:
        service.release_consumer(consumer)
    return {"dataset": dataset.value, "groups": _dump(groups)}


@router.post("/{dataset}/products/{product_id}/adjust")
async def adjust_stock(
    dataset: InventoryDataset,
    product_id: str,
    payload: StockAdjustRequest,
    service: InventorySyncService = Depends(get_sync_service),
):
    try:
        if payload.quantity_change is not None:
            quantity_change = payload.quantity_change
        else:
            quantity_change = signed_quantity(payload.magnitude, payload.direction)
        event = await service.adjust(
            dataset,
            product_id,
            quantity_change,
            unit=payload.unit,
            note=payload.note,
            performed_by=payload.performed_by,
        )
    except BaseServiceError as e:
        raise http_error(e)

    return {
        "status": "success",
        "productId": product_id,
        "previousStock": event.previous_stock,
        "newStock": event.new_stock,
        "transaction": event.transaction.model_dump(mode="json", by_alias=True),
    }


@router.get("/{dataset}/products/{product_id}/history")
async def product_history(
    dataset: InventoryDataset,
    product_id: str,
    service: InventorySyncService = Depends(get_sync_service),
):
    try:
        await service.ledger(dataset).read_product(product_id)
        transactions = await service.history_for(product_id)
    except BaseServiceError as e:
        raise http_error(e)
    return {"productId": product_id, "count": len(transactions), "transactions": _dump(transactions)}


@router.get("/{dataset}/products/{product_id}/reconcile")
async def reconcile_stock(
    dataset: InventoryDataset,
    product_id: str,
    apply: bool = False,
    service: InventorySyncService = Depends(get_sync_service),
):
    """Compare aggregate stock with the ledger sum; ``apply=true`` rewrites the aggregate."""
    try:
        report = await service.reconcile(dataset, product_id, apply=apply)
    except BaseServiceError as e:
        raise http_error(e)
    return report.model_dump(mode="json", by_alias=True)


@router.post("/{dataset}/refresh")
async def refresh_dataset(dataset: InventoryDataset, service: InventorySyncService = Depends(get_sync_service)):
    try:
        products = await service.refresh(dataset)
    except BaseServiceError as e:
        raise http_error(e)
    return {"status": "success", "dataset": dataset.value, "count": len(products)}
