from fastapi import APIRouter, Depends

from stocksync.core.enums import InventoryDataset
from stocksync.dependencies import get_sync_service
from stocksync.services.sync_service import InventorySyncService
from stocksync.services.websockets.manager import manager

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "Stock Sync Service"}


@router.get("/health/sync")
async def sync_health(service: InventorySyncService = Depends(get_sync_service)):
    """Subscription and cache state per dataset"""
    if not service.initialized:
        return {"status": "unhealthy", "error": "sync service not initialized"}

    datasets = {}
    for dataset in InventoryDataset:
        entry = service.cache.entry(dataset)
        datasets[dataset.value] = {
            "listening": entry.listening,
            "status": entry.status.value,
            "cached_products": len(entry.products) if entry.products is not None else None,
            "last_updated": entry.last_updated,
        }
    return {
        "status": "healthy",
        "subscriptions": service.manager.subscribed_paths,
        "consumers": len(service.consumers),
        "websocket_connections": manager.connection_count,
        "datasets": datasets,
    }
