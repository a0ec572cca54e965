from fastapi import Request

from stocksync.services.sync_service import InventorySyncService


def get_sync_service(request: Request) -> InventorySyncService:
    """Dependency for getting the process-wide inventory sync service."""
    return request.app.state.sync_service
