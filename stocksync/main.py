# stocksync/main.py

import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from stocksync.core import logging_config  # noqa: F401  (configures logging on import)
from stocksync.core.config import Settings, get_settings
from stocksync.integrations.base import RemoteStoreAdapter
from stocksync.integrations.memory_store import InMemoryRemoteStore
from stocksync.routes import health, inventory, websockets as websocket_router
from stocksync.services.sync_service import InventorySyncService
from stocksync.services.websockets.manager import manager

logger = logging.getLogger(__name__)


def load_seed(path: Optional[str]) -> Optional[dict]:
    if not path:
        return None
    seed_file = Path(path).expanduser()
    if not seed_file.exists():
        logger.warning(f"Store seed file {seed_file} not found; starting empty")
        return None
    with seed_file.open() as f:
        data = json.load(f)
    logger.info(f"Loaded store seed from {seed_file}")
    return data


def create_app(store: Optional[RemoteStoreAdapter] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the API around one InventorySyncService.

    Args:
        store: Remote store to sync against; defaults to an in-memory store
            seeded from ``STORE_SEED_FILE``
        settings: Defaults to ``get_settings()``
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        remote = store if store is not None else InMemoryRemoteStore(load_seed(settings.STORE_SEED_FILE))
        service = InventorySyncService(remote, settings).init()

        async def broadcast_adjustment(event):
            await manager.broadcast(event.to_message())

        service.add_adjustment_listener(broadcast_adjustment)
        app.state.sync_service = service
        try:
            yield  # This is where the app runs
        finally:
            service.dispose()

    app = FastAPI(
        title="Stock Sync Service",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    app.include_router(health.router)
    app.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
    app.include_router(websocket_router.router)
    return app


app = create_app()
