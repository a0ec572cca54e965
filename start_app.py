#!/usr/bin/env python
"""Run the stock sync API under uvicorn."""
import os

import uvicorn

from stocksync.core.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    port = int(os.environ.get("PORT", 8000))
    host = os.environ.get("HOST", "0.0.0.0")

    print(f"Starting stock sync service on {host}:{port} ({settings.ENVIRONMENT})")
    if settings.STORE_SEED_FILE:
        print(f"Seeding in-memory store from {settings.STORE_SEED_FILE}")

    uvicorn.run(
        "stocksync.main:app",
        host=host,
        port=port,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
