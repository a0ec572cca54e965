# stocksync/core/logging_config.py
"""
Logging setup for the sync service.

Sync and ledger modules log at the configured level; transport libraries
(uvicorn access, httpx, websockets) are held at WARNING so that a busy
socket feed does not drown out adjustment and subscription logs.
"""

import logging
from typing import Optional

from stocksync.core.config import get_settings

NOISY_LOGGERS = ("httpx", "httpcore", "websockets", "uvicorn.access", "asyncio")


def configure_logging(level: Optional[str] = None):
    """
    Install the root handler and apply per-logger levels.

    Args:
        level: Overrides ``LOG_LEVEL`` from settings
    """
    level_name = (level or get_settings().LOG_LEVEL or "INFO").upper()
    numeric_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("stocksync").setLevel(numeric_level)

    logging.getLogger(__name__).info(f"Logging configured at level: {level_name}")


configure_logging()
