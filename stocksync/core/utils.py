"""
Utility functions for the application.
"""
import logging
import math
import time

from datetime import datetime
from typing import Any, Callable, List, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

T = TypeVar('T')


def now_ms() -> int:
    """Current time as milliseconds since the epoch (the store's timestamp format)."""
    return int(time.time() * 1000)


def start_of_day_ms(now: Optional[datetime] = None) -> int:
    """Local midnight of ``now`` (default: today) in epoch milliseconds."""
    now = now or datetime.now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return int(midnight.timestamp() * 1000)


def is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def round_stock(value: float, precision: int) -> float:
    # Normalise -0.0 so a boundary adjustment reads as 0
    rounded = round(float(value), precision)
    return 0.0 if rounded == 0 else rounded


def normalize_children(
    raw: Any,
    factory: Callable[[str, Any], T],
    label: str,
) -> List[T]:
    """
    Map a keyed collection from the store into records.

    Args:
        raw: The whole value at a collection path (``None`` when absent)
        factory: Builds one record from ``(key, value)``; may raise
        label: Record kind, used in log messages

    Returns:
        Records in store key order. Malformed children are skipped and logged.
    """
    if raw is None:
        return []
    if not isinstance(raw, dict):
        logger.warning(f"Expected a keyed {label} collection, got {type(raw).__name__}; ignoring")
        return []

    records = []
    for key, value in raw.items():
        if not isinstance(value, dict):
            logger.warning(f"Skipping malformed {label} {key}: not a mapping")
            continue
        try:
            records.append(factory(str(key), value))
        except (PydanticValidationError, ValueError, TypeError) as e:
            logger.warning(f"Skipping malformed {label} {key}: {e}")
    return records
