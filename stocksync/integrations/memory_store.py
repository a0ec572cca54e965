"""
Purpose: An in-process RemoteStoreAdapter backed by a nested dict.

Contents:
PushKeyGenerator: Produces 20-character keys whose lexicographic order matches
creation order (millisecond timestamp prefix plus a counter-like random tail),
so ledger entries appended in the same millisecond still sort stably.
InMemoryRemoteStore: Key-path reads and writes, append-with-generated-key and
whole-value change notifications. Writes are applied immediately; watchers are
notified through the running event loop in the order writes were applied, which
mirrors a single authoritative store fanning out changes to subscribers.
"""

import asyncio
import copy
import itertools
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from stocksync.core.utils import now_ms
from stocksync.integrations.base import (
    ChangeCallback,
    ErrorCallback,
    RemoteStoreAdapter,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


class PushKeyGenerator:
    def __init__(self, clock: Callable[[], int] = now_ms, rng: Optional[random.Random] = None):
        self._clock = clock
        self._rng = rng or random.Random()
        self._last_ts = 0
        self._last_rand: List[int] = [0] * 12

    def __call__(self) -> str:
        # Never step backwards, even if the wall clock does
        ts = max(self._clock(), self._last_ts)
        if ts == self._last_ts:
            i = 11
            while i >= 0 and self._last_rand[i] == 63:
                self._last_rand[i] = 0
                i -= 1
            if i < 0:
                ts += 1
                self._last_rand = [self._rng.randrange(64) for _ in range(12)]
            else:
                self._last_rand[i] += 1
        else:
            self._last_rand = [self._rng.randrange(64) for _ in range(12)]
        self._last_ts = ts

        stamp = []
        for _ in range(8):
            stamp.append(PUSH_CHARS[ts % 64])
            ts //= 64
        return "".join(reversed(stamp)) + "".join(PUSH_CHARS[r] for r in self._last_rand)


@dataclass
class _Watch:
    path: Tuple[str, ...]
    on_change: ChangeCallback
    on_error: Optional[ErrorCallback]


def _split(path: str) -> Tuple[str, ...]:
    return tuple(part for part in path.strip("/").split("/") if part)


def _related(a: Tuple[str, ...], b: Tuple[str, ...]) -> bool:
    """True when one path is an ancestor of (or equal to) the other."""
    n = min(len(a), len(b))
    return a[:n] == b[:n]


def _snapshot(node: Any) -> Any:
    # Children come back in key order, like the hosted store
    if isinstance(node, dict):
        return {k: _snapshot(node[k]) for k in sorted(node)}
    if isinstance(node, list):
        return [_snapshot(v) for v in node]
    return node


def _clean(value: Any) -> Any:
    """Drop ``None`` leaves and empty containers; empty results mean delete."""
    if isinstance(value, dict):
        cleaned = {str(k): _clean(v) for k, v in value.items()}
        cleaned = {k: v for k, v in cleaned.items() if v is not None}
        return cleaned or None
    if isinstance(value, list):
        cleaned = [_clean(v) for v in value]
        return cleaned if any(v is not None for v in cleaned) else None
    return copy.deepcopy(value)


class InMemoryRemoteStore(RemoteStoreAdapter):
    """
    Dict-backed store.

    ``write_log`` records every applied write as ``(operation, path, value)``
    and ``subscribe_calls`` every path that was subscribed to.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None, key_generator: Optional[Callable[[], str]] = None):
        self._root: Dict[str, Any] = _clean(data) or {}
        self._watches: Dict[int, _Watch] = {}
        self._watch_ids = itertools.count(1)
        self._pending = 0
        self.new_key = key_generator or PushKeyGenerator()
        self.write_log: List[Tuple[str, str, Any]] = []
        self.subscribe_calls: List[str] = []

    # ------------------------------------------------------------------
    # RemoteStoreAdapter
    # ------------------------------------------------------------------
    async def get(self, path: str) -> Optional[Any]:
        return self._read(_split(path))

    async def set(self, path: str, value: Any) -> None:
        parts = _split(path)
        self._write(parts, value)
        self.write_log.append(("set", path, copy.deepcopy(value)))
        self._notify([parts])

    async def update(self, path: str, values: Dict[str, Any]) -> None:
        base = _split(path)
        written = []
        for key, value in values.items():
            parts = base + _split(str(key))
            self._write(parts, value)
            written.append(parts)
        self.write_log.append(("update", path, copy.deepcopy(values)))
        self._notify(written)

    async def push(self, path: str, value: Any) -> str:
        key = self.new_key()
        parts = _split(path) + (key,)
        self._write(parts, value)
        self.write_log.append(("push", f"{path}/{key}", copy.deepcopy(value)))
        self._notify([parts])
        return key

    async def subscribe(
        self,
        path: str,
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        watch_id = next(self._watch_ids)
        parts = _split(path)
        self._watches[watch_id] = _Watch(parts, on_change, on_error)
        self.subscribe_calls.append(path)
        logger.debug(f"Watch {watch_id} registered on {path}")
        self._schedule(watch_id, self._read(parts))

        def unsubscribe():
            if self._watches.pop(watch_id, None) is not None:
                logger.debug(f"Watch {watch_id} on {path} released")

        return unsubscribe

    # ------------------------------------------------------------------
    # Test and diagnostics helpers
    # ------------------------------------------------------------------
    def subscriber_count(self, path: Optional[str] = None) -> int:
        if path is None:
            return len(self._watches)
        parts = _split(path)
        return sum(1 for w in self._watches.values() if w.path == parts)

    def fail_subscriptions(self, path: str, error: Exception) -> int:
        """Cancel every watch on ``path`` with ``error``, as a transport failure would."""
        parts = _split(path)
        cancelled = [wid for wid, w in self._watches.items() if w.path == parts]
        loop = asyncio.get_running_loop()
        for wid in cancelled:
            watch = self._watches.pop(wid)
            if watch.on_error is not None:
                self._pending += 1
                loop.call_soon(self._deliver_error, watch, error)
        return len(cancelled)

    async def flush(self) -> None:
        """Wait until every queued notification has been delivered."""
        while self._pending:
            await asyncio.sleep(0)

    def dump(self) -> Dict[str, Any]:
        return _snapshot(self._root)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _read(self, parts: Tuple[str, ...]) -> Optional[Any]:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return _snapshot(node)

    def _write(self, parts: Tuple[str, ...], value: Any) -> None:
        value = _clean(value)
        if not parts:
            self._root = value if isinstance(value, dict) else {}
            return

        trail = [self._root]
        node = self._root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                if value is None:
                    return
                child = {}
                node[part] = child
            node = child
            trail.append(node)

        if value is None:
            node.pop(parts[-1], None)
            # Empty parents disappear along with their last child
            for depth in range(len(parts) - 1, 0, -1):
                if trail[depth]:
                    break
                trail[depth - 1].pop(parts[depth - 1], None)
        else:
            node[parts[-1]] = value

    def _notify(self, written: Iterable[Tuple[str, ...]]) -> None:
        written = list(written)
        for watch_id, watch in list(self._watches.items()):
            if any(_related(watch.path, parts) for parts in written):
                self._schedule(watch_id, self._read(watch.path))

    def _schedule(self, watch_id: int, value: Any) -> None:
        self._pending += 1
        asyncio.get_running_loop().call_soon(self._deliver, watch_id, value)

    def _deliver(self, watch_id: int, value: Any) -> None:
        self._pending -= 1
        watch = self._watches.get(watch_id)
        if watch is None:
            return
        try:
            watch.on_change(value)
        except Exception:
            logger.exception(f"Change callback failed for {'/'.join(watch.path)}")

    def _deliver_error(self, watch: _Watch, error: Exception) -> None:
        self._pending -= 1
        try:
            watch.on_error(error)
        except Exception:
            logger.exception(f"Error callback failed for {'/'.join(watch.path)}")
