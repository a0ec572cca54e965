# stocksync/services/disclosure.py
"""
Progressive disclosure: how much of a cached dataset one consumer exposes.

The exposed window is ``dataset[:limit]``. ``limit`` starts at the initial
chunk, grows by a fixed increment (capped at the dataset length) either when a
one-shot timer fires after a dataset arrives or when the consumer asks for
more, and only ever shrinks back to the initial chunk on ``reset``.
Expansions are serialized: asking again while one is settling is a no-op.
"""
import asyncio
import logging
from typing import Callable, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


class ProgressiveDisclosureController:
    def __init__(
        self,
        initial_chunk: int = 30,
        increment: int = 20,
        auto_expand_delay: float = 2.0,
        settle_delay: float = 0.3,
        enabled: bool = True,
        initial_limit: Optional[int] = None,
        on_change: Optional[Callable[[], None]] = None,
        on_limit: Optional[Callable[[int], None]] = None,
    ):
        """
        Args:
            initial_chunk: Window size after a reset
            increment: Items added per expansion
            auto_expand_delay: Seconds between a dataset arriving and the automatic expansion
            settle_delay: Seconds an expansion takes to become visible
            enabled: When False the whole dataset is exposed and nothing is scheduled
            initial_limit: Window to resume from (e.g. a limit remembered by the shared cache)
            on_change: Called after the visible window changed
            on_limit: Called with every new limit, so it can be remembered elsewhere
        """
        self.initial_chunk = initial_chunk
        self.increment = increment
        self.auto_expand_delay = auto_expand_delay
        self.settle_delay = settle_delay
        self.enabled = enabled
        self._limit = max(initial_limit or initial_chunk, initial_chunk)
        self._length = 0
        self._on_change = on_change
        self._on_limit = on_limit
        self._auto_task: Optional[asyncio.Task] = None
        self._expand_task: Optional[asyncio.Task] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Derived view
    # ------------------------------------------------------------------
    @property
    def limit(self) -> Optional[int]:
        return self._limit if self.enabled else None

    @property
    def expanding(self) -> bool:
        return self._expand_task is not None and not self._expand_task.done()

    def has_more(self, length: Optional[int] = None) -> bool:
        length = self._length if length is None else length
        return self.enabled and length > self._limit

    def displayed(self, dataset: Sequence[T]) -> List[T]:
        if not self.enabled:
            return list(dataset)
        return list(dataset[:self._limit])

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------
    def dataset_arrived(self, length: int, fresh: bool) -> None:
        """
        A complete dataset became available.

        ``fresh`` marks new data from the store, which restarts disclosure at
        the initial chunk. Either way the one-shot expansion timer is re-armed.
        """
        self._length = length
        if not self.enabled or self._closed:
            return
        if fresh:
            self.reset()
        self._arm_timer()

    def dataset_resized(self, length: int) -> None:
        """Same dataset, different size (e.g. an optimistic patch or deletions)."""
        self._length = length

    def request_more(self) -> Optional[asyncio.Task]:
        """
        Grow the window by one increment after the settle delay.

        Returns the pending expansion, or None when there is nothing more to
        show or an expansion is already settling.
        """
        if self._closed or not self.has_more() or self.expanding:
            return None
        self._expand_task = asyncio.ensure_future(self._expand())
        if self._on_change:
            self._on_change()
        return self._expand_task

    def reset(self) -> None:
        self._cancel(self._expand_task)
        self._expand_task = None
        self._limit = self.initial_chunk
        self._remember()

    def close(self) -> None:
        """Cancel pending timers; nothing changes after this."""
        self._closed = True
        self._cancel(self._auto_task)
        self._cancel(self._expand_task)
        self._auto_task = None
        self._expand_task = None

    # ------------------------------------------------------------------
    # Scheduled work
    # ------------------------------------------------------------------
    def _arm_timer(self) -> None:
        self._cancel(self._auto_task)
        self._auto_task = None
        if self.has_more():
            self._auto_task = asyncio.ensure_future(self._auto_expand())

    async def _auto_expand(self) -> None:
        await asyncio.sleep(self.auto_expand_delay)
        if self._closed:
            return
        if self.has_more() and not self.expanding:
            logger.debug(f"Auto-expanding disclosed window from {self._limit}")
            self.request_more()

    async def _expand(self) -> None:
        await asyncio.sleep(self.settle_delay)
        if self._closed:
            return
        new_limit = max(self._limit, min(self._limit + self.increment, self._length))
        if new_limit != self._limit:
            self._limit = new_limit
            self._remember()
        # Clear the in-flight marker before listeners read ``expanding``
        self._expand_task = None
        if self._on_change:
            self._on_change()

    def _remember(self) -> None:
        if self._on_limit:
            self._on_limit(self._limit)

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done():
            task.cancel()
