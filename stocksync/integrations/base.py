from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

ChangeCallback = Callable[[Any], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class RemoteStoreAdapter(ABC):
    """
    Hierarchical key-path store that serializes writes and fans out changes.

    Paths are ``/``-separated. A value of ``None`` means "absent".
    """

    @abstractmethod
    async def get(self, path: str) -> Optional[Any]:
        """Read the current value at ``path``, or ``None`` when absent"""
        pass

    @abstractmethod
    async def set(self, path: str, value: Any) -> None:
        """Replace the value at ``path``"""
        pass

    @abstractmethod
    async def update(self, path: str, values: Dict[str, Any]) -> None:
        """Merge ``values`` into the children of ``path``"""
        pass

    @abstractmethod
    async def push(self, path: str, value: Any) -> str:
        """Append ``value`` under ``path`` with a new unique key and return the key"""
        pass

    @abstractmethod
    async def subscribe(
        self,
        path: str,
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        """
        Watch ``path``.

        ``on_change`` receives the full current value (not a diff) once right
        after subscribing and again after every change at or below ``path``,
        in the order the store applies writes. ``on_error`` is called when the
        store cancels the watch; no further changes are delivered after that.
        """
        pass
