from __future__ import annotations

import time
from typing import Any, Callable, Hashable, Optional


class InMemoryTTLCache:
    """
    Namespaced in-process TTL cache used by the tenant registry.

    Entries are keyed by (namespace, key); expired entries are dropped lazily
    on read. Not shared across processes: each worker refreshes from the
    repository after `ttl_seconds`.
    """

    def __init__(self, ttl_seconds: float = 60, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._data: dict[tuple[Hashable, Hashable], tuple[float, Any]] = {}

    def get(self, namespace: Hashable, key: Hashable) -> Optional[Any]:
        entry = self._data.get((namespace, key))
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            self._data.pop((namespace, key), None)
            return None
        return value

    def set(self, namespace: Hashable, key: Hashable, value: Any) -> None:
        self._data[(namespace, key)] = (self._clock() + self._ttl, value)

    def invalidate(self, namespace: Hashable, key: Hashable) -> None:
        self._data.pop((namespace, key), None)

    def clear(self) -> None:
        self._data.clear()
