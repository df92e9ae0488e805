from __future__ import annotations

from typing import Callable, Generic, Hashable, TypeVar

from cachetools import TTLCache

from .clock import Clock, SystemClock

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class ExpiringCache(Generic[K, V]):
    """TTL cache owned by whoever needs it, with time taken from an injected clock.

    Used in place of module-level cache globals so two store handles never see
    each other's entries and tests can expire entries by advancing a fake clock.
    """

    def __init__(self, *, ttl_s: float, maxsize: int = 128, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._cache: TTLCache[K, V] = TTLCache(maxsize=maxsize, ttl=ttl_s, timer=self._clock.monotonic)

    def get_or_load(self, key: K, loader: Callable[[], V]) -> V:
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        value = loader()
        self._cache[key] = value
        return value

    def invalidate(self, key: K | None = None) -> None:
        if key is None:
            self._cache.clear()
        else:
            self._cache.pop(key, None)
