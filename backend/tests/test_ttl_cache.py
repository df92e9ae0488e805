from __future__ import annotations

from ddb_transfer.services.ttl_cache import ExpiringCache


def _counting_loader():
    loads = {"n": 0}

    def _load() -> int:
        loads["n"] += 1
        return loads["n"]

    return _load


def test_get_or_load_caches_until_expiry(clock) -> None:
    cache: ExpiringCache[str, int] = ExpiringCache(ttl_s=10, clock=clock)
    load = _counting_loader()

    assert cache.get_or_load("k", load) == 1
    clock.advance(9)
    assert cache.get_or_load("k", load) == 1

    clock.advance(2)
    assert cache.get_or_load("k", load) == 2


def test_invalidate_single_key_and_all(clock) -> None:
    cache: ExpiringCache[str, str] = ExpiringCache(ttl_s=10, clock=clock)
    cache.get_or_load("a", lambda: "1")
    cache.get_or_load("b", lambda: "2")

    cache.invalidate("a")
    assert cache.get_or_load("a", lambda: "reloaded") == "reloaded"
    assert cache.get_or_load("b", lambda: "reloaded") == "2"

    cache.invalidate()
    assert cache.get_or_load("b", lambda: "reloaded") == "reloaded"


def test_caches_are_independent(clock) -> None:
    first: ExpiringCache[str, str] = ExpiringCache(ttl_s=10, clock=clock)
    second: ExpiringCache[str, str] = ExpiringCache(ttl_s=10, clock=clock)
    first.get_or_load("k", lambda: "v")
    assert second.get_or_load("k", lambda: "other") == "other"
