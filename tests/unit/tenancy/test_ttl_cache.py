from src.tenancy.infrastructure.cache import InMemoryTTLCache


class _Ticker:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


def test_ttl_cache_eviction():
    tick = _Ticker()
    c = InMemoryTTLCache(ttl_seconds=1, clock=tick)
    c.set("team", 1, "v")
    assert c.get("team", 1) == "v"
    tick.t = 1.2
    assert c.get("team", 1) is None

def test_namespaces_are_separate():
    c = InMemoryTTLCache()
    c.set("team", 1, "by-id")
    c.set("phone_number_id", 1, "by-phone")
    assert c.get("team", 1) == "by-id"
    assert c.get("phone_number_id", 1) == "by-phone"

def test_invalidate_and_clear():
    c = InMemoryTTLCache()
    c.set("t1","k","v")
    c.invalidate("t1","k")
    assert c.get("t1","k") is None
    c.set("t1","a","x"); c.set("t1","b","y")
    c.clear()
    assert c.get("t1","a") is None and c.get("t1","b") is None
