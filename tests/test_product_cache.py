import itertools
import threading

from product_cache import ProductQueryCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = ProductQueryCache(ttl=300, max_entries=10, clock=clock)
    cache.set("a", 1)
    clock.now = 299
    assert cache.get("a") == 1
    clock.now = 300
    assert cache.get("a") is None
    assert len(cache) == 0


def test_full_cache_evicts_oldest_insert():
    cache = ProductQueryCache(ttl=300, max_entries=2, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")
    cache.set("c", 3)
    assert cache.get("a") is None
    assert cache.get("b") == 2
    assert cache.get("c") == 3


def test_overwrite_does_not_evict():
    cache = ProductQueryCache(ttl=300, max_entries=2, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)
    assert len(cache) == 2
    assert cache.get("a") == 10
    assert cache.get("b") == 2


def test_concurrent_readers_and_writers_on_expiring_keys():
    ticks = itertools.count()
    cache = ProductQueryCache(ttl=3, max_entries=4, clock=lambda: next(ticks))
    errors = []

    def worker(seed):
        try:
            for n in range(2000):
                key = (seed + n) % 6
                if cache.get(key) is None:
                    cache.set(key, n)
        except Exception as exc:
            errors.append(repr(exc))

    threads = [threading.Thread(target=worker, args=(seed,)) for seed in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(cache) <= 4


def test_expired_entry_already_dropped_by_another_reader():
    clock = FakeClock()
    cache = ProductQueryCache(ttl=300, max_entries=10, clock=clock)
    cache.set("k", 1)

    def expire_and_race():
        # a second reader dropping the key while the first is reading the clock
        cache._entries.pop("k", None)
        return 301.0

    cache._clock = expire_and_race
    assert cache.get("k") is None
    assert len(cache) == 0
