from concurrent.futures import ThreadPoolExecutor

from logpond.services.cache import FacetCache


def test_first_stored_value_wins() -> None:
    cache: FacetCache[str, list[str]] = FacetCache("demo")

    first = cache.get_or_compute("a", lambda key: [key])
    second = cache.get_or_compute("a", lambda key: [key, "again"])

    assert second is first
    assert len(cache) == 1
    assert cache.stats() == {"demo_entries": 1, "demo_hits": 1, "demo_misses": 1}


def test_counters_add_up_under_concurrent_use() -> None:
    cache: FacetCache[int, int] = FacetCache("shared")
    keys = [i % 8 for i in range(4000)]

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(executor.map(lambda key: cache.get_or_compute(key, lambda k: k * 10), keys))

    assert results == [key * 10 for key in keys]
    assert len(cache) == 8
    assert cache.hits + cache.misses == len(keys)
    assert cache.misses >= 8
