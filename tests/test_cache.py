import asyncio

import pytest

from inkwell.cache import (
    CacheManager,
    cache_keys,
    invalidate_post_cache,
    invalidate_user_cache,
    post_cache,
    user_cache,
)


def make_cache(clock, max_size=10, ttl=60):
    return CacheManager(max_size=max_size, ttl=ttl, timer=clock)


def test_unknown_key_is_absent(clock):
    cache = make_cache(clock)
    assert cache.get("nope") is None
    assert cache.get("nope", "fallback") == "fallback"
    assert not cache.has("nope")


def test_get_after_set_returns_value(clock):
    cache = make_cache(clock)
    cache.set("k", {"a": 1})
    cache.set("short", 5, ttl=1)
    assert cache.get("k") == {"a": 1}
    assert cache.get("short") == 5


def test_entry_expires_after_ttl(clock):
    cache = make_cache(clock, ttl=60)
    cache.set("k", "v")
    clock.advance(59)
    assert cache.get("k") == "v"
    clock.advance(1)
    assert cache.get("k") is None
    assert not cache.has("k")


def test_per_entry_ttl_overrides_default(clock):
    cache = make_cache(clock, ttl=60)
    cache.set("long", 1, ttl=600)
    cache.set("default", 2)
    clock.advance(120)
    assert cache.get("long") == 1
    assert cache.get("default") is None


def test_reading_does_not_extend_ttl(clock):
    cache = make_cache(clock, ttl=10)
    cache.set("k", "v")
    clock.advance(8)
    assert cache.get("k") == "v"
    clock.advance(8)
    assert cache.get("k") is None


def test_non_positive_ttl_stores_nothing(clock):
    cache = make_cache(clock)
    cache.set("k", "old")
    cache.set("k", "new", ttl=0)
    assert cache.get("k") is None
    cache.set("neg", 1, ttl=-5)
    assert cache.get("neg") is None


def test_capacity_overflow_evicts_exactly_one(clock):
    cache = make_cache(clock, max_size=3)
    for key in ("a", "b", "c", "d"):
        cache.set(key, key)
    present = [k for k in ("a", "b", "c", "d") if cache.has(k)]
    assert present == ["b", "c", "d"]
    assert cache.stats() == {"size": 3, "max": 3}


@pytest.mark.parametrize("max_size", [0, -1])
def test_capacity_below_one_is_rejected_up_front(clock, max_size):
    with pytest.raises(ValueError, match="max_size must be at least 1"):
        make_cache(clock, max_size=max_size)


def test_single_slot_cache_keeps_latest(clock):
    cache = make_cache(clock, max_size=1)
    assert asyncio.run(cache.get_or_compute("a", lambda: 1)) == 1
    cache.set("b", 2)
    assert cache.get("a") is None
    assert cache.get("b") == 2


def test_lru_example_from_docs(clock):
    cache = make_cache(clock, max_size=2)
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.get("a") == 1
    cache.set("c", 3)
    assert cache.get("a") == 1
    assert cache.get("b") is None
    assert cache.get("c") == 3


def test_replacing_a_key_does_not_evict(clock):
    cache = make_cache(clock, max_size=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)
    assert cache.get("a") == 10
    assert cache.get("b") == 2


def test_delete_and_clear(clock):
    cache = make_cache(clock)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.delete("a")
    cache.delete("missing")
    assert cache.get("a") is None
    assert cache.get("b") == 2
    cache.clear()
    assert cache.get("b") is None
    assert cache.stats()["size"] == 0


def test_delete_expired_key_is_silent(clock):
    cache = make_cache(clock, ttl=1)
    cache.set("a", 1)
    clock.advance(5)
    cache.delete("a")
    assert cache.get("a") is None


def test_get_or_compute_calls_producer_once(clock):
    cache = make_cache(clock)
    calls = []

    def producer():
        calls.append(1)
        return "value"

    assert asyncio.run(cache.get_or_compute("k", producer)) == "value"
    assert asyncio.run(cache.get_or_compute("k", producer)) == "value"
    assert len(calls) == 1


def test_get_or_compute_awaits_async_producer(clock):
    cache = make_cache(clock)

    async def producer():
        await asyncio.sleep(0)
        return [1, 2, 3]

    assert asyncio.run(cache.get_or_compute("k", producer, ttl=5)) == [1, 2, 3]
    clock.advance(6)
    assert cache.get("k") is None


def test_get_or_compute_caches_falsy_values(clock):
    cache = make_cache(clock)
    calls = []

    def producer():
        calls.append(1)
        return []

    asyncio.run(cache.get_or_compute("empty", producer))
    asyncio.run(cache.get_or_compute("empty", producer))
    assert len(calls) == 1


def test_producer_failure_propagates_and_is_not_cached(clock):
    cache = make_cache(clock)

    async def failing():
        raise RuntimeError("database down")

    with pytest.raises(RuntimeError, match="database down"):
        asyncio.run(cache.get_or_compute("k", failing))
    assert not cache.has("k")
    assert asyncio.run(cache.get_or_compute("k", lambda: "recovered")) == "recovered"


def test_concurrent_misses_may_both_compute(clock):
    cache = make_cache(clock)
    calls = []

    async def producer():
        calls.append(1)
        await asyncio.sleep(0)
        return "v"

    async def both():
        return await asyncio.gather(cache.get_or_compute("k", producer), cache.get_or_compute("k", producer))

    assert asyncio.run(both()) == ["v", "v"]
    assert 1 <= len(calls) <= 2
    assert cache.get("k") == "v"


def test_invalidate_user_cache_drops_guessed_keys():
    user_cache.set(cache_keys.user("u1"), {"id": "u1"})
    user_cache.set(cache_keys.user_stats("u1"), {"posts": 1})
    user_cache.set(cache_keys.user_posts("u1", 3), {"posts": []})
    user_cache.set(cache_keys.user_posts("u1", 11), {"posts": []})
    invalidate_user_cache("u1")
    assert user_cache.get(cache_keys.user("u1")) is None
    assert user_cache.get(cache_keys.user_stats("u1")) is None
    assert user_cache.get(cache_keys.user_posts("u1", 3)) is None
    # best effort: pages past the guessed range survive until they expire
    assert user_cache.get(cache_keys.user_posts("u1", 11)) == {"posts": []}


def test_invalidate_post_cache_drops_post_and_first_pages():
    post_cache.set(cache_keys.post("p1"), {"id": "p1"})
    post_cache.set(cache_keys.posts(1, 10), {"posts": []})
    post_cache.set(cache_keys.posts(5, 10), {"posts": []})
    post_cache.set(cache_keys.posts(1, 20), {"posts": []})
    invalidate_post_cache("p1")
    assert post_cache.get(cache_keys.post("p1")) is None
    assert post_cache.get(cache_keys.posts(1, 10)) is None
    assert post_cache.get(cache_keys.posts(5, 10)) is None
    assert post_cache.get(cache_keys.posts(1, 20)) == {"posts": []}
