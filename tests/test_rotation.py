import asyncio

from listing_search.services.search.rotation import PromotionRotationCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _show(cache, key, promoted_id):
    """One request: returns the ids the promotion lookup was told to skip."""
    async def run():
        async with cache.rotation(key) as handle:
            excluded = handle.exclude_ids
            handle.record(promoted_id)
            return excluded

    return asyncio.run(run())


def test_rotates_every_second_request():
    cache = PromotionRotationCache(max_entries=10, ttl_seconds=3600, interval_seconds=120, clock=FakeClock())
    assert _show(cache, "v1", 11) == []  # first request always rotates, nothing to skip yet
    assert _show(cache, "v1", 11) == [11]  # second request rotates away from 11
    assert _show(cache, "v1", 22) == []
    assert _show(cache, "v1", 33) == [11]


def test_rotates_after_interval():
    clock = FakeClock()
    cache = PromotionRotationCache(max_entries=10, ttl_seconds=3600, interval_seconds=120, clock=clock)
    _show(cache, "v1", 11)
    _show(cache, "v1", 22)
    clock.now += 121
    assert _show(cache, "v1", 33) == [22]


def test_anonymous_requests_keep_no_state():
    cache = PromotionRotationCache(max_entries=10, ttl_seconds=3600, interval_seconds=120, clock=FakeClock())
    assert _show(cache, None, 11) == []
    assert _show(cache, "", 11) == []
    assert len(cache) == 0


def test_lru_bound():
    cache = PromotionRotationCache(max_entries=2, ttl_seconds=3600, interval_seconds=120, clock=FakeClock())
    for key in ["a", "b", "c"]:
        _show(cache, key, 1)
    assert len(cache) == 2
    assert cache.get("a") is None
    assert cache.get("c") is not None


def test_ttl_expiry_resets_state():
    clock = FakeClock()
    cache = PromotionRotationCache(max_entries=10, ttl_seconds=60, interval_seconds=120, clock=clock)
    _show(cache, "v1", 11)
    clock.now += 61
    assert cache.get("v1") is None
    assert _show(cache, "v1", 22) == []


def test_eviction_keeps_lock_of_in_flight_visitor():
    cache = PromotionRotationCache(max_entries=1, ttl_seconds=3600, interval_seconds=120, clock=FakeClock())
    order = []

    async def run():
        release = asyncio.Event()

        async def first():
            async with cache.rotation("a"):
                order.append("a1 start")
                await release.wait()
                order.append("a1 end")

        async def second():
            async with cache.rotation("a"):
                order.append("a2")

        holder = asyncio.create_task(first())
        await asyncio.sleep(0)
        async with cache.rotation("b"):  # evicts "a" while its lock is held
            pass
        waiter = asyncio.create_task(second())
        for _ in range(3):
            await asyncio.sleep(0)
        assert "a2" not in order
        release.set()
        await asyncio.gather(holder, waiter)

    asyncio.run(run())
    assert order == ["a1 start", "a1 end", "a2"]
