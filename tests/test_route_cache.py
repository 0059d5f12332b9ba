import asyncio

import pytest

from skyradar.config import Settings
from skyradar.domain import RouteInfo, RouteState
from skyradar.ingestors.routes import RateLimitedError
from skyradar.services.route_cache import RouteCache


class FakeRouteLookup:
    def __init__(self, routes: dict[str, RouteInfo] | None = None, fail: Exception | None = None):
        self.routes = routes or {}
        self.fail = fail
        self.call_count = 0
        self.batches: list[list[str]] = []
        self.positions: list[dict | None] = []

    async def lookup_routes(self, identifiers, positions=None):
        self.call_count += 1
        self.batches.append(list(identifiers))
        self.positions.append(positions)
        if self.fail:
            raise self.fail
        return {key: self.routes.get(key) for key in identifiers}


class HangingLookup:
    def __init__(self):
        self.call_count = 0

    async def lookup_routes(self, identifiers, positions=None):
        self.call_count += 1
        await asyncio.sleep(3600)


def _settings(**overrides) -> Settings:
    values = dict(
        route_ttl_secs=60,
        route_batch=20,
        route_timeout_secs=6,
        route_backoff_secs=5,
        route_backoff_max_secs=300,
    )
    values.update(overrides)
    return Settings(**values)


UAL = RouteInfo(callsign="UAL1", origin="KSFO", destination="KEWR", route="KSFO-KEWR")


@pytest.mark.anyio
async def test_resolved_entry_respects_ttl():
    lookup = FakeRouteLookup({"UAL1": UAL})
    cache = RouteCache(lookup, _settings(route_ttl_secs=60))

    assert cache.lookup("ual1 ", now=0.0) is None
    assert cache.state_of("UAL1") is RouteState.PENDING
    await cache.run_batch(now=0.0)

    entry = cache.lookup("UAL1", now=59.0)
    assert entry is not None
    assert entry.label == "KSFO-KEWR"
    assert entry.fetched_at == 0.0

    assert cache.lookup("UAL1", now=61.0) is None
    assert cache.state_of("UAL1") is RouteState.PENDING
    assert cache.pending_count() == 1
    assert lookup.call_count == 1


@pytest.mark.anyio
async def test_zero_ttl_never_expires():
    lookup = FakeRouteLookup({"UAL1": UAL})
    cache = RouteCache(lookup, _settings(route_ttl_secs=0))
    cache.request(["UAL1"], now=0.0)
    await cache.run_batch(now=0.0)

    assert cache.lookup("UAL1", now=1e9) is not None


@pytest.mark.anyio
async def test_unknown_callsigns_are_cached_as_not_found():
    lookup = FakeRouteLookup({"UAL1": UAL})
    cache = RouteCache(lookup, _settings())
    cache.request(["UAL1", "ZZZ999"], now=0.0)
    await cache.run_batch(now=0.0)

    entry = cache.lookup("ZZZ999", now=1.0)
    assert entry is not None
    assert entry.found is False
    assert entry.label is None

    assert cache.request(["ZZZ999"], now=2.0) == 0
    assert await cache.run_batch(now=2.0) == 0
    assert lookup.call_count == 1


@pytest.mark.anyio
async def test_request_ignores_pending_and_blank_keys():
    lookup = FakeRouteLookup()
    cache = RouteCache(lookup, _settings())

    assert cache.request(["UAL1", "ual1", "  ", ""], now=0.0) == 1
    assert cache.request(["UAL1"], now=0.0) == 0
    assert cache.pending_count() == 1


@pytest.mark.anyio
async def test_batches_are_capped_and_never_double_dispatched():
    lookup = FakeRouteLookup()
    cache = RouteCache(lookup, _settings(route_batch=2))
    cache.request(["A1", "B2", "C3"], now=0.0)

    assert await cache.run_batch(now=0.0) == 2
    assert await cache.run_batch(now=0.0) == 1
    assert await cache.run_batch(now=0.0) == 0
    assert lookup.batches == [["A1", "B2"], ["C3"]]


@pytest.mark.anyio
async def test_failed_batches_back_off_before_redispatch():
    lookup = FakeRouteLookup(fail=RateLimitedError("route HTTP 429: rate limited"))
    cache = RouteCache(lookup, _settings(route_backoff_secs=5))

    cache.request(["UAL1"], now=0.0)
    await cache.run_batch(now=0.0)
    assert cache.state_of("UAL1") is RouteState.FAILED

    # three more cycles inside the backoff window produce no dispatch
    for now in (1.0, 2.0, 4.0):
        cache.request(["UAL1"], now=now)
        assert await cache.run_batch(now=now) == 0
    assert lookup.call_count == 1

    cache.request(["UAL1"], now=5.0)
    await cache.run_batch(now=5.0)
    assert lookup.call_count == 2
    assert cache.consecutive_failures == 2


@pytest.mark.anyio
async def test_backoff_grows_and_resets_after_success():
    lookup = FakeRouteLookup(fail=RuntimeError("boom"))
    cache = RouteCache(
        lookup, _settings(route_backoff_secs=5, route_backoff_max_secs=12)
    )

    assert cache.backoff_delay(1) == 5
    assert cache.backoff_delay(2) == 10
    assert cache.backoff_delay(3) == 12

    cache.request(["UAL1"], now=0.0)
    await cache.run_batch(now=0.0)
    cache.request(["UAL1"], now=5.0)
    await cache.run_batch(now=5.0)
    assert cache.consecutive_failures == 2

    # second failure pushed the retry out to 5 + 10
    cache.request(["UAL1"], now=14.0)
    assert await cache.run_batch(now=14.0) == 0

    lookup.fail = None
    lookup.routes = {"UAL1": UAL}
    cache.request(["UAL1"], now=15.0)
    await cache.run_batch(now=15.0)
    assert cache.consecutive_failures == 0
    assert cache.lookup("UAL1", now=16.0).origin == "KSFO"


@pytest.mark.anyio
async def test_batch_times_out_deterministically():
    lookup = HangingLookup()
    cache = RouteCache(lookup, _settings(route_timeout_secs=0.05))
    cache.request(["UAL1"], now=0.0)

    assert await cache.run_batch(now=0.0) == 1
    assert cache.state_of("UAL1") is RouteState.FAILED
    assert cache.lookup("UAL1", now=1.0) is None


@pytest.mark.anyio
async def test_cancelled_batch_requeues_keys():
    lookup = HangingLookup()
    cache = RouteCache(lookup, _settings(route_timeout_secs=30))
    cache.request(["UAL1", "DAL2"], now=0.0)

    task = asyncio.create_task(cache.run_batch(now=0.0))
    await asyncio.sleep(0.01)
    assert cache.pending_count() == 0
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert cache.pending_count() == 2
    assert cache.state_of("UAL1") is RouteState.PENDING


@pytest.mark.anyio
async def test_position_hints_are_forwarded():
    lookup = FakeRouteLookup()
    cache = RouteCache(lookup, _settings())
    cache.request(["UAL1", "DAL2"], now=0.0, positions={"UAL1": (40.0, -75.0)})
    await cache.run_batch(now=0.0)

    assert lookup.positions == [{"UAL1": (40.0, -75.0)}]


@pytest.mark.anyio
async def test_prune_forgets_expired_entries():
    lookup = FakeRouteLookup({"UAL1": UAL})
    cache = RouteCache(lookup, _settings(route_ttl_secs=60))
    cache.request(["UAL1"], now=0.0)
    await cache.run_batch(now=0.0)

    assert cache.prune(now=30.0) == 0
    assert cache.prune(now=61.0) == 1
    assert cache.state_of("UAL1") is None


@pytest.mark.anyio
async def test_run_loop_dispatches_on_wake():
    lookup = FakeRouteLookup({"UAL1": UAL})
    cache = RouteCache(lookup, _settings(route_refresh_secs=3600))

    task = asyncio.create_task(cache.run())
    try:
        await asyncio.sleep(0.01)
        cache.request(["UAL1"])
        cache.wake()
        for _ in range(50):
            if lookup.call_count:
                break
            await asyncio.sleep(0.01)
    finally:
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert lookup.call_count == 1
    assert cache.lookup("UAL1") is not None


@pytest.mark.anyio
async def test_idle_and_backing_off_batches_are_distinguishable():
    lookup = FakeRouteLookup(fail=RateLimitedError("429"))
    cache = RouteCache(lookup, _settings(route_batch=1))

    assert await cache.run_batch(now=0.0) == 0
    assert cache.consecutive_failures == 0

    cache.request(["UAL1", "DAL2"], now=0.0)
    assert await cache.run_batch(now=0.0) == 1

    # the queue still holds DAL2, but nothing is sent during the backoff
    assert cache.pending_count() == 1
    assert await cache.run_batch(now=1.0) == 0
    assert cache.consecutive_failures == 1
    assert lookup.call_count == 1
