import asyncio

import pytest

from skyradar.config import Settings
from skyradar.domain import RouteInfo, SiteLocation
from skyradar.ingestors.feed import FeedError
from skyradar.services.route_cache import RouteCache
from skyradar.services.runtime import LatestBatch, RadarRuntime
from skyradar.services.store import AircraftStore

SITE = SiteLocation(lat=40.0, lon=-75.0)


class FakeFeed:
    def __init__(self, batches=None, fail: bool = False):
        self.batches = list(batches or [])
        self.fail = fail
        self.call_count = 0
        self.messages_total = None

    async def poll_snapshots(self):
        self.call_count += 1
        if self.fail:
            raise FeedError("receiver offline")
        if self.batches:
            return self.batches.pop(0)
        return []


class FakeRouteLookup:
    def __init__(self, routes=None):
        self.routes = routes or {}
        self.call_count = 0

    async def lookup_routes(self, identifiers, positions=None):
        self.call_count += 1
        return {key: self.routes.get(key) for key in identifiers}


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _settings(**overrides) -> Settings:
    values = dict(
        refresh_secs=0.2,
        stale_secs=60,
        evict_interval_secs=3600,
        notify_radius_mi=10.0,
        route_refresh_secs=3600,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.mark.anyio
async def test_latest_batch_keeps_only_newest():
    slot = LatestBatch()
    slot.put([{"hex": "aaa001"}], 1.0)
    slot.put([{"hex": "bbb002"}], 2.0)

    batch, at = await slot.get()

    assert batch == [{"hex": "bbb002"}]
    assert at == 2.0
    assert slot.superseded == 1
    assert slot.take_nowait() is None


@pytest.mark.anyio
async def test_latest_batch_get_waits_for_put():
    slot = LatestBatch()

    async def producer():
        await asyncio.sleep(0.01)
        slot.put([{"hex": "aaa001"}], 5.0)

    task = asyncio.create_task(producer())
    batch, at = await asyncio.wait_for(slot.get(), timeout=1.0)
    await task

    assert at == 5.0


@pytest.mark.anyio
async def test_poll_once_feeds_the_slot():
    clock = FakeClock(10.0)
    feed = FakeFeed([[{"hex": "abc123"}]])
    runtime = RadarRuntime(feed, settings=_settings(), clock=clock)

    assert await runtime.poll_once() == 1
    assert runtime.batches.take_nowait() == ([{"hex": "abc123"}], 10.0)


def test_process_merges_requests_routes_and_notifies():
    settings = _settings()
    lookup = FakeRouteLookup({"UAL1": RouteInfo(callsign="UAL1", route="KSFO-KEWR")})
    store = AircraftStore(settings, site=SITE)
    cache = RouteCache(lookup, settings)
    runtime = RadarRuntime(FakeFeed(), settings=settings, store=store, route_cache=cache)

    report = runtime.process(
        [{"hex": "abc123", "flight": "UAL1", "lat": 40.01, "lon": -75.0}, {"hex": "def456"}],
        now=5.0,
    )

    assert report.merged == 2
    assert cache.pending_count() == 1
    assert cache.state_of("UAL1") is not None
    events = runtime.notifier.drain()
    assert [event.icao_hex for event in events] == ["abc123"]


@pytest.mark.anyio
async def test_runtime_loops_poll_merge_and_stop():
    feed = FakeFeed([[{"hex": "abc123", "flight": "UAL1"}]])
    settings = _settings()
    lookup = FakeRouteLookup({"UAL1": RouteInfo(callsign="UAL1", route="KSFO-KEWR")})
    cache = RouteCache(lookup, settings)
    runtime = RadarRuntime(feed, settings=settings, route_cache=cache)

    runtime.start()
    try:
        assert runtime.running
        for _ in range(100):
            if "abc123" in runtime.store and lookup.call_count:
                break
            await asyncio.sleep(0.01)
    finally:
        await runtime.stop()

    assert "abc123" in runtime.store
    assert lookup.call_count == 1
    assert runtime.last_poll_ok is True
    assert not runtime.running


@pytest.mark.anyio
async def test_poll_failures_do_not_stop_the_runtime():
    feed = FakeFeed(fail=True)
    runtime = RadarRuntime(feed, settings=_settings())

    runtime.start()
    try:
        for _ in range(100):
            if feed.call_count:
                break
            await asyncio.sleep(0.01)
        assert runtime.running
    finally:
        await runtime.stop()

    assert runtime.last_poll_ok is False
    assert feed.call_count >= 1


def test_injected_empty_store_is_used():
    settings = _settings()
    store = AircraftStore(settings, site=SITE)
    runtime = RadarRuntime(FakeFeed(), settings=settings, store=store)

    assert runtime.store is store
    assert runtime.notifier.site == SITE
    assert runtime.notifier.enabled
    assert runtime.projector.store is store

    runtime.process([{"hex": "abc123", "flight": "UAL1", "lat": 40.01, "lon": -75.0}], now=5.0)

    assert [record.icao_hex for record in store.view()] == ["abc123"]
    assert [event.icao_hex for event in runtime.notifier.drain()] == ["abc123"]


def test_aircraft_the_receiver_lost_do_not_notify():
    settings = _settings()
    runtime = RadarRuntime(
        FakeFeed(), settings=settings, store=AircraftStore(settings, site=SITE)
    )

    runtime.process(
        [{"hex": "abc123", "flight": "UAL1", "lat": 40.01, "lon": -75.0, "seen": 120}],
        now=500.0,
    )

    assert runtime.store.is_stale(runtime.store.get("abc123"), 500.0)
    assert runtime.notifier.drain() == []


@pytest.mark.anyio
async def test_poll_once_tracks_receiver_message_rate():
    clock = FakeClock(0.0)
    feed = FakeFeed([[], []])
    runtime = RadarRuntime(feed, settings=_settings(), clock=clock)

    feed.messages_total = 1000
    await runtime.poll_once()
    clock.now = 1.0
    feed.messages_total = 1100
    await runtime.poll_once()

    assert runtime.rates.feed_rate == pytest.approx(100.0)


def test_process_tracks_per_aircraft_message_rates():
    settings = _settings()
    runtime = RadarRuntime(FakeFeed(), settings=settings)

    runtime.process([{"hex": "abc123", "messages": 100}, {"hex": "def456", "messages": 5}], now=0.0)
    runtime.process([{"hex": "abc123", "messages": 160}], now=2.0)

    assert runtime.rates.aircraft_rate("abc123") == pytest.approx(30.0)
    # not in the latest poll
    assert runtime.rates.aircraft_rate("def456") is None
    assert runtime.rates.average_aircraft_rate == pytest.approx(30.0)
    (row,) = [row for row in runtime.projector.snapshot(now=2.0) if row.icao_hex == "abc123"]
    assert row.message_rate == pytest.approx(30.0)
