"""Background cadences sharing the aircraft store and route cache.

The poll loop fetches snapshots and drops them into a single-slot
`LatestBatch`; the merge loop applies whatever is newest, queues route
lookups and runs the proximity notifier. The route cache and eviction run on
their own timers. Rendering is driven by the consumer through
`RenderProjector.snapshot` and never waits on any of these loops.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any, Callable, Optional, Protocol

from skyradar.config import Settings, settings as default_settings
from skyradar.services.notifier import ProximityNotifier
from skyradar.services.projector import RenderProjector
from skyradar.services.rates import MessageRateTracker
from skyradar.services.route_cache import RouteCache
from skyradar.services.store import AircraftStore, MergeReport

logger = logging.getLogger("skyradar.runtime")

MAX_POLL_BACKOFF_SECS = 60


class FeedSource(Protocol):
    """Snapshot collaborator polled on the refresh timer."""

    messages_total: Optional[int]

    async def poll_snapshots(self) -> list[dict[str, Any]]:
        """Return the raw aircraft entries of one poll."""


class LatestBatch:
    """Single-slot hand-off: a newer batch replaces an undelivered one."""

    def __init__(self) -> None:
        self._item: tuple[list[dict[str, Any]], float] | None = None
        self._ready = asyncio.Event()
        self.superseded = 0

    def put(self, batch: list[dict[str, Any]], at: float) -> None:
        if self._item is not None:
            self.superseded += 1
            logger.debug("Superseding undelivered batch (%s so far)", self.superseded)
        self._item = (batch, at)
        self._ready.set()

    def take_nowait(self) -> tuple[list[dict[str, Any]], float] | None:
        item, self._item = self._item, None
        self._ready.clear()
        return item

    async def get(self) -> tuple[list[dict[str, Any]], float]:
        while True:
            await self._ready.wait()
            item = self.take_nowait()
            if item is not None:
                return item


class RadarRuntime:
    """Owns the core components and the asyncio tasks driving them."""

    def __init__(
        self,
        feed: FeedSource,
        *,
        settings: Settings | None = None,
        store: AircraftStore | None = None,
        route_cache: RouteCache | None = None,
        notifier: ProximityNotifier | None = None,
        projector: RenderProjector | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or default_settings
        self.feed = feed
        self.clock = clock
        self.store = store if store is not None else AircraftStore(self.settings)
        self.route_cache = route_cache
        self.rates = MessageRateTracker(self.settings)
        if notifier is None:
            notifier = ProximityNotifier(self.settings, site=self.store.site)
        self.notifier = notifier
        if projector is None:
            projector = RenderProjector(
                self.store, self.route_cache, self.settings, rates=self.rates
            )
        self.projector = projector
        self.batches = LatestBatch()
        self.last_poll_ok: bool | None = None
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def poll_once(self) -> int:
        snapshots = await self.feed.poll_snapshots()
        at = self.clock()
        self.rates.update_feed(getattr(self.feed, "messages_total", None), at)
        self.batches.put(snapshots, at)
        return len(snapshots)

    def process(self, batch: list[dict[str, Any]], now: float) -> MergeReport:
        """Merge one batch and run the per-cycle consumers."""

        report = self.store.merge(batch, now)
        records = self.store.view()

        if self.route_cache is not None:
            callsigns: list[str] = []
            positions: dict[str, tuple[float, float]] = {}
            for record in records:
                if not record.callsign or self.store.is_stale(record, now):
                    continue
                callsigns.append(record.callsign)
                if record.has_position:
                    positions[record.callsign] = (record.lat, record.lon)
            if self.route_cache.request(callsigns, now=now, positions=positions):
                self.route_cache.wake()

        self.rates.update_aircraft(
            [record for record in records if record.icao_hex in report.keys], now
        )
        self.notifier.evaluate(records, now)
        return report

    async def _poll_loop(self) -> None:
        backoff = 1
        while True:
            try:
                await self.poll_once()
                self.last_poll_ok = True
                backoff = 1
                await asyncio.sleep(self.settings.refresh_secs)
                continue
            except asyncio.CancelledError:
                logger.info("Feed poller cancelled")
                raise
            except Exception as exc:
                self.last_poll_ok = False
                logger.warning("Feed poll failed: %s", exc)

            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, MAX_POLL_BACKOFF_SECS)

    async def _merge_loop(self) -> None:
        while True:
            batch, at = await self.batches.get()
            try:
                self.process(batch, at)
            except Exception as exc:  # pragma: no cover - defensive logging
                logger.warning("Merge cycle failed: %s", exc)

    async def _evict_loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.evict_interval_secs)
            now = self.clock()
            try:
                self.store.evict(now)
                if self.route_cache is not None:
                    self.route_cache.prune(now)
            except Exception as exc:  # pragma: no cover - defensive logging
                logger.warning("Eviction cycle failed: %s", exc)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._poll_loop(), name="skyradar-poll"),
            asyncio.create_task(self._merge_loop(), name="skyradar-merge"),
            asyncio.create_task(self._evict_loop(), name="skyradar-evict"),
        ]
        if self.route_cache is not None:
            self._tasks.append(
                asyncio.create_task(self.route_cache.run(), name="skyradar-routes")
            )
        logger.info(
            "Radar runtime started (refresh %.1fs, %s tasks)",
            self.settings.refresh_secs,
            len(self._tasks),
        )

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if tasks:
            logger.info("Radar runtime stopped")


__all__ = ["FeedSource", "LatestBatch", "RadarRuntime"]
