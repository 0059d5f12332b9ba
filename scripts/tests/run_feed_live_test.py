#!/usr/bin/env python
"""
Run this to exercise the live feed and route lookup against real endpoints.

Usage (from repo root):
    SKYRADAR_FEED_URL=http://receiver.local/data/aircraft.json \
    SKYRADAR_SITE_LAT=43.6173 SKYRADAR_SITE_LON=-116.2035 \
    python scripts/tests/run_feed_live_test.py
"""

import asyncio
import time

from skyradar.config import settings
from skyradar.ingestors import FeedIngestor, RouteLookupClient
from skyradar.services import AircraftStore, RenderProjector, RouteCache


async def main() -> None:
    feed = FeedIngestor()
    store = AircraftStore(settings)
    routes = RouteCache(RouteLookupClient(), settings)
    projector = RenderProjector(store, routes, settings)

    print(f"=== Live feed test against {settings.feed_url} ===\n")

    # two polls so closure rates and trails have something to work with
    for attempt in range(2):
        entries = await feed.poll_snapshots()
        report = store.merge(entries, time.monotonic())
        print(f"Poll {attempt + 1}: {report.merged} merged, {report.created} new, {report.skipped} skipped")
        await asyncio.sleep(settings.refresh_secs)

    projector.snapshot(time.monotonic())
    print(f"\nRequesting routes for {routes.pending_count()} callsigns from {settings.route_base}...")
    while routes.pending_count():
        if await routes.run_batch():
            continue
        if routes.consecutive_failures:
            print(f"Route lookups backing off after {routes.consecutive_failures} failures; skipping the rest")
        break

    rows = projector.snapshot(time.monotonic())
    if not rows:
        print("\nNo aircraft in view.")
        return

    print(f"\n{len(rows)} aircraft. Showing a few:")
    for idx, row in enumerate(rows[:10], start=1):
        print(
            f"{idx}. hex={row.icao_hex} callsign={row.callsign!r} "
            f"alt_ft={row.altitude_baro} gs_kt={row.ground_speed} "
            f"dist_nm={row.distance_nm and round(row.distance_nm, 1)} "
            f"closure_kt={row.closure_rate and round(row.closure_rate)} "
            f"trend={row.altitude_trend.value} route={row.route or 'unknown'} "
            f"stale={row.stale}"
        )


if __name__ == "__main__":
    asyncio.run(main())
