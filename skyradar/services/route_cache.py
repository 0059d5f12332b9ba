"""Callsign -> route cache with batched, rate-limit aware background lookups.

Readers never wait on the network: `lookup` only consults the cache and
queues misses. A separate batch cycle (`run`) drains the queue in groups of
`route_batch`, calls the lookup collaborator with a hard timeout and applies
each batch result in one step.
"""

from __future__ import annotations

import asyncio
from collections import deque
import contextlib
from dataclasses import dataclass
import logging
import threading
import time
from typing import Callable, Iterable, Mapping, Optional, Protocol, Sequence

from skyradar.config import Settings, settings as default_settings
from skyradar.domain import RouteEntry, RouteInfo, RouteState, normalize_callsign

logger = logging.getLogger("skyradar.routes")

Position = tuple[float, float]


class RouteLookup(Protocol):
    """Batch route enrichment collaborator."""

    async def lookup_routes(
        self,
        identifiers: Sequence[str],
        positions: Optional[Mapping[str, Position]] = None,
    ) -> Mapping[str, Optional[RouteInfo]]:
        """Return a route (or None for "not found") per identifier."""


@dataclass
class _KeyState:
    state: RouteState
    entry: RouteEntry | None = None
    retry_at: float = 0.0


class RouteCache:
    """Per-callsign lookup state machine plus the batch dispatcher."""

    def __init__(
        self,
        lookup: RouteLookup,
        settings: Settings | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or default_settings
        self._lookup = lookup
        self._clock = clock
        self._lock = threading.Lock()
        self._states: dict[str, _KeyState] = {}
        self._queue: deque[str] = deque()
        self._positions: dict[str, Position] = {}
        self._failures = 0
        self._blocked_until = 0.0
        self._wake = asyncio.Event()

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    def _now(self, now: float | None) -> float:
        return self._clock() if now is None else now

    def state_of(self, key: str) -> RouteState | None:
        state = self._states.get(normalize_callsign(key))
        return state.state if state else None

    def pending_count(self) -> int:
        return len(self._queue)

    def backoff_delay(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        delay = self.settings.route_backoff_secs * (2 ** (failures - 1))
        return min(delay, self.settings.route_backoff_max_secs)

    def request(
        self,
        keys: Iterable[str],
        now: float | None = None,
        positions: Mapping[str, Position] | None = None,
    ) -> int:
        """Queue keys that are not cached, in flight or backing off.

        Returns the number of keys newly queued.
        """

        now = self._now(now)
        queued = 0
        with self._lock:
            for raw in keys:
                key = normalize_callsign(raw)
                if not key:
                    continue
                if positions:
                    hint = positions.get(raw) or positions.get(key)
                    if hint is not None:
                        self._positions[key] = hint

                current = self._states.get(key)
                if current is not None:
                    if current.state is RouteState.PENDING:
                        continue
                    if current.state is RouteState.RESOLVED and current.entry.is_fresh(now):
                        continue
                    if current.state is RouteState.FAILED and now < current.retry_at:
                        continue

                self._states[key] = _KeyState(
                    RouteState.PENDING, entry=current.entry if current else None
                )
                self._queue.append(key)
                queued += 1
        return queued

    def lookup(self, key: str | None, now: float | None = None) -> RouteEntry | None:
        """Fresh cached entry for `key`, or None after queueing a refresh.

        Negative results come back as entries with `found=False`.
        """

        key = normalize_callsign(key)
        if not key:
            return None
        now = self._now(now)
        current = self._states.get(key)
        if (
            current is not None
            and current.state is RouteState.RESOLVED
            and current.entry is not None
            and current.entry.is_fresh(now)
        ):
            return current.entry
        self.request((key,), now=now)
        return None

    def wake(self) -> None:
        """Run the next batch cycle now instead of waiting for the timer."""
        self._wake.set()

    def prune(self, now: float | None = None) -> int:
        """Forget expired results and failures whose backoff has passed."""

        now = self._now(now)
        with self._lock:
            expired = [
                key
                for key, state in self._states.items()
                if (state.state is RouteState.RESOLVED and not state.entry.is_fresh(now))
                or (state.state is RouteState.FAILED and now >= state.retry_at)
            ]
            for key in expired:
                del self._states[key]
                self._positions.pop(key, None)
        if expired:
            logger.debug("Pruned %s route cache entries", len(expired))
        return len(expired)

    def _take_batch(self, now: float) -> tuple[list[str], dict[str, Position]]:
        with self._lock:
            if now < self._blocked_until:
                return [], {}
            batch: list[str] = []
            while self._queue and len(batch) < self.settings.route_batch:
                key = self._queue.popleft()
                current = self._states.get(key)
                # skip keys resolved or dropped since they were queued
                if current is None or current.state is not RouteState.PENDING:
                    continue
                if key not in batch:
                    batch.append(key)
            positions = {key: self._positions[key] for key in batch if key in self._positions}
            return batch, positions

    async def run_batch(self, now: float | None = None) -> int:
        """Dispatch one batch; returns how many keys were sent."""

        batch, positions = self._take_batch(self._now(now))
        if not batch:
            return 0

        try:
            results = await asyncio.wait_for(
                self._lookup.lookup_routes(batch, positions or None),
                timeout=self.settings.route_timeout_secs,
            )
        except asyncio.CancelledError:
            with self._lock:
                self._queue.extendleft(reversed(batch))
            logger.info("Route batch cancelled; %s keys requeued", len(batch))
            raise
        except asyncio.TimeoutError:
            self._fail(batch, self._now(now), "timed out")
            return len(batch)
        except Exception as exc:
            self._fail(batch, self._now(now), str(exc) or type(exc).__name__)
            return len(batch)

        self._resolve(batch, results, self._now(now))
        return len(batch)

    def _fail(self, batch: list[str], now: float, reason: str) -> None:
        with self._lock:
            self._failures += 1
            delay = self.backoff_delay(self._failures)
            retry_at = now + delay
            self._blocked_until = retry_at
            for key in batch:
                previous = self._states.get(key)
                self._states[key] = _KeyState(
                    RouteState.FAILED,
                    entry=previous.entry if previous else None,
                    retry_at=retry_at,
                )
        logger.warning(
            "Route lookup failed for %s callsigns (%s); backing off %.0fs",
            len(batch),
            reason,
            delay,
        )

    def _resolve(
        self,
        batch: list[str],
        results: Mapping[str, Optional[RouteInfo]] | None,
        now: float,
    ) -> None:
        found = {normalize_callsign(key): info for key, info in (results or {}).items()}
        ttl = self.settings.route_ttl_secs
        with self._lock:
            self._failures = 0
            self._blocked_until = 0.0
            for key in batch:
                info = found.get(key)
                if info is None:
                    entry = RouteEntry(key=key, fetched_at=now, ttl=ttl, found=False)
                else:
                    entry = RouteEntry(
                        key=key,
                        fetched_at=now,
                        ttl=ttl,
                        origin=info.origin,
                        destination=info.destination,
                        route=info.route,
                    )
                self._states[key] = _KeyState(RouteState.RESOLVED, entry=entry)
        logger.debug(
            "Resolved %s callsigns (%s with routes)",
            len(batch),
            sum(1 for key in batch if found.get(key) is not None),
        )

    async def run(self) -> None:
        """Run batch cycles every `route_refresh_secs` until cancelled."""

        logger.info("Route cache loop started")
        while True:
            try:
                await self.run_batch()
            except asyncio.CancelledError:
                logger.info("Route cache loop cancelled")
                raise
            except Exception as exc:  # pragma: no cover - defensive logging
                logger.warning("Route batch cycle error: %s", exc)

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._wake.wait(), timeout=self.settings.route_refresh_secs)
            self._wake.clear()


__all__ = ["Position", "RouteCache", "RouteLookup"]
