"""Proximity notifications for aircraft approaching the observing site."""

from __future__ import annotations

from collections import deque
import logging
import threading
from typing import Iterable

from skyradar.config import Settings, settings as default_settings
from skyradar.domain import AircraftRecord, SiteLocation
from skyradar.models.notifications import NotificationEvent, NotificationKind
from skyradar.services.geo import great_circle

logger = logging.getLogger("skyradar.notifier")

MIN_COOLDOWN_RETENTION_SECS = 60.0


class ProximityNotifier:
    """Raise entering, overpass and closing events once per poll cycle.

    Runs against store records after each merge rather than per render tick.
    Each (aircraft, kind) pair has its own cooldown; events are buffered in a
    bounded queue and handed out once by `drain`.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        site: SiteLocation | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.site = site if site is not None else self.settings.site()
        self._last_distance: dict[str, float] = {}
        self._cooldowns: dict[tuple[str, NotificationKind], float] = {}
        self._pending: deque[NotificationEvent] = deque(maxlen=self.settings.notification_buffer)
        self._latest: NotificationEvent | None = None
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.site is not None and self.settings.notify_radius_mi > 0

    def evaluate(self, records: Iterable[AircraftRecord], now: float) -> list[NotificationEvent]:
        """Check every record against the site; returns the events raised."""

        if not self.enabled:
            return []

        radius = self.settings.notify_radius_mi
        overpass = self.settings.overpass_mi
        events: list[NotificationEvent] = []
        present: set[str] = set()

        for record in records:
            present.add(record.icao_hex)
            if not record.has_position:
                continue
            if now - record.last_seen_at > self.settings.stale_secs:
                continue

            distance = great_circle(
                (self.site.lat, self.site.lon), (record.lat, record.lon)
            ).distance_mi
            previous = self._last_distance.get(record.icao_hex)
            self._last_distance[record.icao_hex] = distance

            if distance > radius:
                continue

            if previous is None or previous > radius:
                self._emit(events, record, NotificationKind.ENTERING_RADIUS, distance, now)
            if distance <= overpass and (previous is None or previous > overpass):
                self._emit(events, record, NotificationKind.OVERPASS, distance, now)
            if (
                record.closure_rate is not None
                and record.closure_rate <= -self.settings.closing_rate_kt
            ):
                self._emit(events, record, NotificationKind.CLOSING, distance, now)

        self._forget(present, now)
        return events

    def drain(self) -> list[NotificationEvent]:
        """Hand out pending events; each event is returned only once."""

        with self._lock:
            events = list(self._pending)
            self._pending.clear()
        return events

    def latest(self) -> NotificationEvent | None:
        return self._latest

    def _emit(
        self,
        events: list[NotificationEvent],
        record: AircraftRecord,
        kind: NotificationKind,
        distance_mi: float,
        now: float,
    ) -> None:
        key = (record.icao_hex, kind)
        last = self._cooldowns.get(key)
        if last is not None and now - last < self.settings.notify_cooldown_secs:
            return

        self._cooldowns[key] = now
        event = NotificationEvent(
            icao_hex=record.icao_hex,
            kind=kind,
            distance_mi=distance_mi,
            timestamp=now,
            callsign=record.callsign,
            registration=record.registration,
        )
        with self._lock:
            self._pending.append(event)
            self._latest = event
        events.append(event)
        logger.info("Notification: %s", event.message)

    def _forget(self, present: set[str], now: float) -> None:
        retention = max(self.settings.notify_cooldown_secs * 4, MIN_COOLDOWN_RETENTION_SECS)
        self._cooldowns = {
            key: at for key, at in self._cooldowns.items() if now - at <= retention
        }
        self._last_distance = {
            key: distance for key, distance in self._last_distance.items() if key in present
        }


__all__ = ["ProximityNotifier"]
