"""Authoritative table of tracked aircraft.

The poller's merge is the single write path. Each merge builds replacement
records for every aircraft in the batch first and then publishes them in one
locked update, so readers (staleness checks, render snapshots) always see a
whole poll cycle or none of it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
import math
import threading
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from skyradar.config import Settings, settings as default_settings
from skyradar.domain import AircraftRecord, AltitudeTrend, SiteLocation, TrailPoint
from skyradar.models.feed import AircraftSnapshot
from skyradar.services.geo import great_circle

logger = logging.getLogger("skyradar.store")

TRAIL_EPSILON_DEG = 0.00001
SECONDS_PER_HOUR = 3600.0


@dataclass
class MergeReport:
    """Outcome of one merge call."""

    merged: int = 0
    created: int = 0
    skipped: int = 0
    keys: set[str] = field(default_factory=set)


def decay_alpha(elapsed: float, window_secs: float) -> float:
    """Weight of a new sample in an exponential filter over `window_secs`.

    Uses the actual elapsed time, so uneven polling intervals are weighted by
    their length.
    """

    if window_secs <= 0 or elapsed <= 0:
        return 1.0
    return 1.0 - math.exp(-elapsed / window_secs)


def heard_at(snap: AircraftSnapshot, now: float) -> float:
    """When the receiver last heard the aircraft, on the merge clock.

    readsb keeps listing aircraft for a while after their last message and
    reports the age in `seen_pos`/`seen`; without an age the poll time is used.
    """

    age = snap.seen_secs
    if age is None or age <= 0:
        return now
    return now - age


def classify_trend(
    smoothed_fpm: Optional[float], previous: AltitudeTrend, deadband_fpm: float
) -> AltitudeTrend:
    """Map a smoothed vertical rate to a trend, with hysteresis.

    Entering climbing or descending needs |rate| above the dead-band; leaving
    needs it to fall below half of it.
    """

    if smoothed_fpm is None:
        return previous
    release = deadband_fpm / 2.0
    if previous is AltitudeTrend.CLIMBING and smoothed_fpm > release:
        return AltitudeTrend.CLIMBING
    if previous is AltitudeTrend.DESCENDING and smoothed_fpm < -release:
        return AltitudeTrend.DESCENDING
    if smoothed_fpm > deadband_fpm:
        return AltitudeTrend.CLIMBING
    if smoothed_fpm < -deadband_fpm:
        return AltitudeTrend.DESCENDING
    return AltitudeTrend.LEVEL


class AircraftStore:
    """Entity table keyed by ICAO hex with trails and kinematic smoothing."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        site: SiteLocation | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.site = site if site is not None else self.settings.site()
        self._records: dict[str, AircraftRecord] = {}
        # _write_lock serialises writers; _publish_lock covers the dict swap
        # that readers copy from.
        self._write_lock = threading.Lock()
        self._publish_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, icao_hex: object) -> bool:
        return isinstance(icao_hex, str) and icao_hex.strip().lower() in self._records

    def get(self, icao_hex: str) -> AircraftRecord | None:
        return self._records.get(icao_hex.strip().lower())

    def view(self) -> tuple[AircraftRecord, ...]:
        """Consistent point-in-time copy of every record."""

        with self._publish_lock:
            return tuple(self._records.values())

    def merge(self, batch: Iterable[Any], now: float) -> MergeReport:
        report = MergeReport()
        with self._write_lock:
            updates: dict[str, AircraftRecord] = {}
            for entry in batch:
                snapshot = self._parse(entry)
                if snapshot is None:
                    report.skipped += 1
                    continue

                key = snapshot.hex
                previous = updates.get(key) or self._records.get(key)
                if previous is None:
                    report.created += 1
                updates[key] = self._apply(previous, snapshot, now)
                report.merged += 1
                report.keys.add(key)

            if updates:
                with self._publish_lock:
                    self._records.update(updates)

        logger.debug(
            "Merged %s aircraft (%s new, %s skipped); %s tracked",
            report.merged,
            report.created,
            report.skipped,
            len(self._records),
        )
        return report

    def is_stale(self, record: AircraftRecord, now: float) -> bool:
        return now - record.last_seen_at > self.settings.stale_secs

    def staleness(self, now: float) -> dict[str, bool]:
        return {record.icao_hex: self.is_stale(record, now) for record in self.view()}

    def evict(self, now: float, horizon: float | None = None) -> list[str]:
        """Drop records unseen for longer than `horizon` seconds."""

        horizon = self.settings.evict_horizon_secs if horizon is None else horizon
        horizon = max(horizon, self.settings.stale_secs)
        with self._write_lock:
            expired = [
                key
                for key, record in self._records.items()
                if now - record.last_seen_at > horizon
            ]
            if expired:
                with self._publish_lock:
                    for key in expired:
                        del self._records[key]

        if expired:
            logger.info("Evicted %s aircraft unseen for more than %ss", len(expired), horizon)
        return expired

    def _parse(self, entry: Any) -> AircraftSnapshot | None:
        if isinstance(entry, AircraftSnapshot):
            return entry
        if not isinstance(entry, Mapping):
            logger.debug("Skipping non-object feed entry: %r", entry)
            return None
        try:
            return AircraftSnapshot.model_validate(entry)
        except ValidationError as exc:
            logger.debug("Skipping malformed feed entry %r: %s", entry.get("hex"), exc)
            return None

    def _apply(
        self, previous: AircraftRecord | None, snap: AircraftSnapshot, now: float
    ) -> AircraftRecord:
        observed_at = heard_at(snap, now)
        if previous is None:
            previous = AircraftRecord(
                icao_hex=snap.hex, first_seen_at=observed_at, last_seen_at=observed_at
            )

        changes: dict[str, Any] = {
            "last_seen_at": max(previous.last_seen_at, observed_at),
        }
        observed = {
            "callsign": snap.flight,
            "registration": snap.r,
            "type_code": snap.t,
            "squawk": snap.squawk,
            "category": snap.category,
            "lat": snap.lat,
            "lon": snap.lon,
            "altitude_baro": snap.alt_baro,
            "altitude_geom": snap.alt_geom,
            "ground_speed": snap.ground_speed,
            "track": snap.track,
            "vertical_rate": snap.vertical_rate,
            "nic": snap.nic,
            "nac_p": snap.nac_p,
            "seen_secs": snap.seen_secs,
            "messages": snap.messages,
            "rssi": snap.rssi,
        }
        changes.update({name: value for name, value in observed.items() if value is not None})

        if snap.has_position:
            changes["trail"] = self._extend_trail(
                previous.trail, snap.lat, snap.lon, now, snap.track
            )
            if self.site is not None:
                changes.update(self._closure(previous, snap.lat, snap.lon, now))

        changes.update(self._vertical_trend(previous, snap, now))
        return replace(previous, **changes)

    def _extend_trail(
        self,
        trail: tuple[TrailPoint, ...],
        lat: float,
        lon: float,
        now: float,
        track: float | None = None,
    ) -> tuple[TrailPoint, ...]:
        point = TrailPoint(lat=lat, lon=lon, at=now, track=track)
        if trail:
            last = trail[-1]
            if abs(last.lat - lat) < TRAIL_EPSILON_DEG and abs(last.lon - lon) < TRAIL_EPSILON_DEG:
                return trail
            if now < last.at:
                return trail
            if now == last.at:
                trail = trail[:-1]
        return (trail + (point,))[-self.settings.trail_len:]

    def _closure(
        self, previous: AircraftRecord, lat: float, lon: float, now: float
    ) -> dict[str, Any]:
        site = self.site
        range_nm = great_circle((site.lat, site.lon), (lat, lon)).distance_nm
        if previous.range_nm is None or previous.range_at is None:
            return {"range_nm": range_nm, "range_at": now}

        elapsed = now - previous.range_at
        if elapsed <= 0:
            return {"range_nm": range_nm}

        span = max(elapsed, self.settings.rate_min_secs)
        instant = (range_nm - previous.range_nm) / span * SECONDS_PER_HOUR
        if previous.closure_rate is None:
            rate = instant
        else:
            alpha = decay_alpha(elapsed, self.settings.rate_window_ms / 1000.0)
            rate = alpha * instant + (1.0 - alpha) * previous.closure_rate
        return {"range_nm": range_nm, "range_at": now, "closure_rate": rate}

    def _vertical_trend(
        self, previous: AircraftRecord, snap: AircraftSnapshot, now: float
    ) -> dict[str, Any]:
        elapsed = None
        if previous.vertical_rate_at is not None:
            elapsed = now - previous.vertical_rate_at

        sample: float | None = None
        if snap.vertical_rate is not None:
            sample = float(snap.vertical_rate)
        elif (
            snap.alt_baro is not None
            and previous.altitude_baro is not None
            and elapsed is not None
            and elapsed > 0
        ):
            span = max(elapsed, self.settings.rate_min_secs)
            sample = (snap.alt_baro - previous.altitude_baro) / span * 60.0

        if sample is None:
            if snap.alt_baro is not None and previous.vertical_rate_at is None:
                return {"vertical_rate_at": now}
            return {}

        prior = previous.vertical_rate_smoothed
        if prior is None:
            smoothed = sample
        elif elapsed is None or elapsed <= 0:
            smoothed = prior
        else:
            alpha = decay_alpha(elapsed, self.settings.trend_window_ms / 1000.0)
            smoothed = alpha * sample + (1.0 - alpha) * prior

        return {
            "vertical_rate_smoothed": smoothed,
            "vertical_rate_at": max(now, previous.vertical_rate_at or now),
            "altitude_trend": classify_trend(
                smoothed, previous.altitude_trend, self.settings.trend_deadband_fpm
            ),
        }


__all__ = ["AircraftStore", "MergeReport", "classify_trend", "decay_alpha", "heard_at"]
