"""Turn the aircraft table into an ordered, projected view for one render tick.

`snapshot` reads a point-in-time copy of the store, filters and gates it,
joins cached routes and projects positions onto the radar. It never performs
network I/O: route misses are queued for the background batch cycle and
rendered as unknown.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
from typing import Iterable, Optional

from skyradar.config import Settings, settings as default_settings
from skyradar.domain import AircraftRecord, AltitudeTrend, RouteEntry, SiteLocation
from skyradar.services.filters import FilterExpression, load_filter
from skyradar.services.geo import interpolate, interpolate_angle, interpolation_factor, project
from skyradar.services.rates import MessageRateTracker
from skyradar.services.route_cache import RouteCache
from skyradar.services.store import AircraftStore

logger = logging.getLogger("skyradar.projector")


class SortMode(str, Enum):
    """Orderings offered to the UI."""

    LAST_SEEN = "last_seen"
    ALTITUDE = "altitude"
    SPEED = "speed"
    DISTANCE = "distance"
    CALLSIGN = "callsign"


@dataclass(frozen=True)
class QualityFlags:
    low_nic: bool = False
    low_nac: bool = False

    @property
    def degraded(self) -> bool:
        return self.low_nic or self.low_nac


@dataclass(frozen=True)
class ProjectedPoint:
    x: float
    y: float


@dataclass(frozen=True)
class RenderedAircraft:
    """Everything the UI needs to draw one aircraft row and blip."""

    icao_hex: str
    callsign: Optional[str]
    registration: Optional[str]
    type_code: Optional[str]
    squawk: Optional[str]

    lat: Optional[float]
    lon: Optional[float]
    altitude_baro: Optional[int]
    ground_speed: Optional[float]
    track: Optional[float]
    vertical_rate: Optional[int]
    altitude_trend: AltitudeTrend
    closure_rate: Optional[float]

    distance_nm: Optional[float]
    bearing_deg: Optional[float]
    position: Optional[ProjectedPoint]
    in_range: bool
    trail: tuple[ProjectedPoint, ...]

    route: Optional[str]
    origin: Optional[str]
    destination: Optional[str]

    stale: bool
    quality: QualityFlags
    last_seen_at: float
    age_secs: float
    message_rate: Optional[float] = None


def site_centroid(records: Iterable[AircraftRecord]) -> SiteLocation | None:
    """Mean position of positioned aircraft, used when no site is configured."""

    lats: list[float] = []
    lons: list[float] = []
    for record in records:
        if record.has_position:
            lats.append(record.lat)
            lons.append(record.lon)
    if not lats:
        return None
    return SiteLocation(lat=sum(lats) / len(lats), lon=sum(lons) / len(lons))


def _sort_key(mode: SortMode):
    def numeric_desc(value: float | None, row: RenderedAircraft):
        return (value is None, -(value or 0.0), row.icao_hex)

    if mode is SortMode.ALTITUDE:
        return lambda row: numeric_desc(row.altitude_baro, row)
    if mode is SortMode.SPEED:
        return lambda row: numeric_desc(row.ground_speed, row)
    if mode is SortMode.DISTANCE:
        return lambda row: (row.distance_nm is None, row.distance_nm or 0.0, row.icao_hex)
    if mode is SortMode.CALLSIGN:
        return lambda row: (row.callsign is None, row.callsign or "", row.icao_hex)
    return lambda row: (-row.last_seen_at, row.icao_hex)


class RenderProjector:
    """Read-only pass over the store producing the render list."""

    def __init__(
        self,
        store: AircraftStore,
        route_cache: RouteCache | None = None,
        settings: Settings | None = None,
        *,
        site: SiteLocation | None = None,
        rates: MessageRateTracker | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.store = store
        self.route_cache = route_cache
        self.rates = rates
        self.site = site if site is not None else store.site
        self._filter = load_filter(self.settings.filter_expr)
        try:
            self._sort_mode = SortMode(self.settings.sort_mode)
        except ValueError:
            logger.warning("Unknown sort mode %r; using last_seen", self.settings.sort_mode)
            self._sort_mode = SortMode.LAST_SEEN

    @property
    def filter(self) -> FilterExpression:
        return self._filter

    @property
    def filter_error(self) -> str | None:
        return self._filter.error

    def set_filter(self, text: str | None) -> FilterExpression:
        """Swap the live filter; an invalid expression falls back to match-all."""

        self._filter = load_filter(text)
        if self._filter.error is None:
            logger.info("Filter set to %r", self._filter.source)
        return self._filter

    @property
    def sort_mode(self) -> SortMode:
        return self._sort_mode

    @sort_mode.setter
    def sort_mode(self, mode: SortMode | str) -> None:
        self._sort_mode = SortMode(mode)

    def snapshot(
        self,
        now: float,
        ui_aspect: float | None = None,
        sort: SortMode | str | None = None,
    ) -> list[RenderedAircraft]:
        records = self.store.view()
        site = self.site or site_centroid(records)
        aspect = self.settings.radar_aspect if ui_aspect is None else ui_aspect
        mode = self._sort_mode if sort is None else SortMode(sort)
        active_filter = self._filter

        rows: list[RenderedAircraft] = []
        for record in records:
            stale = self.store.is_stale(record, now)
            if stale and self.settings.hide_stale:
                continue
            quality = QualityFlags(
                low_nic=record.nic is not None and record.nic < self.settings.low_nic,
                low_nac=record.nac_p is not None and record.nac_p < self.settings.low_nac,
            )
            if quality.degraded and self.settings.hide_low_quality:
                continue
            if not active_filter.matches(record):
                continue
            rows.append(self._render(record, site, aspect, stale, quality, now))

        rows.sort(key=_sort_key(mode))
        return rows

    def _route_for(self, record: AircraftRecord, now: float) -> RouteEntry | None:
        if self.route_cache is None or not record.callsign:
            return None
        return self.route_cache.lookup(record.callsign, now=now)

    def _render(
        self,
        record: AircraftRecord,
        site: SiteLocation | None,
        aspect: float,
        stale: bool,
        quality: QualityFlags,
        now: float,
    ) -> RenderedAircraft:
        distance_nm = bearing = None
        position: ProjectedPoint | None = None
        trail: tuple[ProjectedPoint, ...] = ()
        in_range = False
        track = record.track

        if site is not None and record.has_position:
            centre = (site.lat, site.lon)
            range_nm = self.settings.radar_range_nm
            current = project(centre, (record.lat, record.lon), range_nm, aspect)
            distance_nm = current.distance_nm
            bearing = current.bearing_deg
            in_range = current.in_range
            position = ProjectedPoint(current.x, current.y)

            points = [project(centre, (p.lat, p.lon), range_nm, aspect) for p in record.trail]
            trail = tuple(ProjectedPoint(p.x, p.y) for p in points)

            if self.settings.smooth_mode and len(points) >= 2:
                t = interpolation_factor(now - record.trail[-1].at, self.settings.refresh_secs)
                x, y = interpolate((points[-2].x, points[-2].y), (points[-1].x, points[-1].y), t)
                position = ProjectedPoint(x, y)
                before, after = record.trail[-2].track, record.trail[-1].track
                if before is not None and after is not None:
                    track = interpolate_angle(before, after, t)

        route = self._route_for(record, now)
        return RenderedAircraft(
            icao_hex=record.icao_hex,
            callsign=record.callsign,
            registration=record.registration,
            type_code=record.type_code,
            squawk=record.squawk,
            lat=record.lat,
            lon=record.lon,
            altitude_baro=record.altitude_baro,
            ground_speed=record.ground_speed,
            track=track,
            vertical_rate=record.vertical_rate,
            altitude_trend=record.altitude_trend,
            closure_rate=record.closure_rate,
            distance_nm=distance_nm,
            bearing_deg=bearing,
            position=position,
            in_range=in_range,
            trail=trail,
            route=route.label if route else None,
            origin=route.origin if route else None,
            destination=route.destination if route else None,
            stale=stale,
            quality=quality,
            last_seen_at=record.last_seen_at,
            age_secs=record.age(now),
            message_rate=self.rates.aircraft_rate(record.icao_hex) if self.rates else None,
        )


__all__ = [
    "ProjectedPoint",
    "QualityFlags",
    "RenderProjector",
    "RenderedAircraft",
    "SortMode",
    "site_centroid",
]
