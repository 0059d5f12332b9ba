"""Aircraft entity definitions shared by the store, notifier and projector."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AltitudeTrend(str, Enum):
    """Categorical altitude trend derived from smoothed vertical rate."""

    CLIMBING = "climbing"
    LEVEL = "level"
    DESCENDING = "descending"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TrailPoint:
    """One recent position sample; `at` is on the monotonic clock."""

    lat: float
    lon: float
    at: float
    track: float | None = None


@dataclass(frozen=True)
class SiteLocation:
    """Observing site the radar and proximity checks are centred on."""

    lat: float
    lon: float
    alt_m: float = 0.0


@dataclass(frozen=True)
class AircraftRecord:
    """Reconciled state for one ICAO address.

    Records are immutable values. The store replaces a record wholesale on
    every merge, so a reader holding a record never observes a partial update.
    """

    icao_hex: str
    first_seen_at: float
    last_seen_at: float

    callsign: str | None = None
    registration: str | None = None
    type_code: str | None = None
    squawk: str | None = None
    category: str | None = None

    lat: float | None = None
    lon: float | None = None
    altitude_baro: int | None = None
    altitude_geom: int | None = None
    ground_speed: float | None = None
    track: float | None = None
    vertical_rate: int | None = None

    nic: int | None = None
    nac_p: int | None = None
    seen_secs: float | None = None
    messages: int | None = None
    rssi: float | None = None

    trail: tuple[TrailPoint, ...] = ()
    range_nm: float | None = None
    range_at: float | None = None
    closure_rate: float | None = None
    vertical_rate_smoothed: float | None = None
    vertical_rate_at: float | None = None
    altitude_trend: AltitudeTrend = AltitudeTrend.UNKNOWN

    @property
    def has_position(self) -> bool:
        return self.lat is not None and self.lon is not None

    def age(self, now: float) -> float:
        return max(now - self.last_seen_at, 0.0)


__all__ = ["AircraftRecord", "AltitudeTrend", "SiteLocation", "TrailPoint"]
