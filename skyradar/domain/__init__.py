"""Domain entities for the SkyRadar core."""

from .aircraft import AircraftRecord, AltitudeTrend, SiteLocation, TrailPoint
from .routes import RouteEntry, RouteInfo, RouteState, normalize_callsign

__all__ = [
    "AircraftRecord",
    "AltitudeTrend",
    "RouteEntry",
    "RouteInfo",
    "RouteState",
    "SiteLocation",
    "TrailPoint",
    "normalize_callsign",
]
