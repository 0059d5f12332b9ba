"""Great-circle math, polar radar projection and interpolation helpers.

Everything here is a pure function of its arguments. Bearings are degrees
clockwise from true north in [0, 360); projected coordinates put north on +y
and east on +x, normalised so the radar edge sits at radius 1.0.
"""

from __future__ import annotations

import math
from typing import NamedTuple

EARTH_RADIUS_KM = 6371.0088
KM_PER_NM = 1.852
KM_PER_MI = 1.609344

MIN_RANGE_NM = 1.0
MIN_ASPECT = 0.2


class GreatCircle(NamedTuple):
    distance_km: float
    bearing_deg: float

    @property
    def distance_nm(self) -> float:
        return self.distance_km / KM_PER_NM

    @property
    def distance_mi(self) -> float:
        return self.distance_km / KM_PER_MI


class Projection(NamedTuple):
    """Aircraft position in radar space relative to the site."""

    x: float
    y: float
    radius: float
    distance_nm: float
    bearing_deg: float
    in_range: bool


def great_circle(p1: tuple[float, float], p2: tuple[float, float]) -> GreatCircle:
    """Haversine distance and initial bearing from `p1` to `p2` (lat, lon)."""

    lat1, lon1 = math.radians(p1[0]), math.radians(p1[1])
    lat2, lon2 = math.radians(p2[0]), math.radians(p2[1])
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(max(1 - a, 0.0)))
    distance_km = EARTH_RADIUS_KM * c

    if distance_km == 0.0:
        return GreatCircle(0.0, 0.0)

    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    bearing = (math.degrees(math.atan2(y, x)) + 360.0) % 360.0
    return GreatCircle(distance_km, bearing)


def project(
    site: tuple[float, float],
    point: tuple[float, float],
    range_nm: float,
    aspect: float = 1.0,
) -> Projection:
    """Polar projection of `point` onto a radar centred on `site`.

    The radius is distance / range clamped to 1.0. Points beyond the range are
    flagged with `in_range=False` rather than silently pinned to the edge, so
    callers decide whether to hide them. `aspect` scales the Y axis to make up
    for terminal cells that are taller than they are wide.
    """

    range_nm = max(range_nm, MIN_RANGE_NM)
    aspect = max(aspect, MIN_ASPECT)
    gc = great_circle(site, point)
    distance_nm = gc.distance_nm
    radius = min(distance_nm / range_nm, 1.0)
    theta = math.radians(gc.bearing_deg)
    return Projection(
        x=radius * math.sin(theta),
        y=radius * math.cos(theta) * aspect,
        radius=radius,
        distance_nm=distance_nm,
        bearing_deg=gc.bearing_deg,
        in_range=distance_nm <= range_nm,
    )


def _clamp_unit(t: float) -> float:
    if t != t:  # NaN
        return 0.0
    return min(max(t, 0.0), 1.0)


def lerp(a: float, b: float, t: float) -> float:
    t = _clamp_unit(t)
    return a * (1.0 - t) + b * t


def interpolate(
    a: tuple[float, float], b: tuple[float, float], t: float
) -> tuple[float, float]:
    """Linear interpolation between two projected points.

    Exact at the ends: t=0 returns `a` and t=1 returns `b`.
    """

    t = _clamp_unit(t)
    if t == 0.0:
        return (a[0], a[1])
    if t == 1.0:
        return (b[0], b[1])
    return (lerp(a[0], b[0], t), lerp(a[1], b[1], t))


def interpolate_angle(a: float, b: float, t: float) -> float:
    """Interpolate a heading along the shorter arc, result in [0, 360)."""

    t = _clamp_unit(t)
    delta = ((b - a + 540.0) % 360.0) - 180.0
    return (a + delta * t) % 360.0


def interpolation_factor(elapsed: float, interval: float) -> float:
    """Fraction of the polling interval elapsed, clamped to [0, 1]."""

    if interval <= 0:
        return 1.0
    return _clamp_unit(elapsed / interval)


__all__ = [
    "GreatCircle",
    "Projection",
    "great_circle",
    "interpolate",
    "interpolate_angle",
    "interpolation_factor",
    "lerp",
    "project",
]
