"""Core services: store, geometry, routes, notifications, filters, rendering."""

from .filters import FilterExpression, FilterSyntaxError, compile_filter, load_filter
from .geo import (
    GreatCircle,
    Projection,
    great_circle,
    interpolate,
    interpolate_angle,
    interpolation_factor,
    project,
)
from .notifier import ProximityNotifier
from .rates import MessageRates, MessageRateTracker
from .projector import (
    ProjectedPoint,
    QualityFlags,
    RenderedAircraft,
    RenderProjector,
    SortMode,
)
from .route_cache import RouteCache, RouteLookup
from .runtime import FeedSource, LatestBatch, RadarRuntime
from .store import AircraftStore, MergeReport

__all__ = [
    "AircraftStore",
    "FeedSource",
    "FilterExpression",
    "FilterSyntaxError",
    "GreatCircle",
    "LatestBatch",
    "MergeReport",
    "MessageRateTracker",
    "MessageRates",
    "ProjectedPoint",
    "Projection",
    "ProximityNotifier",
    "QualityFlags",
    "RadarRuntime",
    "RenderedAircraft",
    "RenderProjector",
    "RouteCache",
    "RouteLookup",
    "SortMode",
    "compile_filter",
    "great_circle",
    "interpolate",
    "interpolate_angle",
    "interpolation_factor",
    "load_filter",
    "project",
]
