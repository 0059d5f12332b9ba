"""Network collaborators feeding the SkyRadar core."""

from .feed import FeedError, FeedIngestor
from .routes import (
    RateLimitedError,
    RouteLookupClient,
    RouteLookupError,
    parse_route_object,
    parse_routes,
    split_route,
)

__all__ = [
    "FeedError",
    "FeedIngestor",
    "RateLimitedError",
    "RouteLookupClient",
    "RouteLookupError",
    "parse_route_object",
    "parse_routes",
    "split_route",
]
