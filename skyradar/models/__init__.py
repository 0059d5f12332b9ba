"""Pydantic models for the SkyRadar core."""

from .feed import AircraftSnapshot, FeedResponse
from .notifications import NotificationEvent, NotificationKind
from .radar import FilterStatus, FilterUpdate, RadarSnapshot

__all__ = [
    "AircraftSnapshot",
    "FeedResponse",
    "FilterStatus",
    "FilterUpdate",
    "NotificationEvent",
    "NotificationKind",
    "RadarSnapshot",
]
