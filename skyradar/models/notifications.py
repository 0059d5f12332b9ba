"""Proximity notification events handed to the UI layer."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field


class NotificationKind(str, Enum):
    """Kinds of proximity condition the notifier reports."""

    ENTERING_RADIUS = "entering-radius"
    OVERPASS = "overpass"
    CLOSING = "closing"


_PREFIXES = {
    NotificationKind.ENTERING_RADIUS: "NEAR",
    NotificationKind.OVERPASS: "OVER",
    NotificationKind.CLOSING: "CLOSING",
}


class NotificationEvent(BaseModel):
    """A single triggering condition, consumed at most once."""

    icao_hex: str = Field(..., description="ICAO address of the aircraft")
    kind: NotificationKind = Field(..., description="Condition that triggered the event")
    distance_mi: float = Field(..., description="Distance from the site in statute miles")
    timestamp: float = Field(..., description="Monotonic time the event was raised")
    callsign: Optional[str] = Field(default=None, description="Callsign when known")
    registration: Optional[str] = Field(default=None, description="Registration when known")

    model_config = ConfigDict(frozen=True)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def message(self) -> str:
        callsign = self.callsign or "--"
        registration = self.registration or "--"
        return f"{_PREFIXES[self.kind]} {callsign} {registration} {self.distance_mi:.1f}mi"


__all__ = ["NotificationEvent", "NotificationKind"]
