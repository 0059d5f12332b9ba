"""Models for raw aircraft snapshots polled from a readsb/tar1090 style feed."""

from __future__ import annotations

import math
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _coerce_number(value: Any) -> float | None:
    """Accept numbers, numeric strings and null; blank strings mean absent."""

    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("expected number or null, got bool")
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            # readsb reports "ground" for alt_baro; not a usable number
            return None
        return number if math.isfinite(number) else None
    raise ValueError(f"expected number or null, got {type(value).__name__}")


def _coerce_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, (str, int, float)):
        raise ValueError(f"expected string or null, got {type(value).__name__}")
    text = str(value).strip()
    return text or None


class AircraftSnapshot(BaseModel):
    """One aircraft entry of a feed poll, using the feed's own field names."""

    hex: str = Field(..., description="ICAO 24-bit address in hex")
    flight: Optional[str] = Field(default=None, description="Callsign / flight number")
    r: Optional[str] = Field(default=None, description="Registration")
    t: Optional[str] = Field(default=None, description="ICAO type designator")
    squawk: Optional[str] = Field(default=None, description="Mode A code")
    category: Optional[str] = Field(default=None, description="Emitter category")

    lat: Optional[float] = Field(default=None, description="Latitude in decimal degrees")
    lon: Optional[float] = Field(default=None, description="Longitude in decimal degrees")
    alt_baro: Optional[int] = Field(default=None, description="Barometric altitude in feet")
    alt_geom: Optional[int] = Field(default=None, description="Geometric altitude in feet")
    gs: Optional[float] = Field(default=None, description="Ground speed in knots")
    speed: Optional[float] = Field(default=None, description="Ground speed in knots (legacy key)")
    track: Optional[float] = Field(default=None, description="True track in degrees")
    baro_rate: Optional[int] = Field(default=None, description="Barometric vertical rate, ft/min")
    geom_rate: Optional[int] = Field(default=None, description="Geometric vertical rate, ft/min")

    nic: Optional[int] = Field(default=None, description="Navigation Integrity Category")
    nac_p: Optional[int] = Field(default=None, description="Navigation Accuracy Category, position")
    seen: Optional[float] = Field(default=None, description="Seconds since any message")
    seen_pos: Optional[float] = Field(default=None, description="Seconds since last position")
    messages: Optional[int] = Field(default=None, description="Total messages received")
    rssi: Optional[float] = Field(default=None, description="Signal strength in dBFS")

    model_config = ConfigDict(extra="ignore")

    @field_validator("hex", mode="before")
    @classmethod
    def _normalize_hex(cls, value: Any) -> str:
        text = _coerce_text(value)
        if not text:
            raise ValueError("hex is required")
        return text.lower()

    @field_validator("flight", "r", "t", "squawk", "category", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> str | None:
        return _coerce_text(value)

    @field_validator("lat", "lon", "gs", "speed", "track", "seen", "seen_pos", "rssi", mode="before")
    @classmethod
    def _float_from_any(cls, value: Any) -> float | None:
        return _coerce_number(value)

    @field_validator(
        "alt_baro", "alt_geom", "baro_rate", "geom_rate", "nic", "nac_p", "messages", mode="before"
    )
    @classmethod
    def _int_from_any(cls, value: Any) -> int | None:
        number = _coerce_number(value)
        return int(number) if number is not None else None

    @property
    def ground_speed(self) -> float | None:
        return self.gs if self.gs is not None else self.speed

    @property
    def vertical_rate(self) -> int | None:
        return self.baro_rate if self.baro_rate is not None else self.geom_rate

    @property
    def seen_secs(self) -> float | None:
        return self.seen_pos if self.seen_pos is not None else self.seen

    @property
    def has_position(self) -> bool:
        return self.lat is not None and self.lon is not None


class FeedResponse(BaseModel):
    """Envelope of an `aircraft.json` poll."""

    now: Optional[float] = Field(default=None, description="Feed timestamp, epoch seconds")
    messages: Optional[int] = Field(default=None, description="Receiver message counter")
    aircraft: list[Any] = Field(
        default_factory=list,
        validation_alias=AliasChoices("aircraft", "ac"),
        description="Raw aircraft entries; validated one by one at merge time",
    )

    model_config = ConfigDict(extra="ignore")

    @field_validator("now", mode="before")
    @classmethod
    def _now_from_any(cls, value: Any) -> float | None:
        return _coerce_number(value)

    @field_validator("messages", mode="before")
    @classmethod
    def _messages_from_any(cls, value: Any) -> int | None:
        number = _coerce_number(value)
        return max(int(number), 0) if number is not None else None


__all__ = ["AircraftSnapshot", "FeedResponse"]
