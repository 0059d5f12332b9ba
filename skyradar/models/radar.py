"""Request and response models for the radar HTTP surface."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


class FilterUpdate(BaseModel):
    """New live-visibility filter expression."""

    expression: str = Field(
        default="", description="Filter expression, e.g. 'alt_baro > 10000 AND speed > 200'"
    )


class FilterStatus(BaseModel):
    """Outcome of compiling a filter expression."""

    expression: str = Field(..., description="Expression as submitted")
    active: bool = Field(..., description="Whether the expression is in effect")
    error: Optional[str] = Field(
        default=None, description="Compile error; the filter falls back to match-all"
    )


class RadarSnapshot(BaseModel):
    """One render pass over the tracked aircraft."""

    generated_at: float = Field(..., description="Monotonic time the snapshot was taken")
    sort: str = Field(..., description="Ordering applied to `aircraft`")
    filter: FilterStatus = Field(..., description="Live filter in effect")
    tracked: int = Field(..., description="Aircraft in the store, before filtering")
    message_rate: Optional[float] = Field(
        default=None, description="Receiver message rate, messages/s"
    )
    average_aircraft_rate: Optional[float] = Field(
        default=None, description="Mean per-aircraft message rate, messages/s"
    )
    aircraft: list[dict[str, Any]] = Field(
        default_factory=list, description="Projected aircraft rows in display order"
    )


__all__ = ["FilterStatus", "FilterUpdate", "RadarSnapshot"]
