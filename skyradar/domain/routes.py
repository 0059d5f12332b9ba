"""Route enrichment entities and the per-key lookup state machine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RouteState(str, Enum):
    """Lookup state of a single callsign key.

    Transitions: absent -> PENDING -> RESOLVED | FAILED, and FAILED -> PENDING
    once the backoff deadline has passed. An expired RESOLVED entry goes back
    to PENDING when it is requested again.
    """

    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class RouteInfo:
    """Route metadata as returned by a lookup collaborator."""

    callsign: str
    origin: str | None = None
    destination: str | None = None
    route: str | None = None


@dataclass(frozen=True)
class RouteEntry:
    """Cached lookup result; `found=False` is the negative-result marker."""

    key: str
    fetched_at: float
    ttl: float
    found: bool = True
    origin: str | None = None
    destination: str | None = None
    route: str | None = None

    def is_fresh(self, now: float) -> bool:
        if self.ttl <= 0:
            return True
        return now - self.fetched_at < self.ttl

    @property
    def label(self) -> str | None:
        if not self.found:
            return None
        if self.origin and self.destination:
            return f"{self.origin}-{self.destination}"
        return self.route


def normalize_callsign(value: str | None) -> str:
    return (value or "").strip().upper()


__all__ = ["RouteEntry", "RouteInfo", "RouteState", "normalize_callsign"]
