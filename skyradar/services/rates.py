"""Receiver and per-aircraft message rates.

The feed reports a running message counter for the receiver and one per
aircraft. Rates are derived from counter deltas and smoothed with an
exponential average; a counter that goes backwards (receiver restart or a
re-acquired aircraft) resets the average instead of producing a negative rate.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import logging
import threading
from typing import Iterable, Optional

from skyradar.config import Settings, settings as default_settings
from skyradar.domain import AircraftRecord

logger = logging.getLogger("skyradar.rates")

EMA_WEIGHT = 0.45
SHORT_WEIGHT = 0.7
MIN_HOLD_SECS = 2.0


@dataclass(frozen=True)
class MessageRates:
    """Point-in-time view of the derived rates, in messages per second."""

    feed_rate: Optional[float]
    average_aircraft_rate: Optional[float]
    aircraft: dict[str, float]


@dataclass
class _AircraftCounter:
    messages: int
    at: float
    rate: float | None = None


def smooth(sample: float, previous: float | None) -> float:
    if previous is None:
        return sample
    return EMA_WEIGHT * sample + (1.0 - EMA_WEIGHT) * previous


class MessageRateTracker:
    """Tracks the receiver counter per poll and aircraft counters per merge."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or default_settings
        self._lock = threading.Lock()
        self._samples: deque[tuple[float, int]] = deque()
        self._feed_rate: float | None = None
        self._feed_rate_at: float | None = None
        self._aircraft: dict[str, _AircraftCounter] = {}
        self._average: float | None = None

    @property
    def window_secs(self) -> float:
        # at least two polls must fit in the window
        return max(self.settings.msg_rate_window_secs, 2.0 * self.settings.refresh_secs)

    @property
    def feed_rate(self) -> float | None:
        return self._feed_rate

    @property
    def average_aircraft_rate(self) -> float | None:
        return self._average

    def aircraft_rate(self, icao_hex: str) -> float | None:
        counter = self._aircraft.get(icao_hex.strip().lower())
        return counter.rate if counter else None

    def update_feed(self, total: Optional[int], now: float) -> float | None:
        """Fold one receiver counter reading into the feed rate."""

        if total is None:
            return self._feed_rate

        min_secs = self.settings.rate_min_secs
        with self._lock:
            if self._samples and total < self._samples[-1][1]:
                logger.info(
                    "Receiver message counter went backwards (%s -> %s); resetting rate",
                    self._samples[-1][1],
                    total,
                )
                self._samples.clear()
                self._feed_rate = None
                self._feed_rate_at = None

            self._samples.append((now, total))
            while now - self._samples[0][0] > self.window_secs:
                self._samples.popleft()
            if len(self._samples) < 2:
                return self._feed_rate

            t0, m0 = self._samples[0]
            t1, m1 = self._samples[-1]
            window_rate = (m1 - m0) / max(t1 - t0, min_secs)
            tp, mp = self._samples[-2]
            short_rate = (m1 - mp) / max(t1 - tp, min_secs * 0.5)
            sample = SHORT_WEIGHT * short_rate + (1.0 - SHORT_WEIGHT) * window_rate

            if sample <= 0:
                hold = max(2.0 * self.window_secs, MIN_HOLD_SECS)
                if self._feed_rate_at is None or now - self._feed_rate_at >= hold:
                    self._feed_rate = None
                return self._feed_rate

            self._feed_rate = smooth(sample, self._feed_rate)
            self._feed_rate_at = now
            return self._feed_rate

    def update_aircraft(self, records: Iterable[AircraftRecord], now: float) -> float | None:
        """Update per-aircraft rates from the records of one merge.

        Aircraft absent from `records` are forgotten; the fleet average is the
        mean over aircraft that currently have a rate.
        """

        min_secs = self.settings.rate_min_secs
        with self._lock:
            present: set[str] = set()
            for record in records:
                present.add(record.icao_hex)
                if record.messages is None:
                    continue

                counter = self._aircraft.get(record.icao_hex)
                if counter is None:
                    self._aircraft[record.icao_hex] = _AircraftCounter(record.messages, now)
                    continue
                if record.messages < counter.messages:
                    counter.rate = None
                elif record.messages > counter.messages:
                    elapsed = max(now - counter.at, min_secs)
                    counter.rate = smooth((record.messages - counter.messages) / elapsed, counter.rate)
                counter.messages = record.messages
                counter.at = now

            for key in [key for key in self._aircraft if key not in present]:
                del self._aircraft[key]

            rates = [c.rate for c in self._aircraft.values() if c.rate is not None]
            self._average = sum(rates) / len(rates) if rates else None
            return self._average

    def snapshot(self) -> MessageRates:
        with self._lock:
            return MessageRates(
                feed_rate=self._feed_rate,
                average_aircraft_rate=self._average,
                aircraft={
                    key: counter.rate
                    for key, counter in self._aircraft.items()
                    if counter.rate is not None
                },
            )


__all__ = ["MessageRateTracker", "MessageRates", "smooth"]
