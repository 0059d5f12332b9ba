"""Feed ingestor polling a readsb/tar1090 style `aircraft.json` endpoint."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from skyradar.config import settings
from skyradar.models.feed import FeedResponse

logger = logging.getLogger("skyradar.ingestors.feed")


class FeedError(RuntimeError):
    """Raised when a poll produced no usable snapshot."""


class FeedIngestor:
    """Fetch raw aircraft entries from an ADS-B receiver feed.

    Entries are returned as plain mappings; per-entry validation happens in
    the store merge so one malformed aircraft never costs the whole poll.
    """

    def __init__(
        self,
        *,
        url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url or settings.feed_url
        self.timeout = timeout or settings.feed_timeout
        self.transport = transport
        self.http_client = http_client
        self.messages_total: int | None = None

    async def poll_snapshots(self) -> list[dict[str, Any]]:
        try:
            if self.http_client is not None:
                response = await self.http_client.get(self.url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self.transport
                ) as client:
                    response = await client.get(self.url)
        except httpx.TimeoutException as exc:
            raise FeedError(f"feed request timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise FeedError(f"feed request failed: {exc}") from exc

        if response.status_code == 429:
            raise FeedError("feed rate limit encountered")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FeedError(f"feed returned HTTP {exc.response.status_code}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise FeedError(f"failed to parse feed JSON: {exc}") from exc

        if isinstance(payload, list):
            payload = {"aircraft": payload}
        try:
            envelope = FeedResponse.model_validate(payload)
        except ValidationError as exc:
            raise FeedError(f"unexpected feed payload: {exc}") from exc

        self.messages_total = envelope.messages
        entries = [entry for entry in envelope.aircraft if isinstance(entry, dict)]
        if len(entries) != len(envelope.aircraft):
            logger.debug(
                "Dropped %s non-object feed entries", len(envelope.aircraft) - len(entries)
            )
        logger.debug("Polled %s aircraft from %s", len(entries), self.url)
        return entries


__all__ = ["FeedError", "FeedIngestor"]
