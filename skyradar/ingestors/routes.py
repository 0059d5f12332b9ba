"""Route enrichment client for airplanes.live style `routeset` endpoints."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional, Sequence

import httpx

from skyradar.config import settings
from skyradar.domain import RouteInfo, normalize_callsign

logger = logging.getLogger("skyradar.ingestors.routes")

_CALLSIGN_KEYS = ("callsign", "call", "flight", "cs")
_ROUTE_KEYS = ("route", "flightroute", "_airport_codes_iata", "airport_codes")
_ORIGIN_KEYS = ("origin", "orig", "from", "departure", "dep")
_DESTINATION_KEYS = ("destination", "dest", "to", "arrival", "arr")
_ALT_ORIGIN_KEYS = ("airport1", "from_iata", "from_icao")
_ALT_DESTINATION_KEYS = ("airport2", "to_iata", "to_icao")
_LIST_KEYS = ("routes", "route", "data", "planes", "aircraft", "results")


class RouteLookupError(RuntimeError):
    """Raised when a route batch could not be fetched."""


class RateLimitedError(RouteLookupError):
    """Raised when the route endpoint answered 429 or reported a rate limit."""


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.is_success:
        return False
    text = response.text.lower() if response.content else ""
    return "too many requests" in text or "rate limit" in text


def _first_text(obj: Mapping[str, Any], keys: Iterable[str]) -> str | None:
    for key in keys:
        value = obj.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def split_route(route: str) -> tuple[str, str] | None:
    """Split "KDEN-KORD" into its two endpoints; anything else gives None."""

    parts = route.split("-")
    if len(parts) != 2:
        return None
    left, right = parts[0].strip(), parts[1].strip()
    if not left or not right:
        return None
    return left, right


def parse_route_object(value: Any, key_callsign: str | None = None) -> RouteInfo | None:
    if not isinstance(value, Mapping):
        return None
    callsign = _first_text(value, _CALLSIGN_KEYS) or (key_callsign or "").strip()
    if not callsign:
        return None

    route = _first_text(value, _ROUTE_KEYS)
    origin = _first_text(value, _ORIGIN_KEYS) or _first_text(value, _ALT_ORIGIN_KEYS)
    destination = _first_text(value, _DESTINATION_KEYS) or _first_text(
        value, _ALT_DESTINATION_KEYS
    )
    if origin is None and destination is None and route:
        endpoints = split_route(route)
        if endpoints:
            origin, destination = endpoints

    return RouteInfo(callsign=callsign, origin=origin, destination=destination, route=route)


def parse_routes(body: Any) -> list[RouteInfo]:
    """Parse the response shapes seen across route providers.

    Accepts a bare array, an object wrapping an array under one of the usual
    keys, a `routes` object mapping callsign to route text or object, and an
    object keyed by callsign.
    """

    if isinstance(body, list):
        return [route for route in (parse_route_object(item) for item in body) if route]
    if not isinstance(body, Mapping):
        return []

    for key in _LIST_KEYS:
        items = body.get(key)
        if isinstance(items, list):
            return [route for route in (parse_route_object(item) for item in items) if route]

    routes = body.get("routes")
    if isinstance(routes, Mapping):
        results: list[RouteInfo] = []
        for key, value in routes.items():
            parsed = parse_route_object(value, key)
            if parsed:
                results.append(parsed)
            elif isinstance(value, str) and value.strip():
                results.append(RouteInfo(callsign=key.strip(), route=value.strip()))
        if results:
            return results

    return [
        route
        for route in (
            parse_route_object(value, key) for key, value in body.items() if isinstance(value, Mapping)
        )
        if route
    ]


class RouteLookupClient:
    """Batch callsign -> route lookups over HTTP.

    `routeset` mode POSTs the batch to `{base}/api/0/routeset`, trying the
    payload shapes different deployments accept until one succeeds. `tar1090`
    mode GETs a static routes file. Callsigns missing from the answer come
    back as None so the cache can record them as not found.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        mode: str | None = None,
        route_path: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or settings.route_base).rstrip("/")
        self.mode = (mode or settings.route_mode).lower()
        self.route_path = (route_path or settings.route_path).lstrip("/")
        self.timeout = timeout or settings.route_timeout_secs
        self.transport = transport
        self.http_client = http_client

    async def lookup_routes(
        self,
        identifiers: Sequence[str],
        positions: Optional[Mapping[str, tuple[float, float]]] = None,
    ) -> dict[str, Optional[RouteInfo]]:
        callsigns = [normalize_callsign(value) for value in identifiers]
        callsigns = [value for value in callsigns if value]
        if not callsigns:
            return {}

        if self.mode == "tar1090":
            routes = await self._fetch_tar1090()
        else:
            routes = await self._fetch_routeset(callsigns, positions or {})

        by_callsign = {normalize_callsign(route.callsign): route for route in routes}
        return {callsign: by_callsign.get(callsign) for callsign in callsigns}

    async def _fetch_routeset(
        self, callsigns: list[str], positions: Mapping[str, tuple[float, float]]
    ) -> list[RouteInfo]:
        url = f"{self.base_url}/api/0/routeset"
        planes = []
        for callsign in callsigns:
            lat, lon = positions.get(callsign, (None, None))
            planes.append({"callsign": callsign, "lat": lat, "lng": lon})
        payloads: list[Any] = [
            {"planes": planes},
            callsigns,
            {"callsigns": callsigns},
            {"callsign": callsigns},
        ]

        last_error: RouteLookupError | None = None
        for payload in payloads:
            try:
                body = await self._request("POST", url, json=payload)
            except RateLimitedError:
                raise
            except RouteLookupError as exc:
                logger.debug("routeset payload rejected: %s", exc)
                last_error = exc
                continue
            return parse_routes(body)

        raise last_error or RouteLookupError("route request failed")

    async def _fetch_tar1090(self) -> list[RouteInfo]:
        body = await self._request("GET", f"{self.base_url}/{self.route_path}")
        return parse_routes(body)

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            if self.http_client is not None:
                response = await self.http_client.request(
                    method, url, timeout=self.timeout, **kwargs
                )
            else:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self.transport
                ) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise RouteLookupError(f"route request timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise RouteLookupError(f"route request failed: {exc}") from exc

        if _is_rate_limited(response):
            logger.warning("Route provider rate limit encountered: HTTP %s", response.status_code)
            raise RateLimitedError(f"route HTTP {response.status_code}: rate limited")
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RouteLookupError(f"route HTTP {exc.response.status_code}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise RouteLookupError(f"failed to parse route JSON: {exc}") from exc


__all__ = [
    "RateLimitedError",
    "RouteLookupClient",
    "RouteLookupError",
    "parse_route_object",
    "parse_routes",
    "split_route",
]
