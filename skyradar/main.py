from __future__ import annotations

import contextlib
import logging
import time

import httpx
from fastapi import FastAPI, Request

from skyradar.api import api_router
from skyradar.config import settings
from skyradar.ingestors import FeedIngestor, RouteLookupClient
from skyradar.services import RadarRuntime, RouteCache

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger("skyradar")


def build_runtime(http_client: httpx.AsyncClient) -> RadarRuntime:
    """Wire the core components to the configured network collaborators."""

    feed = FeedIngestor(http_client=http_client)
    route_cache = None
    if settings.route_enabled:
        route_cache = RouteCache(RouteLookupClient(http_client=http_client), settings)
    return RadarRuntime(feed, settings=settings, route_cache=route_cache)


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application startup and shutdown lifecycle."""

    app.state.http_client = httpx.AsyncClient(timeout=settings.feed_timeout)
    runtime = build_runtime(app.state.http_client)
    app.state.runtime = runtime

    if runtime.store.site is None:
        logger.warning(
            "No site configured; radar centres on the aircraft centroid and "
            "proximity notifications are disabled"
        )
    runtime.start()
    logger.info("Polling %s every %.1fs", settings.feed_url, settings.refresh_secs)

    try:
        yield
    finally:
        await runtime.stop()
        app.state.runtime = None

        client: httpx.AsyncClient | None = getattr(app.state, "http_client", None)
        if client:
            await client.aclose()


app = FastAPI(title="SkyRadar", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log basic request information for observability."""

    start_time = time.time()
    response = await call_next(request)
    duration_ms = (time.time() - start_time) * 1000
    logger.info(
        "HTTP %s %s -> %s (%.2f ms)",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


app.include_router(api_router)


@app.get("/", summary="Root")
def read_root() -> dict[str, str]:
    """Basic root endpoint for quick verification."""

    return {"message": "SkyRadar is running"}
