"""Health check endpoint."""

from typing import Any

from fastapi import APIRouter, Request

from skyradar.config import settings

router = APIRouter()


@router.get("/healthz", summary="Health check")
def health_check(request: Request) -> dict[str, Any]:
    """Simple health check endpoint with feed status."""

    runtime = getattr(request.app.state, "runtime", None)
    return {
        "status": "ok",
        "env": settings.skyradar_env,
        "tracked": len(runtime.store) if runtime else 0,
        "feed_ok": runtime.last_poll_ok if runtime else None,
        "msg_rate": runtime.rates.feed_rate if runtime else None,
        "avg_aircraft_rate": runtime.rates.average_aircraft_rate if runtime else None,
    }
