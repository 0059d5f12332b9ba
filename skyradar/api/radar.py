"""Read-only radar endpoints over the running core."""

from __future__ import annotations

from dataclasses import asdict
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from skyradar.models import FilterStatus, FilterUpdate, NotificationEvent, RadarSnapshot
from skyradar.services import RadarRuntime, SortMode

router = APIRouter(prefix="/api/v1", tags=["radar"])

logger = logging.getLogger("skyradar.api.radar")


def get_runtime(request: Request) -> RadarRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="radar runtime is not running",
        )
    return runtime


def _filter_status(runtime: RadarRuntime) -> FilterStatus:
    current = runtime.projector.filter
    return FilterStatus(
        expression=current.source,
        active=not current.is_match_all,
        error=current.error,
    )


@router.get(
    "/aircraft",
    response_model=RadarSnapshot,
    summary="Projected aircraft for one render tick",
)
async def get_aircraft(
    aspect: Optional[float] = Query(
        default=None, gt=0, description="Display cell aspect ratio (height/width)"
    ),
    sort: Optional[SortMode] = Query(default=None, description="Ordering of the rows"),
    runtime: RadarRuntime = Depends(get_runtime),
) -> RadarSnapshot:
    """Return the filtered, projected and ordered aircraft list."""

    now = runtime.clock()
    rows = runtime.projector.snapshot(now, ui_aspect=aspect, sort=sort)
    return RadarSnapshot(
        generated_at=now,
        sort=(sort or runtime.projector.sort_mode).value,
        filter=_filter_status(runtime),
        tracked=len(runtime.store),
        message_rate=runtime.rates.feed_rate,
        average_aircraft_rate=runtime.rates.average_aircraft_rate,
        aircraft=[asdict(row) for row in rows],
    )


@router.get(
    "/notifications",
    response_model=list[NotificationEvent],
    summary="Drain pending proximity notifications",
)
async def get_notifications(
    runtime: RadarRuntime = Depends(get_runtime),
) -> list[NotificationEvent]:
    """Return notifications raised since the last call; each is delivered once."""

    return runtime.notifier.drain()


@router.get(
    "/notifications/latest",
    response_model=Optional[NotificationEvent],
    summary="Most recent proximity notification",
)
async def get_latest_notification(
    runtime: RadarRuntime = Depends(get_runtime),
) -> Optional[NotificationEvent]:
    """Peek at the newest buffered notification without draining the buffer."""

    return runtime.notifier.latest()


@router.get("/filter", response_model=FilterStatus, summary="Current live filter")
async def get_filter(runtime: RadarRuntime = Depends(get_runtime)) -> FilterStatus:
    return _filter_status(runtime)


@router.put("/filter", response_model=FilterStatus, summary="Replace the live filter")
async def put_filter(
    update: FilterUpdate, runtime: RadarRuntime = Depends(get_runtime)
) -> FilterStatus:
    """Compile and apply a new filter expression.

    An invalid expression is answered with 422 and the radar keeps running
    with a match-all filter.
    """

    compiled = runtime.projector.set_filter(update.expression)
    if compiled.error is not None:
        logger.info("Rejected filter %r: %s", update.expression, compiled.error)
        raise HTTPException(
            status_code=422,
            detail=FilterStatus(
                expression=update.expression, active=False, error=compiled.error
            ).model_dump(),
        )
    return _filter_status(runtime)
