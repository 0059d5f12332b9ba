"""API routers for the SkyRadar service."""

from fastapi import APIRouter

from .health import router as health_router
from .radar import router as radar_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(radar_router)

__all__ = ["api_router"]
