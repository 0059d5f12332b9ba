"""Configuration settings for the SkyRadar core."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from skyradar.domain import SiteLocation

logger = logging.getLogger("skyradar.config")

MIN_REFRESH_SECS = 0.2
MAX_UI_FPS = 120


def _get_bool(env_var: str, default: bool = False) -> bool:
    """Parse an environment variable into a boolean with a default."""

    value = os.getenv(env_var)
    if value is None:
        return default

    return value.lower() in {"1", "true", "yes", "on"}


def _get_optional_float(env_var: str) -> float | None:
    value = os.getenv(env_var)
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning("Ignoring non-numeric value for %s: %r", env_var, value)
        return None


@dataclass
class Settings:
    """Core configuration loaded from environment variables."""

    skyradar_env: str = os.getenv("SKYRADAR_ENV", "local")
    log_level: str = os.getenv("SKYRADAR_LOG_LEVEL", "INFO")

    # Feed polling
    feed_url: str = os.getenv("SKYRADAR_FEED_URL", "http://adsb.local/data/aircraft.json")
    feed_timeout: float = float(os.getenv("SKYRADAR_FEED_TIMEOUT", "5.0"))
    refresh_secs: float = float(os.getenv("SKYRADAR_REFRESH_SECS", "2.0"))

    # Observing site
    site_lat: float | None = _get_optional_float("SKYRADAR_SITE_LAT")
    site_lon: float | None = _get_optional_float("SKYRADAR_SITE_LON")
    site_alt_m: float = float(os.getenv("SKYRADAR_SITE_ALT_M", "0.0"))

    # Aircraft store
    stale_secs: float = float(os.getenv("SKYRADAR_STALE_SECS", "60"))
    evict_horizon_secs: float = float(os.getenv("SKYRADAR_EVICT_HORIZON_SECS", "600"))
    evict_interval_secs: float = float(os.getenv("SKYRADAR_EVICT_INTERVAL_SECS", "30"))
    trail_len: int = int(os.getenv("SKYRADAR_TRAIL_LEN", "6"))
    rate_window_ms: float = float(os.getenv("SKYRADAR_RATE_WINDOW_MS", "300"))
    rate_min_secs: float = float(os.getenv("SKYRADAR_RATE_MIN_SECS", "0.25"))
    trend_window_ms: float = float(os.getenv("SKYRADAR_TREND_WINDOW_MS", "2000"))
    trend_deadband_fpm: float = float(os.getenv("SKYRADAR_TREND_DEADBAND_FPM", "250"))
    msg_rate_window_secs: float = float(os.getenv("SKYRADAR_MSG_RATE_WINDOW_SECS", "10"))

    # Display gating
    low_nic: int = int(os.getenv("SKYRADAR_LOW_NIC", "5"))
    low_nac: int = int(os.getenv("SKYRADAR_LOW_NAC", "8"))
    hide_stale: bool = _get_bool("SKYRADAR_HIDE_STALE", False)
    hide_low_quality: bool = _get_bool("SKYRADAR_HIDE_LOW_QUALITY", False)
    filter_expr: str = os.getenv("SKYRADAR_FILTER", "")
    sort_mode: str = os.getenv("SKYRADAR_SORT", "last_seen")

    # Proximity notifications
    notify_radius_mi: float = float(os.getenv("SKYRADAR_NOTIFY_RADIUS_MI", "10.0"))
    overpass_mi: float = float(os.getenv("SKYRADAR_OVERPASS_MI", "0.5"))
    notify_cooldown_secs: float = float(os.getenv("SKYRADAR_NOTIFY_COOLDOWN_SECS", "120"))
    closing_rate_kt: float = float(os.getenv("SKYRADAR_CLOSING_RATE_KT", "150"))
    notification_buffer: int = int(os.getenv("SKYRADAR_NOTIFICATION_BUFFER", "10"))

    # Route enrichment
    route_enabled: bool = _get_bool("SKYRADAR_ROUTE_ENABLED", True)
    route_base: str = os.getenv("SKYRADAR_ROUTE_BASE", "https://api.airplanes.live")
    route_mode: str = os.getenv("SKYRADAR_ROUTE_MODE", "routeset")
    route_path: str = os.getenv("SKYRADAR_ROUTE_PATH", "tar1090/data/routes.json")
    route_ttl_secs: float = float(os.getenv("SKYRADAR_ROUTE_TTL_SECS", "3600"))
    route_refresh_secs: float = float(os.getenv("SKYRADAR_ROUTE_REFRESH_SECS", "15"))
    route_batch: int = int(os.getenv("SKYRADAR_ROUTE_BATCH", "20"))
    route_timeout_secs: float = float(os.getenv("SKYRADAR_ROUTE_TIMEOUT_SECS", "6"))
    route_backoff_secs: float = float(os.getenv("SKYRADAR_ROUTE_BACKOFF_SECS", "5"))
    route_backoff_max_secs: float = float(os.getenv("SKYRADAR_ROUTE_BACKOFF_MAX_SECS", "300"))

    # Radar projection and render cadence
    radar_range_nm: float = float(os.getenv("SKYRADAR_RADAR_RANGE_NM", "200.0"))
    radar_aspect: float = float(os.getenv("SKYRADAR_RADAR_ASPECT", "1.0"))
    smooth_mode: bool = _get_bool("SKYRADAR_SMOOTH_MODE", True)
    ui_fps: int = int(os.getenv("SKYRADAR_UI_FPS", "10"))

    def __post_init__(self) -> None:
        if self.refresh_secs < MIN_REFRESH_SECS:
            logger.warning(
                "refresh_secs=%s below floor; clamping to %s",
                self.refresh_secs,
                MIN_REFRESH_SECS,
            )
            self.refresh_secs = MIN_REFRESH_SECS
        self.ui_fps = min(max(self.ui_fps, 1), MAX_UI_FPS)
        self.trail_len = max(self.trail_len, 1)
        self.stale_secs = max(self.stale_secs, 1)
        self.route_batch = max(self.route_batch, 1)
        self.notification_buffer = max(self.notification_buffer, 1)

    @property
    def frame_interval(self) -> float:
        """Seconds between UI render ticks."""
        return 1.0 / self.ui_fps

    def site(self) -> SiteLocation | None:
        if self.site_lat is None or self.site_lon is None:
            return None
        return SiteLocation(lat=self.site_lat, lon=self.site_lon, alt_m=self.site_alt_m)


settings = Settings()

__all__ = ["settings", "Settings", "MIN_REFRESH_SECS", "MAX_UI_FPS"]
