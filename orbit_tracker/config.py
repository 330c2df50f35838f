"""
Tracker Configuration and Constants

This module contains the physical constants used by the frame code, the
registry of known CelesTrak groups, and the runtime configuration model for
the tracker. SGP4 itself runs with the WGS-72 constants built into the sgp4
library.

Configuration:
    Every setting has an environment variable override so the tracker can be
    tuned without code changes:

    - ORBIT_TRACKER_CELESTRAK_BASE: CelesTrak base URL
    - ORBIT_TRACKER_FETCH_TIMEOUT: network timeout in seconds
    - ORBIT_TRACKER_CACHE_DIR: cache root (platform default when unset)
    - ORBIT_TRACKER_CACHE_DAYS: epoch age after which a cached TLE is stale
    - ORBIT_TRACKER_STRICT: fail fast on store invariant violations

References:
    Vallado, D. A., Crawford, P., Hujsak, R., & Kelso, T. S. (2006).
    Revisiting Spacetrack Report #3. AIAA 2006-6753.
"""

import math
import os
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Earth rotation rate used for the TEME -> ECEF velocity term (rad/s)
EARTH_ROTATION_RATE: float = 7.2921159e-5

SECONDS_PER_DAY: float = 86400.0

# Known CelesTrak groups (GROUP= query value -> label)
SATELLITE_GROUPS: Dict[str, str] = {
    "stations": "Space Stations",
    "active": "Active Satellites",
    "geo": "Active Geosynchronous",
    "amateur": "Amateur Radio",
    "beidou": "Beidou",
    "cubesat": "CubeSats",
    "resource": "Earth Resources",
    "education": "Education",
    "engineering": "Engineering",
    "galileo": "Galileo",
    "geodetic": "Geodetic",
    "glo-ops": "GLONASS Operational",
    "globalstar": "Globalstar",
    "goes": "GOES",
    "gps-ops": "GPS Operational",
    "iridium-NEXT": "Iridium NEXT",
    "noaa": "NOAA",
    "oneweb": "OneWeb",
    "orbcomm": "Orbcomm",
    "planet": "Planet",
    "science": "Space & Earth Science",
    "starlink": "Starlink",
    "weather": "Weather",
}


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class TrackerConfig(BaseModel):
    """Runtime configuration for the tracking core."""

    model_config = ConfigDict(frozen=True)

    celestrak_base: str = Field(
        default_factory=lambda: os.getenv("ORBIT_TRACKER_CELESTRAK_BASE", "https://celestrak.org")
    )
    fetch_timeout_s: float = Field(
        default_factory=lambda: float(os.getenv("ORBIT_TRACKER_FETCH_TIMEOUT", "10"))
    )
    fetch_workers: int = Field(
        default_factory=lambda: int(os.getenv("ORBIT_TRACKER_FETCH_WORKERS", "4"))
    )
    fetch_queue_size: int = Field(
        default_factory=lambda: int(os.getenv("ORBIT_TRACKER_QUEUE_SIZE", "256"))
    )

    cache_enabled: bool = Field(
        default_factory=lambda: _env_bool("ORBIT_TRACKER_CACHE_ENABLED", True)
    )
    cache_dir: Optional[str] = Field(
        default_factory=lambda: os.getenv("ORBIT_TRACKER_CACHE_DIR")
    )
    cache_expiration_days: float = Field(
        default_factory=lambda: float(os.getenv("ORBIT_TRACKER_CACHE_DAYS", "7"))
    )

    propagation_workers: int = Field(
        default_factory=lambda: int(os.getenv("ORBIT_TRACKER_PROPAGATION_WORKERS", "0"))
    )
    time_factor: float = Field(
        default_factory=lambda: float(os.getenv("ORBIT_TRACKER_TIME_FACTOR", "1.0"))
    )
    dut1_seconds: float = Field(
        default_factory=lambda: float(os.getenv("ORBIT_TRACKER_DUT1", "0.0"))
    )
    presentation_scale: float = Field(
        default_factory=lambda: float(os.getenv("ORBIT_TRACKER_PRESENTATION_SCALE", "1.0"))
    )

    strict_invariants: bool = Field(
        default_factory=lambda: _env_bool("ORBIT_TRACKER_STRICT", False)
    )

    @field_validator("fetch_timeout_s")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if not math.isfinite(value) or value <= 0:
            raise ValueError("fetch timeout must be a positive number of seconds")
        return value

    @field_validator("fetch_workers", "fetch_queue_size")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("propagation_workers")
    @classmethod
    def _non_negative_workers(cls, value: int) -> int:
        if value < 0:
            raise ValueError("propagation workers cannot be negative")
        return value

    @field_validator("cache_expiration_days")
    @classmethod
    def _non_negative_days(cls, value: float) -> float:
        if not math.isfinite(value) or value < 0:
            raise ValueError("cache expiration must be a non-negative number of days")
        return value

    @field_validator("time_factor", "dut1_seconds", "presentation_scale")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("must be finite")
        return value

    def group_url(self, group: str) -> str:
        """CelesTrak GP endpoint for a named group in TLE format."""
        return f"{self.celestrak_base}/NORAD/elements/gp.php?GROUP={group}&FORMAT=TLE"

    def catalog_url(self, norad_id: int) -> str:
        """CelesTrak GP endpoint for one catalog number in TLE format."""
        return f"{self.celestrak_base}/NORAD/elements/gp.php?CATNR={norad_id}&FORMAT=TLE"
