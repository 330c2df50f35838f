"""
Reference frame transformations.

Two independent mappings:
- TEME (inertial) -> ECEF (Earth-fixed): rotation about Z by the Greenwich
  Mean Sidereal Time angle. gmst_rad() is the only place Earth orientation
  is computed.
- ECEF -> presentation frame: fixed axis reassignment and unit scaling for
  drawing consumers. Nothing in the core reads presentation coordinates back.

GMST uses the IAU 1982 polynomial (Vallado, Fundamentals of Astrodynamics,
eq. 3-47) with UT1 = UTC + DUT1.
"""

import math
from datetime import datetime, timezone
from typing import Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict

from orbit_tracker.config import EARTH_ROTATION_RATE, SECONDS_PER_DAY
from orbit_tracker.propagator import InertialState, Vector3

J2000_JD = 2451545.0
DAYS_PER_JULIAN_CENTURY = 36525.0
TWO_PI = 2.0 * math.pi

# WGS-84 ellipsoid for geodetic output
WGS84_A_KM = 6378.137
WGS84_F = 1.0 / 298.257223563


class EarthFixedState(BaseModel):
    """ECEF position (km) and velocity (km/s)."""

    model_config = ConfigDict(frozen=True)

    position_km: Vector3
    velocity_km_s: Vector3

    def geodetic(self) -> Tuple[float, float, float]:
        """Sub-satellite latitude (deg), longitude (deg) and altitude (km)."""
        return ecef_to_geodetic(np.array(self.position_km))


def julian_date(dt: datetime) -> Tuple[float, float]:
    """
    Convert datetime to Julian date and fraction.

    Args:
        dt: Datetime object (naive values are taken as UTC)

    Returns:
        Tuple of (julian_day, fraction) where julian_day ends in .5
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)

    year, month, day = dt.year, dt.month, dt.day

    # Julian day calculation
    if month <= 2:
        year -= 1
        month += 12

    a = year // 100
    b = 2 - a + a // 4

    jd = math.floor(365.25 * (year + 4716)) + math.floor(30.6001 * (month + 1)) + day + b - 1524.5

    seconds = dt.hour * 3600.0 + dt.minute * 60.0 + dt.second + dt.microsecond * 1e-6
    fr = seconds / SECONDS_PER_DAY

    return float(jd), fr


def gmst_rad(dt: datetime, dut1_seconds: float = 0.0) -> float:
    """
    Greenwich Mean Sidereal Time in radians, wrapped to [0, 2π).

    Args:
        dt: UTC instant
        dut1_seconds: UT1 - UTC in seconds

    Returns:
        GMST angle in radians
    """
    jd, fr = julian_date(dt)
    t = ((jd - J2000_JD) + fr + dut1_seconds / SECONDS_PER_DAY) / DAYS_PER_JULIAN_CENTURY

    gmst_sec = (
        67310.54841
        + (876600.0 * 3600.0 + 8640184.812866) * t
        + 0.093104 * t * t
        - 6.2e-6 * t * t * t
    )

    # Python's % keeps the sign of the divisor, so the result is in [0, 86400)
    return (gmst_sec % SECONDS_PER_DAY) * (TWO_PI / SECONDS_PER_DAY)


def rotate_teme_to_ecef(r_teme: np.ndarray, v_teme: np.ndarray,
                        gmst: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Rotate a TEME state by -GMST about Z.

    Args:
        r_teme: Position vector [x, y, z] (km)
        v_teme: Velocity vector [vx, vy, vz] (km/s)
        gmst: Sidereal angle (rad)

    Returns:
        Tuple of (r_ecef, v_ecef)
    """
    cos_g = math.cos(gmst)
    sin_g = math.sin(gmst)

    r_ecef = np.array([
        cos_g * r_teme[0] + sin_g * r_teme[1],
        -sin_g * r_teme[0] + cos_g * r_teme[1],
        r_teme[2],
    ])

    # Earth-fixed velocity removes the frame rotation: v = R v_teme - w x r_ecef
    v_ecef = np.array([
        cos_g * v_teme[0] + sin_g * v_teme[1] + EARTH_ROTATION_RATE * r_ecef[1],
        -sin_g * v_teme[0] + cos_g * v_teme[1] - EARTH_ROTATION_RATE * r_ecef[0],
        v_teme[2],
    ])

    return r_ecef, v_ecef


def teme_to_ecef(state: InertialState, dt: datetime, dut1_seconds: float = 0.0) -> EarthFixedState:
    """Earth-fixed state of an inertial state at instant ``dt``."""
    r_ecef, v_ecef = rotate_teme_to_ecef(
        np.array(state.position_km), np.array(state.velocity_km_s), gmst_rad(dt, dut1_seconds)
    )
    return EarthFixedState(
        position_km=_as_vector(r_ecef),
        velocity_km_s=_as_vector(v_ecef),
    )


def ecef_to_presentation(vector: Vector3, scale: float = 1.0) -> Vector3:
    """Presentation axes: (x, y, z) = (ECEF.y, ECEF.z, ECEF.x) * scale."""
    return (vector[1] * scale, vector[2] * scale, vector[0] * scale)


def ecef_to_geodetic(r_ecef: np.ndarray) -> Tuple[float, float, float]:
    """
    Geodetic latitude (deg), longitude (deg) and height (km) on WGS-84.

    Latitude is found by fixed-point iteration on
    tan(lat) = (z + e^2 N sin(lat)) / p, which contracts by roughly e^2 per
    step. Height uses the closed form

        h = p cos(lat) + z sin(lat) - a sqrt(1 - e^2 sin^2(lat))

    which holds at the poles as well as the equator.
    """
    x, y, z = (float(c) for c in r_ecef)
    e2 = WGS84_F * (2.0 - WGS84_F)
    p = math.hypot(x, y)

    lat = math.atan2(z, p * (1.0 - e2))
    for _ in range(10):
        n = WGS84_A_KM / math.sqrt(1.0 - e2 * math.sin(lat) ** 2)
        next_lat = math.atan2(z + e2 * n * math.sin(lat), p)
        converged = abs(next_lat - lat) < 1e-14
        lat = next_lat
        if converged:
            break

    sin_lat = math.sin(lat)
    height = p * math.cos(lat) + z * sin_lat - WGS84_A_KM * math.sqrt(1.0 - e2 * sin_lat ** 2)
    return math.degrees(lat), math.degrees(math.atan2(y, x)), height


def _as_vector(values: np.ndarray) -> Vector3:
    return (float(values[0]), float(values[1]), float(values[2]))
