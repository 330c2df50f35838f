"""
SGP4 Propagation

Advances a validated element set to a target time using the proven sgp4
library and returns the TEME (true equator, mean equinox) inertial state.

The propagator is a pure function of (record, minutes since epoch): a new
Satrec is initialised for every call, so nothing computed for one satellite
or one instant can leak into another. The deep-space resonance integrator in
SGP4 keeps state on the Satrec between calls, which would otherwise make
results depend on call history.

Failures are typed instead of silently producing garbage:
- NUMERICAL_INSTABILITY: elements that drive the SGP4 series expansion toward
  a singularity (eccentricity near 1, retrograde equatorial inclination) or
  any SGP4 error in the 1-4 range or non-finite output
- DECAYED: SGP4 reports the satellite has re-entered
"""

import math
from datetime import datetime
from typing import Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict
from sgp4.api import WGS72, Satrec

from orbit_tracker.config import SECONDS_PER_DAY
from orbit_tracker.errors import PropagationError, PropagationErrorKind
from orbit_tracker.tle_parser import ElementSetRecord

Vector3 = Tuple[float, float, float]

# SGP4 error code meanings
SGP4_ERROR_CODES = {
    0: "No error",
    1: "Mean eccentricity < 0.0 or > 1.0",
    2: "Mean motion < 0.0",
    3: "Perturbed eccentricity < 0.0 or > 1.0",
    4: "Semi-latus rectum < 0.0",
    5: "Satellite has decayed",
    6: "Satellite has decayed (low altitude)",
}

DECAY_ERROR_CODES = (5, 6)

# Margin below e = 1 where the Kepler solution and the long-period terms blow up
ECCENTRICITY_SINGULAR_MARGIN = 1.0e-6

# SGP4 divides by (1 + cos i) in the long-period terms; Vallado guards it at 1.5e-12
INCLINATION_SINGULAR_GUARD = 1.5e-12


class InertialState(BaseModel):
    """TEME position (km) and velocity (km/s)."""

    model_config = ConfigDict(frozen=True)

    position_km: Vector3
    velocity_km_s: Vector3

    def radius_km(self) -> float:
        return float(np.linalg.norm(self.position_km))


def describe_error(error_code: int) -> str:
    """Human-readable meaning of an SGP4 error code."""
    return SGP4_ERROR_CODES.get(error_code, f"Unknown error code {error_code}")


def minutes_since_epoch(utc: datetime, epoch: datetime) -> float:
    """Minutes from the element set epoch to ``utc`` (negative before epoch)."""
    delta = utc - epoch
    return (delta.days * SECONDS_PER_DAY + delta.seconds + delta.microseconds * 1e-6) / 60.0


def propagate(record: ElementSetRecord, tsince_minutes: float) -> InertialState:
    """
    Propagate an element set with SGP4.

    Args:
        record: Validated element set
        tsince_minutes: Time since the record epoch in minutes

    Returns:
        InertialState in the TEME frame

    Raises:
        PropagationError: DECAYED or NUMERICAL_INSTABILITY
    """
    if not math.isfinite(tsince_minutes):
        raise PropagationError(
            PropagationErrorKind.NUMERICAL_INSTABILITY,
            f"non-finite propagation time {tsince_minutes!r}",
        )

    satellite = Satrec.twoline2rv(record.line1, record.line2, WGS72)
    _check_elements(record, satellite)

    error, position, velocity = satellite.sgp4_tsince(tsince_minutes)

    if error != 0:
        kind = (
            PropagationErrorKind.DECAYED
            if error in DECAY_ERROR_CODES
            else PropagationErrorKind.NUMERICAL_INSTABILITY
        )
        raise PropagationError(
            kind,
            f"SGP4 error {error} for {record.norad_id} at t={tsince_minutes:.3f} min: "
            f"{describe_error(error)}",
            sgp4_error=error,
        )

    if not (np.all(np.isfinite(position)) and np.all(np.isfinite(velocity))):
        raise PropagationError(
            PropagationErrorKind.NUMERICAL_INSTABILITY,
            f"non-finite state for {record.norad_id} at t={tsince_minutes:.3f} min",
        )

    return InertialState(
        position_km=(float(position[0]), float(position[1]), float(position[2])),
        velocity_km_s=(float(velocity[0]), float(velocity[1]), float(velocity[2])),
    )


def _check_elements(record: ElementSetRecord, satellite: Satrec) -> None:
    """Reject elements where the SGP4 series expansion is near a singularity."""
    if satellite.error != 0:
        # sgp4init already flagged the mean elements
        raise PropagationError(
            PropagationErrorKind.NUMERICAL_INSTABILITY,
            f"SGP4 initialisation error {satellite.error} for {record.norad_id}: "
            f"{describe_error(satellite.error)}",
            sgp4_error=satellite.error,
        )

    if not 0.0 <= satellite.ecco < 1.0 - ECCENTRICITY_SINGULAR_MARGIN:
        raise PropagationError(
            PropagationErrorKind.NUMERICAL_INSTABILITY,
            f"eccentricity {satellite.ecco} is outside the SGP4 domain",
        )

    if satellite.no_kozai <= 0.0:
        raise PropagationError(
            PropagationErrorKind.NUMERICAL_INSTABILITY,
            f"mean motion {satellite.no_kozai} rad/min is not positive",
        )

    if abs(1.0 + math.cos(satellite.inclo)) < INCLINATION_SINGULAR_GUARD:
        raise PropagationError(
            PropagationErrorKind.NUMERICAL_INSTABILITY,
            f"inclination {math.degrees(satellite.inclo):.4f} deg is at the retrograde equatorial singularity",
        )
