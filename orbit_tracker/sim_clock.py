"""
Simulation clock.

Maps wall-clock time onto simulated UTC: every tick the caller reports how
much wall time has passed and the clock accumulates ``wall_delta * factor``
simulated seconds on top of a reference epoch. Elapsed simulated time only
moves forward; ``jump_to`` and ``reset`` are the explicit ways to move it
anywhere else.
"""

import math
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict

from orbit_tracker.errors import ClockError
from orbit_tracker.logging_config import get_logger

logger = get_logger(__name__)


class SimulationTimeView(BaseModel):
    """Read-only snapshot of the simulation time."""

    model_config = ConfigDict(frozen=True)

    reference_epoch: datetime
    elapsed_s: float
    factor: float
    paused: bool

    @property
    def current_utc(self) -> datetime:
        return self.reference_epoch + timedelta(seconds=self.elapsed_s)


class SimulationClock:
    """
    Accelerated simulation time anchored at a reference epoch.

    Args:
        reference_epoch: Simulated UTC at elapsed = 0 (defaults to now)
        factor: Simulated seconds per wall-clock second
        now: Source of wall UTC used by reset() and the default epoch
    """

    def __init__(self, reference_epoch: Optional[datetime] = None, factor: float = 1.0,
                 now: Optional[Callable[[], datetime]] = None):
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._reference_epoch = _as_utc(reference_epoch or self._now())
        self._elapsed = 0.0
        self._factor = 1.0
        self._paused = False
        self.set_factor(factor)

    @property
    def factor(self) -> float:
        return self._factor

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def elapsed(self) -> float:
        return self._elapsed

    def current_utc(self) -> datetime:
        return self.view().current_utc

    def advance(self, wall_delta_s: float) -> float:
        """
        Accumulate one tick of wall time.

        Returns:
            Simulated seconds added (0.0 while paused)

        Raises:
            ClockError: negative or non-finite wall delta
        """
        if not math.isfinite(wall_delta_s) or wall_delta_s < 0:
            raise ClockError(f"wall delta must be a non-negative finite number, got {wall_delta_s!r}")

        with self._lock:
            if self._paused:
                return 0.0
            simulated = wall_delta_s * self._factor
            self._elapsed += simulated
            return simulated

    def set_factor(self, factor: float) -> None:
        """
        Change the acceleration factor for future ticks.

        Raises:
            ClockError: non-finite or negative factor; the previous factor
                stays in effect
        """
        if not math.isfinite(factor):
            raise ClockError(f"acceleration factor must be finite, got {factor!r}")
        if factor < 0:
            raise ClockError(f"negative acceleration factor {factor!r}; use jump_to to move time backward")

        with self._lock:
            self._factor = float(factor)
        logger.debug("clock_factor_set", factor=factor)

    def pause(self) -> None:
        with self._lock:
            self._paused = True

    def resume(self) -> None:
        with self._lock:
            self._paused = False

    def jump_to(self, utc: datetime) -> None:
        """Set simulated time to ``utc``; the only way to move time backward."""
        utc = _as_utc(utc)
        with self._lock:
            self._elapsed = (utc - self._reference_epoch).total_seconds()
        logger.info("clock_jump", utc=utc.isoformat())

    def reset(self, reference_epoch: Optional[datetime] = None) -> None:
        """Re-anchor at ``reference_epoch`` (default: now) with zero elapsed time."""
        epoch = _as_utc(reference_epoch or self._now())
        with self._lock:
            self._reference_epoch = epoch
            self._elapsed = 0.0
        logger.info("clock_reset", reference_epoch=epoch.isoformat())

    def view(self) -> SimulationTimeView:
        with self._lock:
            return SimulationTimeView(
                reference_epoch=self._reference_epoch,
                elapsed_s=self._elapsed,
                factor=self._factor,
                paused=self._paused,
            )


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
