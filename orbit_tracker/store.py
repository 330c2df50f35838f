"""
Satellite store.

The single authoritative mapping from catalog number to SatelliteEntry. It is
owned by the tick loop: only the tick loop writes to it, and everyone else
reads immutable snapshots. Entries are frozen models replaced as a whole, so
a reader can never see half of an update. A snapshot is taken under the same
private lock that apply_tick() holds, so it never shows half of a tick either.
"""

import threading
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict

from orbit_tracker.errors import InvariantViolation
from orbit_tracker.frames import EarthFixedState, ecef_to_presentation
from orbit_tracker.logging_config import get_logger
from orbit_tracker.propagator import InertialState, Vector3
from orbit_tracker.tle_parser import ElementSetRecord

logger = get_logger(__name__)


class EntryStatus(str, Enum):
    PENDING = "pending"  # added, no element set yet
    READY = "ready"
    STALE = "stale"  # element set came from an expired cache entry
    ERROR = "error"


class SatelliteEntry(BaseModel):
    """Everything the tracker knows about one satellite."""

    model_config = ConfigDict(frozen=True)

    norad_id: int
    name: Optional[str] = None
    group: Optional[str] = None
    record: Optional[ElementSetRecord] = None
    record_stale: bool = False
    inertial: Optional[InertialState] = None
    earth_fixed: Optional[EarthFixedState] = None
    status: EntryStatus = EntryStatus.PENDING
    error_kind: Optional[str] = None
    computed_at: Optional[datetime] = None


class ComputedUpdate(BaseModel):
    """Result of propagating one entry for one tick."""

    model_config = ConfigDict(frozen=True)

    norad_id: int
    inertial: Optional[InertialState] = None
    earth_fixed: Optional[EarthFixedState] = None
    status: EntryStatus
    error_kind: Optional[str] = None
    computed_at: Optional[datetime] = None


class SatelliteView(BaseModel):
    """What a drawing consumer needs for one satellite."""

    model_config = ConfigDict(frozen=True)

    position_km: Vector3
    velocity_km_s: Vector3
    status: EntryStatus


class SatelliteSnapshot(Mapping):
    """Read-only copy of the store at one instant."""

    def __init__(self, entries: Dict[int, SatelliteEntry], utc: Optional[datetime] = None):
        self._entries = MappingProxyType(dict(entries))
        self.utc = utc

    def __getitem__(self, norad_id: int) -> SatelliteEntry:
        return self._entries[norad_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def positions(self) -> Dict[int, SatelliteView]:
        """Earth-fixed position, velocity and status of every entry that has them."""
        return {
            norad_id: SatelliteView(
                position_km=entry.earth_fixed.position_km,
                velocity_km_s=entry.earth_fixed.velocity_km_s,
                status=entry.status,
            )
            for norad_id, entry in self._entries.items()
            if entry.earth_fixed is not None
        }

    def presentation(self, scale: float = 1.0) -> Dict[int, Vector3]:
        """Positions remapped into the drawing frame."""
        return {
            norad_id: ecef_to_presentation(view.position_km, scale)
            for norad_id, view in self.positions().items()
        }


class SatelliteStore:
    """
    Keyed satellite registry.

    Args:
        strict: Raise InvariantViolation on a record filed under the wrong
            id instead of logging and re-keying it
    """

    def __init__(self, strict: bool = False):
        self.strict = strict
        self._entries: Dict[int, SatelliteEntry] = {}
        self._lock = threading.Lock()
        self._utc: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, norad_id: object) -> bool:
        return norad_id in self._entries

    def get(self, norad_id: int) -> Optional[SatelliteEntry]:
        return self._entries.get(norad_id)

    def ids(self) -> List[int]:
        return list(self._entries)

    def add_pending(self, norad_id: int, group: Optional[str] = None) -> SatelliteEntry:
        """Track an id before its element set has arrived. Existing entries are kept."""
        with self._lock:
            entry = self._entries.get(norad_id)
            if entry is None:
                entry = SatelliteEntry(norad_id=norad_id, group=group)
                self._entries[norad_id] = entry
            return entry

    def upsert(self, norad_id: int, record: ElementSetRecord, stale: bool = False,
               group: Optional[str] = None) -> SatelliteEntry:
        """
        Insert or replace the element set for a satellite.

        Computed state is kept until the next tick recomputes it.
        """
        if record.norad_id != norad_id:
            message = f"record for {record.norad_id} upserted under id {norad_id}"
            if self.strict:
                raise InvariantViolation(message)
            logger.error("store_invariant_violation", expected=norad_id, actual=record.norad_id)
            norad_id = record.norad_id

        with self._lock:
            previous = self._entries.get(norad_id)
            if previous is None:
                previous = SatelliteEntry(norad_id=norad_id, group=group)
            entry = previous.model_copy(update={
                "name": record.name or previous.name,
                "group": previous.group or group,
                "record": record,
                "record_stale": stale,
                "status": EntryStatus.STALE if stale else EntryStatus.READY,
                "error_kind": None,
            })
            self._entries[norad_id] = entry
            return entry

    def remove(self, norad_id: int) -> bool:
        with self._lock:
            return self._entries.pop(norad_id, None) is not None

    def mark_error(self, norad_id: int, kind: str) -> Optional[SatelliteEntry]:
        """Flag an entry as failed, keeping whatever state it already has."""
        with self._lock:
            entry = self._entries.get(norad_id)
            if entry is None:
                return None
            entry = entry.model_copy(update={"status": EntryStatus.ERROR, "error_kind": kind})
            self._entries[norad_id] = entry
            return entry

    def update_computed(self, norad_id: int, inertial: Optional[InertialState],
                        earth_fixed: Optional[EarthFixedState], status: EntryStatus,
                        error_kind: Optional[str] = None,
                        computed_at: Optional[datetime] = None) -> bool:
        """Replace the computed state of one entry."""
        update = ComputedUpdate(
            norad_id=norad_id, inertial=inertial, earth_fixed=earth_fixed,
            status=status, error_kind=error_kind, computed_at=computed_at,
        )
        with self._lock:
            return self._apply(update)

    def apply_tick(self, updates: Iterable[ComputedUpdate], utc: Optional[datetime] = None) -> int:
        """Apply every update of one tick at once. Returns how many were applied."""
        updates = list(updates)
        with self._lock:
            applied = sum(1 for update in updates if self._apply(update))
            if utc is not None:
                self._utc = utc
        return applied

    def snapshot(self) -> SatelliteSnapshot:
        with self._lock:
            return SatelliteSnapshot(self._entries, utc=self._utc)

    def _apply(self, update: ComputedUpdate) -> bool:
        entry = self._entries.get(update.norad_id)
        if entry is None:
            # Removed since the tick started
            return False

        changes = {"status": update.status, "error_kind": update.error_kind}
        # A failed propagation keeps the last known good state
        if update.inertial is not None and update.earth_fixed is not None:
            changes.update(
                inertial=update.inertial,
                earth_fixed=update.earth_fixed,
                computed_at=update.computed_at,
            )
        self._entries[update.norad_id] = entry.model_copy(update=changes)
        return True
