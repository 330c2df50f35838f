"""
Tracker: the per-tick update loop.

Owns one SatelliteStore, one SimulationClock and one Fetcher and wires them
together. Selection requests (add, add_group, refresh) are sent to the
fetcher tagged with a generation number; tick() then

    1. drains the fetch results available right now, drops every result
       whose generation is older than the newest request issued for its key,
       and merges the rest into the store; a record is also skipped when a
       newer generation already reached that satellite through another key
       (a group and a single id can both carry it),
    2. advances the simulation clock,
    3. propagates every satellite that has an element set (optionally on a
       thread pool), waits for all of them, and applies the whole tick to
       the store in one step.

A failure for one satellite is recorded on its entry and never stops the
tick for the others.
"""

import itertools
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Dict, List, Optional, Set

from orbit_tracker.config import TrackerConfig
from orbit_tracker.disk_cache import CacheStats, DiskCache
from orbit_tracker.errors import PropagationError
from orbit_tracker.fetcher import Fetcher, FetchKey, FetchResult
from orbit_tracker.frames import teme_to_ecef
from orbit_tracker.logging_config import get_logger
from orbit_tracker.propagator import minutes_since_epoch, propagate
from orbit_tracker.sim_clock import SimulationClock, SimulationTimeView
from orbit_tracker.store import ComputedUpdate, EntryStatus, SatelliteEntry, SatelliteSnapshot, SatelliteStore

logger = get_logger(__name__)


class Tracker:
    """
    Real-time satellite tracking core.

    Usage:
        with Tracker() as tracker:
            tracker.add(25544)
            tracker.add_group("stations")
            ...
            snapshot = tracker.tick(wall_delta_s)
            for norad_id, view in snapshot.positions().items():
                ...
    """

    def __init__(self, config: Optional[TrackerConfig] = None,
                 store: Optional[SatelliteStore] = None,
                 clock: Optional[SimulationClock] = None,
                 fetcher: Optional[Fetcher] = None,
                 cache: Optional[DiskCache] = None):
        self.config = config or TrackerConfig()
        self.store = store if store is not None else SatelliteStore(strict=self.config.strict_invariants)
        self.clock = clock if clock is not None else SimulationClock(factor=self.config.time_factor)
        if fetcher is None:
            fetcher = Fetcher(self.config, cache or DiskCache.from_config(self.config))
        self.fetcher = fetcher

        self._generation = itertools.count(1)
        self._latest: Dict[FetchKey, int] = {}
        # Newest generation merged into (or removed from) each satellite
        self._applied: Dict[int, int] = {}
        self._groups: Set[str] = set()
        self._in_flight: List[Future] = []
        self._propagation_pool = (
            ThreadPoolExecutor(max_workers=self.config.propagation_workers, thread_name_prefix="propagate")
            if self.config.propagation_workers > 0
            else None
        )

    def __enter__(self) -> "Tracker":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Selection requests

    def add(self, norad_id: int) -> int:
        """Start tracking a satellite. Returns the generation of the request."""
        norad_id = int(norad_id)
        self.store.add_pending(norad_id)
        return self._request(norad_id)

    def add_group(self, group: str) -> int:
        """Start tracking every member of a CelesTrak group."""
        self._groups.add(group)
        return self._request(group)

    def refresh(self, key: Optional[FetchKey] = None) -> List[int]:
        """Re-request one satellite or group, or everything tracked when ``key`` is None."""
        if key is not None:
            return [self._request(key)]
        generations = [self._request(group) for group in sorted(self._groups)]
        grouped = {entry.norad_id for entry in self.store.snapshot().values() if entry.group}
        generations.extend(self._request(norad_id) for norad_id in self.store.ids() if norad_id not in grouped)
        return generations

    def remove(self, norad_id: int) -> bool:
        """
        Stop tracking a satellite.

        In-flight results for it are dropped when they arrive. The cache
        entry is left alone.
        """
        norad_id = int(norad_id)
        generation = next(self._generation)
        self._latest[norad_id] = generation
        self._applied[norad_id] = generation
        removed = self.store.remove(norad_id)
        if removed:
            logger.info("satellite_removed", norad_id=norad_id)
        return removed

    def wait_for_fetches(self, timeout: Optional[float] = None) -> bool:
        """Block until every issued request has posted its result."""
        pending = [f for f in self._in_flight if not f.done()]
        if pending:
            _, not_done = wait(pending, timeout=timeout)
            if not_done:
                return False
        self._in_flight = []
        return True

    # Update domain

    def tick(self, wall_delta_s: float) -> SatelliteSnapshot:
        """Run one update cycle and return the resulting snapshot."""
        for result in self.fetcher.drain():
            self.merge_result(result)

        self.clock.advance(wall_delta_s)
        utc = self.clock.current_utc()

        entries = [entry for entry in self.store.snapshot().values() if entry.record is not None]
        if self._propagation_pool is not None and len(entries) > 1:
            # map() returns only when every entry is done
            updates = list(self._propagation_pool.map(lambda e: self._compute(e, utc), entries))
        else:
            updates = [self._compute(entry, utc) for entry in entries]

        self.store.apply_tick(updates, utc=utc)
        return self.store.snapshot()

    def merge_result(self, result: FetchResult) -> bool:
        """
        Merge one fetch result into the store.

        Returns False when the result was superseded by a newer request, or
        when a single-satellite result finds its satellite untracked or
        already updated by a newer generation.
        """
        latest = self._latest.get(result.key, 0)
        if result.generation < latest:
            logger.debug("fetch_result_superseded", key=result.key,
                         generation=result.generation, latest=latest)
            return False

        if result.is_group:
            self._merge_group(result)
            return True
        return self._merge_satellite(result)

    def snapshot(self) -> SatelliteSnapshot:
        return self.store.snapshot()

    def time(self) -> SimulationTimeView:
        return self.clock.view()

    def cache_stats(self) -> CacheStats:
        return self.fetcher.cache.stats()

    def close(self) -> None:
        self.fetcher.shutdown(wait=False)
        if self._propagation_pool is not None:
            self._propagation_pool.shutdown(wait=True)

    def _request(self, key: FetchKey) -> int:
        generation = next(self._generation)
        self._latest[key] = generation
        self._in_flight = [f for f in self._in_flight if not f.done()]
        self._in_flight.append(self.fetcher.request(key, generation))
        logger.debug("fetch_requested", key=key, generation=generation)
        return generation

    def _merge_satellite(self, result: FetchResult) -> bool:
        norad_id = int(result.key)
        entry = self.store.get(norad_id)
        if entry is None:
            logger.debug("fetch_result_untracked", norad_id=norad_id)
            return False
        if self._superseded(norad_id, result.generation):
            return False

        if result.records:
            record = result.records[-1]
            self.store.upsert(norad_id, record, stale=result.is_stale(record.norad_id))
            self._applied[norad_id] = result.generation
            if result.error is not None:
                logger.info("tle_merged_from_cache", norad_id=norad_id,
                            error=result.error.value, stale=result.stale)
            return True

        if result.error is None:
            return True
        if entry.record is None:
            self.store.mark_error(norad_id, result.error.value)
            self._applied[norad_id] = result.generation
        else:
            # The element set already held is still the best available
            logger.warning("refresh_failed_keeping_record", norad_id=norad_id, error=result.error.value)
        return True

    def _merge_group(self, result: FetchResult) -> None:
        group = str(result.key)
        merged = 0
        for record in result.records:
            if self._superseded(record.norad_id, result.generation):
                continue
            self.store.upsert(record.norad_id, record,
                              stale=result.is_stale(record.norad_id), group=group)
            self._applied[record.norad_id] = result.generation
            merged += 1

        if result.error is not None:
            logger.warning("group_fetch_error", group=group, error=result.error.value,
                           status=result.http_status, fallback_records=merged)
        else:
            logger.info("group_merged", group=group, count=merged, rejected=result.rejected)

    def _superseded(self, norad_id: int, generation: int) -> bool:
        applied = self._applied.get(norad_id, 0)
        if generation < applied:
            logger.debug("satellite_update_superseded", norad_id=norad_id,
                         generation=generation, applied=applied)
            return True
        return False

    def _compute(self, entry: SatelliteEntry, utc: datetime) -> ComputedUpdate:
        record = entry.record
        try:
            inertial = propagate(record, minutes_since_epoch(utc, record.epoch))
        except PropagationError as e:
            logger.warning("propagation_failed", norad_id=entry.norad_id,
                           kind=e.kind.value, sgp4_error=e.sgp4_error)
            return ComputedUpdate(norad_id=entry.norad_id, status=EntryStatus.ERROR, error_kind=e.kind.value)

        earth_fixed = teme_to_ecef(inertial, utc, self.config.dut1_seconds)
        return ComputedUpdate(
            norad_id=entry.norad_id,
            inertial=inertial,
            earth_fixed=earth_fixed,
            status=EntryStatus.STALE if entry.record_stale else EntryStatus.READY,
            computed_at=utc,
        )
