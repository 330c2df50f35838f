"""
TLE disk cache.

One JSON file per satellite under the cache root holding the two raw lines
plus a derived epoch header, and one manifest per group under ``groups/``.
Files are written atomically (temporary file in the same directory, fsync,
rename) so an interrupted write never leaves a partial entry, and each file
can be deleted on its own without affecting the others.

Freshness is judged on the element set epoch, not on the write time: an
entry is fresh while ``now - epoch`` is below the configured threshold.
Expired entries are still served by ``fallback()`` when nothing fresher can
be obtained.
"""

import os
import re
import sys
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from orbit_tracker.errors import CacheError, ParseError
from orbit_tracker.logging_config import get_logger
from orbit_tracker.tle_parser import ElementSetRecord, TLEParser

logger = get_logger(__name__)

CACHE_SUBDIR = os.path.join("orbit_tracker", "tle")
GROUPS_SUBDIR = "groups"

_GROUP_NAME_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def default_cache_dir() -> Path:
    """Platform cache root for TLE files."""
    if sys.platform.startswith("win"):
        base = os.getenv("LOCALAPPDATA") or os.path.join(os.path.expanduser("~"), "AppData", "Local")
    elif sys.platform == "darwin":
        base = os.path.join(os.path.expanduser("~"), "Library", "Caches")
    else:
        base = os.getenv("XDG_CACHE_HOME") or os.path.join(os.path.expanduser("~"), ".cache")
    return Path(base) / CACHE_SUBDIR


class CacheEntry(BaseModel):
    """On-disk representation of one cached element set."""

    model_config = ConfigDict(frozen=True)

    norad_id: int
    name: Optional[str] = None
    line1: str
    line2: str
    epoch: datetime
    cached_at: datetime

    @classmethod
    def from_record(cls, record: ElementSetRecord, cached_at: datetime) -> "CacheEntry":
        return cls(
            norad_id=record.norad_id,
            name=record.name,
            line1=record.line1,
            line2=record.line2,
            epoch=record.epoch,
            cached_at=cached_at,
        )

    def age(self, now: datetime) -> timedelta:
        return now - self.epoch


class CacheLookup(BaseModel):
    """Result of reading one entry: the entry, its re-validated record and epoch age."""

    model_config = ConfigDict(frozen=True)

    entry: CacheEntry
    record: ElementSetRecord
    age: timedelta
    stale: bool


class GroupManifest(BaseModel):
    model_config = ConfigDict(frozen=True)

    group: str
    norad_ids: List[int]
    cached_at: datetime


class CacheStats(BaseModel):
    """Cache diagnostics."""

    model_config = ConfigDict(frozen=True)

    hits: int = 0
    misses: int = 0
    stale_fallbacks: int = 0


class DiskCache:
    """
    File-per-satellite TLE cache.

    Safe to use from the fetch worker threads: files are replaced atomically
    and the diagnostic counters are guarded by a lock.
    """

    def __init__(self, root: Optional[Union[str, Path]] = None, expiration_days: float = 7.0,
                 enabled: bool = True, clock: Optional[Callable[[], datetime]] = None):
        self.root = Path(root) if root is not None else default_cache_dir()
        self.expiration = timedelta(days=expiration_days)
        self.enabled = enabled
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._parser = TLEParser()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._stale_fallbacks = 0

    @classmethod
    def from_config(cls, config) -> "DiskCache":
        return cls(
            root=config.cache_dir,
            expiration_days=config.cache_expiration_days,
            enabled=config.cache_enabled,
        )

    def path_for(self, norad_id: int) -> Path:
        return self.root / f"{int(norad_id)}.json"

    def group_path(self, group: str) -> Path:
        return self.root / GROUPS_SUBDIR / f"{_GROUP_NAME_UNSAFE.sub('_', group)}.json"

    def lookup(self, norad_id: int) -> Optional[CacheLookup]:
        """
        Read the entry for a satellite, tagged stale when expired.

        A fresh entry counts as a hit; an absent, corrupt or expired entry
        counts as a miss.
        """
        found = self._read(norad_id)
        with self._lock:
            if found is not None and not found.stale:
                self._hits += 1
            else:
                self._misses += 1
        return found

    def fallback(self, norad_id: int) -> Optional[CacheLookup]:
        """Entry regardless of age, for use when no fresher data is obtainable."""
        found = self._read(norad_id)
        if found is not None and found.stale:
            with self._lock:
                self._stale_fallbacks += 1
            logger.warning(
                "cache_stale_fallback",
                norad_id=norad_id,
                age_days=round(found.age.total_seconds() / 86400.0, 2),
            )
        return found

    def store(self, norad_id: int, record: ElementSetRecord) -> Optional[Path]:
        """
        Persist a record, replacing any prior entry for that satellite.

        Raises:
            CacheError: the record belongs to another satellite or the
                file could not be written
        """
        if record.norad_id != norad_id:
            raise CacheError(f"record {record.norad_id} cannot be cached under id {norad_id}")
        if not self.enabled:
            return None

        entry = CacheEntry.from_record(record, cached_at=self._clock())
        path = self.path_for(norad_id)
        self._write_atomic(path, entry.model_dump_json(indent=2))
        logger.debug("cache_stored", norad_id=norad_id, path=str(path))
        return path

    def remove(self, norad_id: int) -> bool:
        """Delete one entry. Other entries are untouched."""
        try:
            self.path_for(norad_id).unlink()
        except FileNotFoundError:
            return False
        return True

    def store_group(self, group: str, norad_ids: List[int]) -> Optional[Path]:
        """Record the identifiers last seen in a group."""
        if not self.enabled:
            return None
        manifest = GroupManifest(group=group, norad_ids=sorted(set(norad_ids)), cached_at=self._clock())
        path = self.group_path(group)
        self._write_atomic(path, manifest.model_dump_json(indent=2))
        return path

    def group_members(self, group: str) -> List[int]:
        """Identifiers from the group manifest, empty when unknown or unreadable."""
        if not self.enabled:
            return []
        path = self.group_path(group)
        try:
            manifest = GroupManifest.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            logger.warning("cache_group_unreadable", group=group, error=str(e))
            return []
        return list(manifest.norad_ids)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(hits=self._hits, misses=self._misses, stale_fallbacks=self._stale_fallbacks)

    def _read(self, norad_id: int) -> Optional[CacheLookup]:
        if not self.enabled:
            return None

        path = self.path_for(norad_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("cache_unreadable", norad_id=norad_id, error=str(e))
            return None

        try:
            entry = CacheEntry.model_validate_json(raw)
            # Lines are re-validated so a damaged file can never produce a record
            record = self._parser.parse(entry.line1, entry.line2, entry.name)
        except (ValidationError, ValueError, ParseError) as e:
            logger.warning("cache_corrupt", norad_id=norad_id, path=str(path), error=str(e))
            return None

        if record.norad_id != norad_id:
            logger.warning("cache_id_mismatch", norad_id=norad_id, cached_id=record.norad_id)
            return None

        age = entry.age(self._clock())
        return CacheLookup(entry=entry, record=record, age=age, stale=age >= self.expiration)

    def _write_atomic(self, path: Path, payload: str) -> None:
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=path.parent, prefix=f".{path.stem}.",
                suffix=".tmp", delete=False,
            ) as handle:
                tmp_name = handle.name
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise CacheError(f"failed to write {path}: {e}") from e
