"""
CelesTrak TLE fetcher.

Requests run on a small thread pool (the background domain) and never block
the caller. Each finished job posts exactly one FetchResult on a bounded
queue; the tick loop drains that queue and decides which results to keep by
their generation number. Workers only touch the disk cache and immutable
records, never the satellite store.

Failures are not retried here. A failed request falls back to whatever the
disk cache holds (fresh or expired) and reports the network error alongside
it, so the caller can decide on its own retry policy.
"""

import queue
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import List, Optional, Tuple, Union

import requests
from pydantic import BaseModel, ConfigDict

from orbit_tracker.config import SATELLITE_GROUPS, TrackerConfig
from orbit_tracker.disk_cache import DiskCache
from orbit_tracker.errors import CacheError, FetchErrorKind, NetworkError
from orbit_tracker.logging_config import get_logger
from orbit_tracker.tle_parser import ElementSetRecord, TLEParser

logger = get_logger(__name__)

# How often a worker blocked on a full result queue checks for shutdown
_PUT_POLL_S = 0.1

# A satellite catalog number or a CelesTrak group name
FetchKey = Union[int, str]


class FetchSource(str, Enum):
    NETWORK = "network"
    CACHE = "cache"


class FetchResult(BaseModel):
    """One completed request, as delivered on the result channel."""

    model_config = ConfigDict(frozen=True)

    key: FetchKey
    generation: int
    records: Tuple[ElementSetRecord, ...] = ()
    source: FetchSource = FetchSource.NETWORK
    stale_ids: Tuple[int, ...] = ()
    error: Optional[FetchErrorKind] = None
    http_status: Optional[int] = None
    rejected: int = 0

    @property
    def is_group(self) -> bool:
        return isinstance(self.key, str)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def stale(self) -> bool:
        return bool(self.stale_ids)

    def is_stale(self, norad_id: int) -> bool:
        return norad_id in self.stale_ids


class Fetcher:
    """
    Asynchronous element set retrieval with disk cache fallback.

    Usage:
        fetcher = Fetcher(config, cache)
        fetcher.request(25544, generation=1)
        ...
        for result in fetcher.drain():
            ...
    """

    def __init__(self, config: Optional[TrackerConfig] = None, cache: Optional[DiskCache] = None,
                 session: Optional[requests.Session] = None):
        self.config = config or TrackerConfig()
        self.cache = cache or DiskCache.from_config(self.config)
        self.session = session or requests.Session()
        self.parser = TLEParser()
        self.results: "queue.Queue[FetchResult]" = queue.Queue(maxsize=self.config.fetch_queue_size)
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.fetch_workers, thread_name_prefix="tle-fetch"
        )
        self._closed = False

    def request(self, key: FetchKey, generation: int) -> Future:
        """
        Start retrieving a satellite (int id) or a group (str name).

        Returns immediately; the FetchResult arrives on ``results``.
        """
        if self._closed:
            raise RuntimeError("fetcher is shut down")
        if isinstance(key, str) and key not in SATELLITE_GROUPS:
            logger.info("unknown_group_requested", group=key)
        return self._executor.submit(self._run, key, generation)

    def drain(self) -> List[FetchResult]:
        """Every result available right now, without waiting."""
        drained = []
        while True:
            try:
                drained.append(self.results.get_nowait())
            except queue.Empty:
                return drained

    def shutdown(self, wait: bool = True) -> None:
        self._closed = True
        # Jobs not yet started are dropped; running ones give up on a full queue
        self._executor.shutdown(wait=wait, cancel_futures=True)
        self.session.close()

    def _run(self, key: FetchKey, generation: int) -> None:
        try:
            if isinstance(key, str):
                result = self.fetch_group(key, generation)
            else:
                result = self.fetch_satellite(int(key), generation)
        except Exception:
            # A worker must always answer, or the entry would stay pending forever
            logger.exception("fetch_job_failed", key=key, generation=generation)
            result = FetchResult(key=key, generation=generation, error=FetchErrorKind.UNREACHABLE)
        # Blocks the worker, not the tick loop, when the channel is full
        while not self._closed:
            try:
                self.results.put(result, timeout=_PUT_POLL_S)
                return
            except queue.Full:
                continue
        logger.debug("fetch_result_dropped_after_shutdown", key=key, generation=generation)

    def fetch_satellite(self, norad_id: int, generation: int) -> FetchResult:
        """Fresh cache entry, else network, else any cache entry."""
        cached = self.cache.lookup(norad_id)
        if cached is not None and not cached.stale:
            logger.debug("cache_hit", norad_id=norad_id)
            return FetchResult(
                key=norad_id, generation=generation, records=(cached.record,),
                source=FetchSource.CACHE,
            )

        try:
            body = self._get(self.config.catalog_url(norad_id))
            records, rejected = self.parser.parse_text(body)
            matching = [r for r in records if r.norad_id == norad_id]
            if not matching:
                raise NetworkError(
                    FetchErrorKind.NO_DATA,
                    f"no valid element set for {norad_id} in response",
                )
        except NetworkError as e:
            logger.warning("fetch_failed", norad_id=norad_id, kind=e.kind.value, status=e.status_code)
            return self._satellite_fallback(norad_id, generation, e)

        record = matching[-1]
        self._cache_record(record)
        logger.info("tle_fetched", norad_id=norad_id, epoch=record.epoch.isoformat())
        return FetchResult(
            key=norad_id, generation=generation, records=(record,),
            source=FetchSource.NETWORK, rejected=len(rejected),
        )

    def fetch_group(self, group: str, generation: int) -> FetchResult:
        """Every valid record of a group, else the cached members of it."""
        try:
            body = self._get(self.config.group_url(group))
            records, rejected = self.parser.parse_text(body)
            if not records:
                raise NetworkError(FetchErrorKind.NO_DATA, f"group {group!r} returned no valid element sets")
        except NetworkError as e:
            logger.warning("group_fetch_failed", group=group, kind=e.kind.value, status=e.status_code)
            return self._group_fallback(group, generation, e)

        for record in records:
            self._cache_record(record)
        try:
            self.cache.store_group(group, [r.norad_id for r in records])
        except CacheError as e:
            logger.warning("cache_write_failed", group=group, error=str(e))

        if rejected:
            logger.warning("tle_records_rejected", group=group, count=len(rejected))
        logger.info("group_fetched", group=group, count=len(records))
        return FetchResult(
            key=group, generation=generation, records=tuple(records),
            source=FetchSource.NETWORK, rejected=len(rejected),
        )

    def _get(self, url: str) -> str:
        """GET a URL and return the body, mapping failures to NetworkError."""
        try:
            response = self.session.get(url, timeout=self.config.fetch_timeout_s)
            response.raise_for_status()
        except requests.Timeout as e:
            raise NetworkError(FetchErrorKind.TIMEOUT, f"{url} timed out: {e}") from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            raise NetworkError(FetchErrorKind.HTTP_ERROR, f"{url} returned {status}", status_code=status) from e
        except requests.RequestException as e:
            raise NetworkError(FetchErrorKind.UNREACHABLE, f"{url} unreachable: {e}") from e
        return response.text

    def _cache_record(self, record: ElementSetRecord) -> None:
        try:
            self.cache.store(record.norad_id, record)
        except CacheError as e:
            logger.warning("cache_write_failed", norad_id=record.norad_id, error=str(e))

    def _satellite_fallback(self, norad_id: int, generation: int, error: NetworkError) -> FetchResult:
        cached = self.cache.fallback(norad_id)
        if cached is None:
            return FetchResult(
                key=norad_id, generation=generation,
                error=error.kind, http_status=error.status_code,
            )
        return FetchResult(
            key=norad_id, generation=generation, records=(cached.record,),
            source=FetchSource.CACHE,
            stale_ids=(norad_id,) if cached.stale else (),
            error=error.kind, http_status=error.status_code,
        )

    def _group_fallback(self, group: str, generation: int, error: NetworkError) -> FetchResult:
        records = []
        stale_ids = []
        for norad_id in self.cache.group_members(group):
            cached = self.cache.fallback(norad_id)
            if cached is not None:
                records.append(cached.record)
                if cached.stale:
                    stale_ids.append(norad_id)
        if records:
            logger.info("group_cache_fallback", group=group, count=len(records), stale=len(stale_ids))
        return FetchResult(
            key=group, generation=generation, records=tuple(records),
            source=FetchSource.CACHE, stale_ids=tuple(stale_ids),
            error=error.kind, http_status=error.status_code,
        )
