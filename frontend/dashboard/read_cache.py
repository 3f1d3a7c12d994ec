"""Client-side read cache for the project dashboard."""

import logging
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, replace
from typing import Callable, List, NamedTuple, Optional, Tuple

from core.errors import DashboardSyncError, RefreshCancelledError, RequestTimeoutError, StoreError
from core.retry import RetryPolicy
from core.row_model import ProjectRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """One complete snapshot of the projects table."""

    records: Tuple[ProjectRecord, ...]
    fetched_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_fresh(self, now: float) -> bool:
        return self.age(now) < self.ttl


class CacheResult(NamedTuple):
    """What the viewer gets: records plus, separately, any refresh failure."""

    records: Tuple[ProjectRecord, ...]
    error: Optional[Exception] = None
    from_cache: bool = False
    stale: bool = False
    fetched_at: Optional[float] = None


class ReadCache:
    """
    Serves project records to the viewer, refreshing only when stale.

    ``query`` is anything with ``fetch_page(offset, limit) -> Page``: the
    REST QueryClient in production, the SQL store locally.

    The cache holds at most one CacheEntry and replaces it as a whole once a
    refresh has read every page, so callers never see a half-fetched
    snapshot. Concurrent refresh requests share one in-flight fetch.
    """

    def __init__(
        self,
        query,
        ttl_seconds: float = 300.0,
        page_size: int = 100,
        retry_policy: Optional[RetryPolicy] = None,
        refresh_timeout_seconds: float = 60.0,
        clock: Callable[[], float] = time.time
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        self.query = query
        self.ttl_seconds = ttl_seconds
        self.page_size = page_size
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=3, base=0.5, maximum=5.0)
        self.refresh_timeout_seconds = refresh_timeout_seconds
        self._clock = clock

        self._lock = threading.Lock()
        self._entry: Optional[CacheEntry] = None
        self._inflight: Optional[Future] = None
        self._closed = threading.Event()

    @classmethod
    def from_settings(cls, query, settings) -> 'ReadCache':
        return cls(
            query,
            ttl_seconds=settings.cache_ttl_seconds,
            page_size=settings.cache_page_size,
            refresh_timeout_seconds=settings.cache_refresh_timeout_seconds,
        )

    @property
    def entry(self) -> Optional[CacheEntry]:
        return self._entry

    def get_projects(self, force_refresh: bool = False) -> CacheResult:
        """
        Return all projects ordered by serial.

        Args:
            force_refresh: Skip the TTL check and fetch now

        Returns:
            CacheResult. On a failed refresh the previous snapshot is served
            with ``stale=True`` and the failure in ``error``; with no previous
            snapshot ``records`` is empty.
        """
        if self._closed.is_set():
            return self._degraded(RefreshCancelledError("read cache is closed"))

        with self._lock:
            entry = self._entry
            if not force_refresh and entry is not None and entry.is_fresh(self._clock()):
                return CacheResult(entry.records, from_cache=True, fetched_at=entry.fetched_at)

            inflight = self._inflight
            owner = inflight is None
            if owner:
                inflight = Future()
                self._inflight = inflight

        if owner:
            self._refresh(inflight)

        try:
            fresh = inflight.result(timeout=self.refresh_timeout_seconds)
        except FutureTimeoutError:
            return self._degraded(RequestTimeoutError(
                f"cache refresh did not finish within {self.refresh_timeout_seconds}s"
            ))
        except DashboardSyncError as e:
            return self._degraded(e)
        return CacheResult(fresh.records, fetched_at=fresh.fetched_at)

    def invalidate(self) -> None:
        """Mark the current snapshot stale; it is still served if a refresh fails."""
        with self._lock:
            if self._entry is not None:
                self._entry = replace(self._entry, ttl=0.0)

    def close(self) -> None:
        """Tear down: abandon any in-flight refresh at the next page boundary."""
        self._closed.set()

    def _degraded(self, error: Exception) -> CacheResult:
        entry = self._entry
        if entry is None:
            return CacheResult((), error=error)
        return CacheResult(entry.records, error=error, from_cache=True, stale=True, fetched_at=entry.fetched_at)

    def _refresh(self, future: Future) -> None:
        try:
            entry = self._fetch_snapshot()
        except Exception as e:
            with self._lock:
                self._inflight = None
            future.set_exception(e)
            if not isinstance(e, DashboardSyncError):
                raise
            logger.warning("Cache refresh failed: %s", e)
            return

        with self._lock:
            # A torn-down viewer keeps its last committed snapshot
            if not self._closed.is_set():
                self._entry = entry
            self._inflight = None
        future.set_result(entry)
        logger.info("Cache refreshed with %d projects", len(entry.records))

    def _fetch_snapshot(self) -> CacheEntry:
        deadline = time.monotonic() + self.refresh_timeout_seconds
        records: List[ProjectRecord] = []
        offset = 0

        while True:
            if self._closed.is_set():
                raise RefreshCancelledError("refresh abandoned, read cache closed")
            if time.monotonic() > deadline:
                raise RequestTimeoutError(f"cache refresh exceeded {self.refresh_timeout_seconds}s")

            page = self._fetch_page(offset)
            records.extend(page.records)
            # An empty page cannot advance the offset
            if not page.has_more or not page.records:
                break
            offset += len(page.records)

        # Rows can shift between pages under concurrent writes
        unique = {record.serial: record for record in records}
        ordered = tuple(sorted(unique.values(), key=lambda record: record.serial))
        return CacheEntry(ordered, fetched_at=self._clock(), ttl=self.ttl_seconds)

    def _fetch_page(self, offset: int):
        attempt = 0
        while True:
            attempt += 1
            try:
                return self.query.fetch_page(offset, self.page_size)
            except StoreError as e:
                if not e.retryable or attempt >= self.retry_policy.max_attempts:
                    raise
                delay = self.retry_policy.delay(attempt, e)
                logger.warning("Page at offset %d failed (attempt %d), retrying in %.1fs: %s",
                               offset, attempt, delay, e)
                if self._closed.wait(delay):
                    raise RefreshCancelledError("refresh abandoned, read cache closed")
