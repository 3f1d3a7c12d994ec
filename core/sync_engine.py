"""Sync engine: reconcile spreadsheet rows into the backing store."""

import logging
import math
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Set, Tuple

from adapters.store.base import BaseStoreAdapter, BatchResult
from core.errors import (
    AuthError,
    ConfigurationError,
    ConflictError,
    DashboardSyncError,
    RunAbortedError,
    StoreError,
    ValidationError,
)
from core.retry import RetryPolicy
from core.row_model import STORE_FIELDS, ProjectRecord, parse_row, parse_timestamp, read_serial

logger = logging.getLogger(__name__)


class RemovalPolicy(str, Enum):
    """What happens to stored rows whose serial disappeared from the sheet."""

    SOFT_DELETE = 'soft_delete'
    HARD_DELETE = 'hard_delete'
    IGNORE = 'ignore'

    @classmethod
    def parse(cls, value: Any) -> 'RemovalPolicy':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown removal policy {value!r}. Available: {[p.value for p in cls]}"
            )


@dataclass
class SyncFailure:
    """One row that did not make it into the store, or a reported conflict."""

    serial: Optional[int]
    reason: str
    kind: str
    row_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'serial': self.serial,
            'reason': self.reason,
            'kind': self.kind,
            'row_index': self.row_index,
        }


@dataclass
class SyncReport:
    """Outcome of one reconcile run."""

    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    removed: int = 0
    failed: int = 0
    retries: int = 0
    errors: List[SyncFailure] = field(default_factory=list)
    aborted: bool = False
    fatal_error: Optional[Exception] = None

    @property
    def conflicts(self) -> List[SyncFailure]:
        return [error for error in self.errors if error.kind == ConflictError.__name__]

    @property
    def ok(self) -> bool:
        return self.fatal_error is None and not self.aborted and self.failed == 0

    def add_failure(self, serial: Optional[int], error: Exception, row_index: Optional[int] = None,
                    reason: Optional[str] = None) -> None:
        self.errors.append(SyncFailure(serial, reason or str(error), type(error).__name__, row_index))
        if not isinstance(error, ConflictError):
            self.failed += 1

    def counts(self) -> Dict[str, int]:
        return {
            'inserted': self.inserted,
            'updated': self.updated,
            'skipped': self.skipped,
            'removed': self.removed,
            'failed': self.failed,
        }

    def summary(self) -> str:
        parts = ', '.join(f"{name}={count}" for name, count in self.counts().items())
        text = f"{parts}, retries={self.retries}, conflicts={len(self.conflicts)}"
        if self.fatal_error is not None:
            text += f", fatal={type(self.fatal_error).__name__}"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'counts': self.counts(),
            'retries': self.retries,
            'errors': [error.to_dict() for error in self.errors],
            'aborted': self.aborted,
            'fatal_error': (
                f"{type(self.fatal_error).__name__}: {self.fatal_error}" if self.fatal_error else None
            ),
        }


class _Job(NamedTuple):
    kind: str  # 'insert' | 'update' | 'remove'
    items: List[Any]  # store dicts for writes, serials for removals


@dataclass
class _JobOutcome:
    kind: str
    succeeded: List[int] = field(default_factory=list)
    failures: List[Tuple[int, DashboardSyncError, str]] = field(default_factory=list)
    retries: int = 0


def _item_serial(item: Any) -> int:
    return item['serial'] if isinstance(item, Mapping) else item


def _chunks(items: List[Any], size: int) -> Iterable[List[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _same_value(column: str, ours: Any, theirs: Any) -> bool:
    if ours is None or theirs is None:
        return ours is None and theirs is None
    if column == 'updated_at':
        try:
            return parse_timestamp(ours) == parse_timestamp(theirs)
        except ValueError:
            return False
    if isinstance(ours, float) or isinstance(theirs, float):
        try:
            return math.isclose(float(ours), float(theirs), rel_tol=1e-9, abs_tol=1e-9)
        except (TypeError, ValueError):
            return False
    return ours == theirs


def record_changed(record: ProjectRecord, stored: Mapping[str, Any]) -> bool:
    """
    Decide whether a stored row must be rewritten from ``record``.

    Compares the stored columns field by field, so an out-of-band edit in the
    store is overwritten even when its ``row_hash`` still matches the sheet.
    """
    ours = record.to_store_dict()
    return any(not _same_value(column, ours[column], stored.get(column)) for column in STORE_FIELDS)


class SyncEngine:
    """
    Reconciles a full spreadsheet snapshot against the backing store.

    Every call is idempotent: rows that already match the store are skipped,
    so repeated triggers on an unchanged sheet write nothing.
    """

    def __init__(
        self,
        store: BaseStoreAdapter,
        removal_policy,
        batch_size: int = 50,
        max_workers: int = 4,
        retry_policy: Optional[RetryPolicy] = None,
        now: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the sync engine.

        Args:
            store: Backing store adapter
            removal_policy: RemovalPolicy or its string value. Required; there
                is no default because each policy risks different data loss.
            batch_size: Rows per write request
            max_workers: Upper bound on concurrent write requests
            retry_policy: Backoff for retryable store failures
            now: Clock used for tombstones and report timestamps
        """
        if batch_size < 1 or max_workers < 1:
            raise ValueError("batch_size and max_workers must be at least 1")
        self.store = store
        self.removal_policy = RemovalPolicy.parse(removal_policy)
        self.batch_size = batch_size
        self.max_workers = max_workers
        self.retry_policy = retry_policy or RetryPolicy()
        self._now = now or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, store: BaseStoreAdapter, settings) -> 'SyncEngine':
        return cls(
            store,
            removal_policy=settings.require_removal_policy(),
            batch_size=settings.sync_batch_size,
            max_workers=settings.sync_max_workers,
            retry_policy=RetryPolicy.from_settings(settings),
        )

    def reconcile(
        self,
        source_rows: Iterable[Mapping[str, Any]],
        cancel_event: Optional[threading.Event] = None
    ) -> SyncReport:
        """
        Bring the store in line with ``source_rows``.

        Args:
            source_rows: Raw sheet rows in sheet order
            cancel_event: Set by the caller to stop the run between attempts

        Returns:
            SyncReport. Store failures never escape as exceptions: row-level
            ones are listed in ``errors``, run-level ones (credentials
            rejected, store unreadable) are set as ``fatal_error``.
        """
        cancel_event = cancel_event or threading.Event()
        report = SyncReport(started_at=self._now())

        records, present = self._build_snapshot(source_rows, report)

        try:
            stored = self._load_stored(cancel_event, report)
            inserts, updates = self._diff(records, stored, report)
            removals = self._removals(stored, present)
            self._apply(inserts, updates, removals, cancel_event, report)
        except AuthError as e:
            logger.critical("Store rejected credentials, sync aborted. Rotate the API key: %s", e)
            report.fatal_error = e
            report.aborted = True
        except StoreError as e:
            logger.error("Sync aborted, store unavailable: %s", e)
            report.fatal_error = e
            report.aborted = True

        if cancel_event.is_set():
            report.aborted = True
        report.finished_at = self._now()
        logger.info("Sync finished: %s", report.summary())
        return report

    def _build_snapshot(
        self,
        source_rows: Iterable[Mapping[str, Any]],
        report: SyncReport
    ) -> Tuple[Dict[int, ProjectRecord], Set[int]]:
        """Parse rows; later duplicates win. Returns (records, serials present in the sheet)."""
        records: Dict[int, ProjectRecord] = {}
        positions: Dict[int, int] = {}
        present: Set[int] = set()

        for row_index, raw in enumerate(source_rows, start=1):
            try:
                record = parse_row(raw, row_index=row_index)
            except ValidationError as e:
                serial = read_serial(raw) if isinstance(raw, Mapping) else None
                if serial is not None:
                    # Still in the sheet: must not be treated as removed
                    present.add(serial)
                logger.warning("Row %d skipped: %s", row_index, e)
                report.add_failure(serial, e, row_index)
                continue

            present.add(record.serial)
            if record.serial in records:
                conflict = ConflictError(record.serial, kept_row=row_index, dropped_row=positions[record.serial])
                logger.warning("%s", conflict)
                report.add_failure(record.serial, conflict, row_index)
            records[record.serial] = record
            positions[record.serial] = row_index

        return records, present

    def _load_stored(self, cancel_event: threading.Event, report: SyncReport) -> Dict[int, Dict[str, Any]]:
        attempt = 0
        while True:
            attempt += 1
            try:
                return self.store.fetch_all()
            except StoreError as e:
                if not e.retryable or attempt >= self.retry_policy.max_attempts or cancel_event.is_set():
                    raise
                delay = self.retry_policy.delay(attempt, e)
                logger.warning("Reading store failed (attempt %d), retrying in %.1fs: %s", attempt, delay, e)
                report.retries += 1
                cancel_event.wait(delay)

    def _diff(
        self,
        records: Dict[int, ProjectRecord],
        stored: Dict[int, Dict[str, Any]],
        report: SyncReport
    ) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        inserts: List[Dict[str, Any]] = []
        updates: List[Dict[str, Any]] = []

        for serial in sorted(records):
            record = records[serial]
            row = record.to_store_dict()
            row['row_hash'] = record.content_hash

            existing = stored.get(serial)
            if existing is None:
                inserts.append(row)
            elif existing.get('deleted_at') or record_changed(record, existing):
                updates.append(row)
            else:
                report.skipped += 1

        return inserts, updates

    def _removals(self, stored: Dict[int, Dict[str, Any]], present: Set[int]) -> List[int]:
        if self.removal_policy is RemovalPolicy.IGNORE:
            return []
        missing = sorted(serial for serial in stored if serial not in present)
        if self.removal_policy is RemovalPolicy.SOFT_DELETE:
            missing = [serial for serial in missing if not stored[serial].get('deleted_at')]
        return missing

    def _apply(
        self,
        inserts: List[Dict[str, Any]],
        updates: List[Dict[str, Any]],
        removals: List[int],
        cancel_event: threading.Event,
        report: SyncReport
    ) -> None:
        jobs = (
            [_Job('insert', chunk) for chunk in _chunks(inserts, self.batch_size)]
            + [_Job('update', chunk) for chunk in _chunks(updates, self.batch_size)]
            + [_Job('remove', chunk) for chunk in _chunks(removals, self.batch_size)]
        )
        if not jobs:
            return

        auth_error: Optional[AuthError] = None
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(jobs))) as pool:
            futures = {pool.submit(self._run_job, job, cancel_event): job for job in jobs}
            for future in as_completed(futures):
                job = futures[future]
                try:
                    outcome = future.result()
                except AuthError as e:
                    # Stop the other batches
                    cancel_event.set()
                    auth_error = auth_error or e
                    outcome = _JobOutcome(job.kind, failures=[
                        (_item_serial(item), e, str(e)) for item in job.items
                    ])
                self._record(outcome, report)

        if auth_error is not None:
            raise auth_error

    def _record(self, outcome: _JobOutcome, report: SyncReport) -> None:
        report.retries += outcome.retries
        if outcome.kind == 'insert':
            report.inserted += len(outcome.succeeded)
        elif outcome.kind == 'update':
            report.updated += len(outcome.succeeded)
        else:
            report.removed += len(outcome.succeeded)
        for serial, error, reason in outcome.failures:
            report.add_failure(serial, error, reason=reason)

    def _dispatch(self, kind: str, items: List[Any]) -> BatchResult:
        if kind in ('insert', 'update'):
            return self.store.upsert(items)
        if self.removal_policy is RemovalPolicy.HARD_DELETE:
            return self.store.delete(items)
        return self.store.soft_delete(items, self._now())

    def _run_job(self, job: _Job, cancel_event: threading.Event) -> _JobOutcome:
        """Write one batch, retrying the retryable subset with backoff."""
        outcome = _JobOutcome(job.kind)
        pending = list(job.items)
        attempt = 0

        while pending:
            if cancel_event.is_set():
                outcome.failures.extend(
                    (_item_serial(item), RunAbortedError("run aborted"), "run aborted") for item in pending
                )
                break

            attempt += 1
            serials = [_item_serial(item) for item in pending]
            try:
                result = self._dispatch(job.kind, pending)
            except AuthError:
                raise
            except StoreError as e:
                result = BatchResult.all_failed(serials, e)

            outcome.succeeded.extend(result.succeeded)
            retry: Set[int] = set()
            last_error: Optional[StoreError] = None
            for serial, error in result.failed.items():
                if isinstance(error, AuthError):
                    raise error
                if error.retryable and attempt < self.retry_policy.max_attempts:
                    retry.add(serial)
                    last_error = error
                elif error.retryable:
                    outcome.failures.append((serial, error, f"gave up after {attempt} attempts: {error}"))
                else:
                    outcome.failures.append((serial, error, str(error)))

            pending = [item for item in pending if _item_serial(item) in retry]
            if pending:
                outcome.retries += 1
                delay = self.retry_policy.delay(attempt, last_error)
                logger.warning(
                    "%s of %d rows failed (attempt %d), retrying in %.1fs: %s",
                    job.kind, len(pending), attempt, delay, last_error,
                )
                cancel_event.wait(delay)

        return outcome
