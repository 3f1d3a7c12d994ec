"""
Shared test fixtures.

Provides an in-memory store with scripted failures, a controllable clock and
helpers for building spreadsheet rows.
"""

import copy
import threading
from collections import Counter, defaultdict, deque
from datetime import datetime
from typing import Any, Dict, List

import pytest

from adapters.store.base import BaseStoreAdapter, BatchResult, Page
from core.config import Settings
from core.retry import RetryPolicy
from core.row_model import ProjectRecord


class FakeStore(BaseStoreAdapter):
    """
    Store adapter backed by a dict.

    ``script(method, outcome)`` queues what the next call to ``method``
    does: an exception is raised for the whole request, a dict of
    ``{serial: error}`` fails just those rows.
    """

    def __init__(self, rows: Dict[int, Dict[str, Any]] = None):
        self.rows: Dict[int, Dict[str, Any]] = copy.deepcopy(rows or {})
        self.calls = Counter()
        self.written: List[List[int]] = []
        self._script = defaultdict(deque)
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "fake"

    def script(self, method: str, *outcomes) -> None:
        self._script[method].extend(outcomes)

    def _next(self, method: str):
        self.calls[method] += 1
        if self._script[method]:
            outcome = self._script[method].popleft()
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return {}

    def live(self) -> Dict[int, Dict[str, Any]]:
        return {serial: row for serial, row in self.rows.items() if not row.get('deleted_at')}

    def fetch_all(self) -> Dict[int, Dict[str, Any]]:
        with self._lock:
            self._next('fetch_all')
            return copy.deepcopy(self.rows)

    def fetch_page(self, offset: int, limit: int, order_by: str = 'serial') -> Page:
        with self._lock:
            self._next('fetch_page')
            live = [self.live()[serial] for serial in sorted(self.live())]
            chunk = live[offset:offset + limit]
            records = [ProjectRecord.from_store_dict(row) for row in chunk]
            return Page(records, offset + limit < len(live))

    def _write(self, method: str, serials: List[int], apply) -> BatchResult:
        with self._lock:
            failing = self._next(method)
            self.written.append(list(serials))
            result = BatchResult()
            for serial in serials:
                if serial in failing:
                    result.failed[serial] = failing[serial]
                else:
                    apply(serial)
                    result.succeeded.append(serial)
            return result

    def upsert(self, rows: List[Dict[str, Any]]) -> BatchResult:
        by_serial = {row['serial']: row for row in rows}

        def apply(serial):
            self.rows[serial] = dict(by_serial[serial], deleted_at=None)

        return self._write('upsert', list(by_serial), apply)

    def delete(self, serials: List[int]) -> BatchResult:
        return self._write('delete', serials, lambda serial: self.rows.pop(serial, None))

    def soft_delete(self, serials: List[int], deleted_at: datetime) -> BatchResult:
        def apply(serial):
            self.rows[serial]['deleted_at'] = deleted_at.isoformat()

        return self._write('soft_delete', serials, apply)


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_row(serial, name=None, **overrides) -> Dict[str, Any]:
    """Build a raw sheet row keyed by the sheet's column headers."""
    row = {
        'serial': serial,
        'name': name if name is not None else f"Project {serial}",
        'status': 'Active',
        'budgetAllocated': '1000',
        'budgetSpent': '250',
        'progressPercent': '40',
        'updatedAt': '2024-03-01T09:00:00Z',
    }
    row.update(overrides)
    return row


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def fake_store_class():
    return FakeStore


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sheet_row():
    return make_row


@pytest.fixture
def no_wait_retry():
    """Retries without sleeping."""
    return RetryPolicy(max_attempts=3, base=0.0, maximum=0.0)


@pytest.fixture
def test_settings(tmp_path):
    """Settings for a local deployment, independent of the environment."""
    return Settings(
        store_provider='sql',
        store_url=None,
        store_api_key=None,
        database_url=f"sqlite:///{tmp_path / 'projects.db'}",
        source_provider='csv',
        source_csv_path=str(tmp_path / 'projects.csv'),
        removal_policy='soft_delete',
        retry_max_attempts=3,
        retry_backoff_base=0.0,
        retry_backoff_max=0.0,
        sync_interval_seconds=3600.0,
        sync_run_timeout_seconds=10.0,
        cache_ttl_seconds=300.0,
        cache_page_size=2,
        webhook_secret=None,
    )
