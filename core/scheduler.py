"""Trigger scheduler: decides when the sync engine runs."""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from core.errors import SyncTimeoutError
from core.sync_engine import SyncReport

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = 'idle'
    RUNNING = 'running'
    QUEUED = 'queued'


class TriggerScheduler:
    """
    Coalescing scheduler with two event sources: edit notifications and an
    interval timer.

    State machine:
        IDLE    --event--> RUNNING (a run starts)
        RUNNING --event--> QUEUED
        QUEUED  --event--> QUEUED  (collapsed, at most one pending re-run)
        RUNNING --done---> IDLE
        QUEUED  --done---> RUNNING (re-run immediately)

    Runs execute on a single-worker executor, so two runs never overlap even
    when one was abandoned after hitting ``run_timeout``.
    """

    def __init__(
        self,
        run_sync: Callable[[threading.Event], SyncReport],
        interval_seconds: float = 3600.0,
        run_timeout_seconds: float = 300.0,
        on_report: Optional[Callable[[SyncReport], None]] = None
    ):
        """
        Initialize the scheduler.

        Args:
            run_sync: Performs one sync; receives a cancel event it should
                honour between network calls
            interval_seconds: Timer period
            run_timeout_seconds: Ceiling on one run
            on_report: Called with every finished run's report
        """
        self._run_sync = run_sync
        self.interval_seconds = interval_seconds
        self.run_timeout_seconds = run_timeout_seconds
        self._on_report = on_report

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._state = SchedulerState.IDLE
        self._executor: Optional[ThreadPoolExecutor] = None
        self._current: Optional[Future] = None
        self._stop = threading.Event()
        self._timer_thread: Optional[threading.Thread] = None

        self.run_count = 0
        self.coalesced_events = 0
        self.last_trigger: Optional[str] = None
        self.last_report: Optional[SyncReport] = None
        self.last_error: Optional[Exception] = None

    @property
    def state(self) -> SchedulerState:
        with self._lock:
            return self._state

    def notify(self, source: str = 'edit') -> SchedulerState:
        """
        Register a trigger event.

        Returns:
            The state after the event was applied
        """
        with self._lock:
            self.last_trigger = source
            if self._state is SchedulerState.IDLE:
                self._state = SchedulerState.RUNNING
                threading.Thread(target=self._drive, name='sync-scheduler', daemon=True).start()
            elif self._state is SchedulerState.RUNNING:
                self._state = SchedulerState.QUEUED
            else:
                self.coalesced_events += 1
            logger.debug("Trigger from %s -> %s", source, self._state.value)
            return self._state

    def notify_edit(self, detail: Optional[str] = None) -> SchedulerState:
        """Spreadsheet edit notification (single cell or a pasted range)."""
        if detail:
            logger.info("Edit event: %s", detail)
        return self.notify('edit')

    def _drive(self) -> None:
        while True:
            self._run_once()
            with self._lock:
                if self._state is SchedulerState.QUEUED:
                    self._state = SchedulerState.RUNNING
                    continue
                self._state = SchedulerState.IDLE
                self._idle.notify_all()
                return

    def _submit(self, fn: Callable[[], SyncReport]) -> Future:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='sync-run')
            self._current = self._executor.submit(fn)
            return self._current

    def _run_once(self) -> None:
        cancel_event = threading.Event()
        started = threading.Event()
        started_at = datetime.now(timezone.utc)

        def run() -> SyncReport:
            started.set()
            return self._run_sync(cancel_event)

        try:
            future = self._submit(run)
            # The run's own time limit starts once the worker picks it up
            if not started.wait(self.run_timeout_seconds):
                future.cancel()
                raise SyncTimeoutError(
                    f"sync run did not start within {self.run_timeout_seconds}s; "
                    "an abandoned run still holds the worker"
                )
            report = future.result(timeout=self.run_timeout_seconds)
            error = report.fatal_error
        except (FutureTimeoutError, SyncTimeoutError) as e:
            cancel_event.set()
            error = e if isinstance(e, SyncTimeoutError) else SyncTimeoutError(
                f"sync run exceeded {self.run_timeout_seconds}s and was abandoned"
            )
            logger.error("%s; the next run will reconcile what it left behind", error)
            report = SyncReport(started_at=started_at, aborted=True, fatal_error=error)
            report.finished_at = datetime.now(timezone.utc)
        except Exception as e:
            # A broken run must not take the scheduler down with it
            logger.exception("Sync run failed: %s", e)
            error = e
            report = SyncReport(started_at=started_at, aborted=True, fatal_error=e)
            report.finished_at = datetime.now(timezone.utc)

        with self._lock:
            self.run_count += 1
            self.last_report = report
            self.last_error = error

        if self._on_report is not None:
            try:
                self._on_report(report)
            except Exception:
                logger.exception("on_report callback failed")

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no run is in progress or queued. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._state is SchedulerState.IDLE, timeout)

    def start(self, run_immediately: bool = False) -> None:
        """Start the interval timer."""
        if self._timer_thread is not None and self._timer_thread.is_alive():
            return
        self._stop.clear()
        self._timer_thread = threading.Thread(target=self._timer_loop, name='sync-timer', daemon=True)
        self._timer_thread.start()
        logger.info("Sync timer started (every %ss)", self.interval_seconds)
        if run_immediately:
            self.notify('startup')

    def _timer_loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.notify('timer')

    def stop(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Stop the timer; optionally wait for the current run to finish.

        The scheduler can be started again afterwards; the run worker is
        recreated on the next trigger.
        """
        self._stop.set()
        if self._timer_thread is not None:
            self._timer_thread.join(timeout)
            self._timer_thread = None
        if wait:
            self.wait_idle(timeout)
        with self._lock:
            if self._current is not None and not self._current.done():
                # An abandoned run still holds the worker; later runs queue behind it
                logger.warning("Sync worker still busy at stop; keeping it for the next start")
                return
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'state': self._state.value,
                'run_count': self.run_count,
                'coalesced_events': self.coalesced_events,
                'last_trigger': self.last_trigger,
                'last_report': self.last_report.to_dict() if self.last_report else None,
                'last_error': f"{type(self.last_error).__name__}: {self.last_error}" if self.last_error else None,
                'interval_seconds': self.interval_seconds,
                'timer_running': self._timer_thread is not None and self._timer_thread.is_alive(),
            }
