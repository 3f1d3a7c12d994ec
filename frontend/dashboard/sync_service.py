"""Dashboard sync service: wires the sheet source, the store, the scheduler and the read cache."""

import json
import logging
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from adapters.source import BaseSourceAdapter, get_source_adapter
from adapters.store import BaseStoreAdapter, get_store_adapter
from core.config import Settings, settings
from core.errors import ConfigurationError, SourceError
from core.scheduler import SchedulerState, TriggerScheduler
from core.sync_engine import SyncEngine, SyncReport
from frontend.dashboard.read_cache import CacheResult, ReadCache
from frontend.dashboard.summary import summarize

logger = logging.getLogger(__name__)


class DashboardSyncService:
    """Keeps the projects table in line with the spreadsheet and serves it to the dashboard."""

    def __init__(
        self,
        source: Optional[BaseSourceAdapter] = None,
        store: Optional[BaseStoreAdapter] = None,
        config: Optional[Settings] = None,
        query=None
    ):
        """
        Initialize the sync service.

        Args:
            source: Spreadsheet source, defaults to the configured provider
            store: Backing store, defaults to the configured provider
            config: Settings instance, defaults to the global settings
            query: Page reader for the read cache, defaults to the store

        Raises:
            ConfigurationError: If no removal policy is configured
        """
        self.config = config or settings
        self.source = source or get_source_adapter(config=self.config)
        self.store = store or get_store_adapter(config=self.config)
        self.engine = SyncEngine.from_settings(self.store, self.config)
        self.cache = ReadCache.from_settings(query or self.store, self.config)
        self.scheduler = TriggerScheduler(
            self.run_sync,
            interval_seconds=self.config.sync_interval_seconds,
            run_timeout_seconds=self.config.sync_run_timeout_seconds,
            on_report=self._handle_report,
        )

    def is_available(self) -> bool:
        """Check that both ends of the sync can be reached."""
        return self.source.is_available() and self.store.is_available()

    def run_sync(self, cancel_event: Optional[threading.Event] = None) -> SyncReport:
        """Read the whole sheet and reconcile it against the store."""
        try:
            rows = self.source.read_rows()
        except SourceError as e:
            logger.error("Could not read spreadsheet: %s", e)
            now = datetime.now(timezone.utc)
            return SyncReport(started_at=now, finished_at=now, aborted=True, fatal_error=e)

        logger.info("Read %d rows from %s source", len(rows), self.source.name)
        return self.engine.reconcile(rows, cancel_event)

    def sync_once(self) -> SyncReport:
        """Run one sync in the calling thread, outside the scheduler."""
        report = self.run_sync()
        self._handle_report(report)
        return report

    def _handle_report(self, report: SyncReport) -> None:
        if report.inserted or report.updated or report.removed:
            self.cache.invalidate()
        if report.fatal_error is not None:
            logger.error("Sync run failed: %s", report.summary())

    def notify_edit(self, detail: Optional[str] = None) -> SchedulerState:
        return self.scheduler.notify_edit(detail)

    def request_run(self, source: str = 'manual') -> SchedulerState:
        return self.scheduler.notify(source)

    def start(self, run_immediately: bool = False) -> None:
        self.scheduler.start(run_immediately=run_immediately)

    def stop(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        self.scheduler.stop(wait=wait, timeout=timeout)
        self.cache.close()

    def get_projects(self, force_refresh: bool = False) -> CacheResult:
        return self.cache.get_projects(force_refresh=force_refresh)

    def projects_view(self, force_refresh: bool = False) -> Dict[str, Any]:
        """JSON-friendly projects listing with summary metrics."""
        result = self.get_projects(force_refresh=force_refresh)
        return {
            'projects': [record.to_dict() for record in result.records],
            'summary': summarize(result.records),
            'error': f"{type(result.error).__name__}: {result.error}" if result.error else None,
            'stale': result.stale,
            'from_cache': result.from_cache,
            'fetched_at': (
                datetime.fromtimestamp(result.fetched_at, timezone.utc).isoformat()
                if result.fetched_at is not None else None
            ),
        }

    def status(self) -> Dict[str, Any]:
        entry = self.cache.entry
        return {
            'source': self.source.name,
            'store': self.store.name,
            'removal_policy': self.engine.removal_policy.value,
            'scheduler': self.scheduler.status(),
            'cache': {
                'projects': len(entry.records) if entry else 0,
                'fetched_at': (
                    datetime.fromtimestamp(entry.fetched_at, timezone.utc).isoformat() if entry else None
                ),
                'ttl_seconds': self.cache.ttl_seconds,
            },
        }


def _print_json(data: Dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, default=str))


def main():
    """Command-line interface for sync service."""
    if len(sys.argv) < 2:
        print("Project Dashboard Sync")
        print("\nCommands:")
        print("  python -m frontend.dashboard.sync_service sync                 - Reconcile sheet and store once")
        print("  python -m frontend.dashboard.sync_service status               - Show service status")
        print("  python -m frontend.dashboard.sync_service projects [--refresh] - List projects")
        print("  python -m frontend.dashboard.sync_service watch                - Run the scheduler in the foreground")
        return 0

    logging.basicConfig(
        level=settings.log_level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    command = sys.argv[1].lower()
    try:
        service = DashboardSyncService()
    except ConfigurationError as e:
        print(f"Error: {e}")
        return 2

    def sync():
        report = service.sync_once()
        _print_json(report.to_dict())
        return 0 if report.fatal_error is None else 1

    def status():
        _print_json(service.status())
        return 0

    def projects():
        view = service.projects_view(force_refresh='--refresh' in sys.argv[2:])
        _print_json(view)
        return 0 if view['error'] is None else 1

    def watch():
        service.start(run_immediately=True)
        print(f"Watching; syncing every {settings.sync_interval_seconds}s. Ctrl+C to stop.")
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            print("Stopping...")
        finally:
            service.stop(timeout=settings.sync_run_timeout_seconds)
        return 0

    commands = {
        'sync': sync,
        'status': status,
        'projects': projects,
        'watch': watch,
    }

    if command in commands:
        return commands[command]()
    print(f"Unknown command: {command}")
    return 2


if __name__ == "__main__":
    sys.exit(main())
