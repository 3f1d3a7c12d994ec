"""Tests for the dashboard sync service and its summary metrics."""

import json
import sys
from typing import Any, Dict, List
from unittest.mock import patch

import pytest

from adapters.source.base import BaseSourceAdapter
from core.errors import AuthError, ConfigurationError, SourceError
from core.row_model import ProjectRecord
from frontend.dashboard import sync_service
from frontend.dashboard.summary import summarize
from frontend.dashboard.sync_service import DashboardSyncService


class ListSource(BaseSourceAdapter):
    """Source returning canned rows, or raising a canned error."""

    def __init__(self, rows: List[Dict[str, Any]] = None, error: Exception = None):
        self.rows = rows or []
        self.error = error

    @property
    def name(self) -> str:
        return "list"

    def read_rows(self) -> List[Dict[str, Any]]:
        if self.error is not None:
            raise self.error
        return list(self.rows)


@pytest.fixture
def service_factory(store, test_settings):
    created = []

    def build(rows=None, error=None, config=None):
        service = DashboardSyncService(
            source=ListSource(rows, error),
            store=store,
            config=config or test_settings,
        )
        created.append(service)
        return service

    yield build
    for service in created:
        service.stop(timeout=5)


class TestSyncService:
    def test_sync_once_writes_and_refreshes_the_view(self, service_factory, store, sheet_row):
        service = service_factory([sheet_row(2), sheet_row(1)])
        assert service.get_projects().records == ()

        report = service.sync_once()

        assert report.inserted == 2
        assert [record.serial for record in service.get_projects().records] == [1, 2]
        assert store.calls['fetch_page'] == 2

    def test_unchanged_sync_keeps_the_cache(self, service_factory, store, sheet_row):
        service = service_factory([sheet_row(1)])
        service.sync_once()
        service.get_projects()

        service.sync_once()
        service.get_projects()

        assert store.calls['fetch_page'] == 1

    def test_source_failure_is_reported(self, service_factory, store):
        service = service_factory(error=SourceError("sheet not shared with service account"))

        report = service.sync_once()

        assert isinstance(report.fatal_error, SourceError)
        assert report.aborted
        assert store.calls['fetch_all'] == 0

    def test_edit_notification_runs_a_sync(self, service_factory, store, sheet_row):
        service = service_factory([sheet_row(1)])

        service.notify_edit("A2")

        assert service.scheduler.wait_idle(5)
        assert sorted(store.rows) == [1]
        assert service.status()['scheduler']['run_count'] == 1

    def test_removal_policy_is_required(self, store, test_settings):
        test_settings.removal_policy = None

        with pytest.raises(ConfigurationError):
            DashboardSyncService(source=ListSource(), store=store, config=test_settings)

    def test_projects_view(self, service_factory, sheet_row):
        service = service_factory([sheet_row(1), sheet_row(2, status='Stalled')])
        service.sync_once()

        view = service.projects_view()

        assert [project['serial'] for project in view['projects']] == [1, 2]
        assert view['summary']['total_projects'] == 2
        assert view['error'] is None
        assert view['fetched_at'] is not None

    def test_projects_view_reports_errors(self, service_factory, store):
        service = service_factory()
        store.script('fetch_page', AuthError("invalid API key", 401))

        view = service.projects_view()

        assert view['projects'] == []
        assert view['error'].startswith("AuthError")

    def test_status(self, service_factory):
        status = service_factory().status()

        assert status['source'] == 'list'
        assert status['store'] == 'fake'
        assert status['removal_policy'] == 'soft_delete'
        assert status['scheduler']['state'] == 'idle'
        assert status['cache']['projects'] == 0


class TestCommandLine:
    def test_usage_without_a_command(self, capsys):
        with patch.object(sys, 'argv', ['sync_service']):
            assert sync_service.main() == 0
        assert "Commands:" in capsys.readouterr().out

    def test_sync_command_prints_the_report(self, capsys, store, test_settings, sheet_row):
        service = DashboardSyncService(source=ListSource([sheet_row(1)]), store=store, config=test_settings)

        with patch.object(sys, 'argv', ['sync_service', 'sync']), \
                patch.object(sync_service, 'DashboardSyncService', return_value=service):
            assert sync_service.main() == 0

        report = json.loads(capsys.readouterr().out)
        assert report['counts']['inserted'] == 1

    def test_projects_command(self, capsys, store, test_settings, sheet_row):
        service = DashboardSyncService(source=ListSource([sheet_row(1)]), store=store, config=test_settings)
        service.sync_once()

        with patch.object(sys, 'argv', ['sync_service', 'projects', '--refresh']), \
                patch.object(sync_service, 'DashboardSyncService', return_value=service):
            assert sync_service.main() == 0

        view = json.loads(capsys.readouterr().out)
        assert view['summary']['total_projects'] == 1

    def test_configuration_error_exits_nonzero(self, capsys):
        with patch.object(sys, 'argv', ['sync_service', 'status']), \
                patch.object(sync_service, 'DashboardSyncService', side_effect=ConfigurationError("SYNC_REMOVAL_POLICY is not set")):
            assert sync_service.main() == 2
        assert "SYNC_REMOVAL_POLICY" in capsys.readouterr().out

    def test_unknown_command(self, capsys, store, test_settings):
        service = DashboardSyncService(source=ListSource(), store=store, config=test_settings)
        with patch.object(sys, 'argv', ['sync_service', 'frobnicate']), \
                patch.object(sync_service, 'DashboardSyncService', return_value=service):
            assert sync_service.main() == 2


class TestSummary:
    def test_metrics(self):
        projects = [
            ProjectRecord(serial=1, name="A", status='Active', budget_allocated=100.0,
                          budget_spent=150.0, progress_percent=50.0),
            ProjectRecord(serial=2, name="B", status='Active', budget_allocated=200.0,
                          budget_spent=50.0, progress_percent=100.0),
            ProjectRecord(serial=3, name="C", status='Stalled'),
            ProjectRecord(serial=4, name="D"),
        ]

        summary = summarize(projects)

        assert summary['total_projects'] == 4
        assert summary['by_status'] == {'(none)': 1, 'Active': 2, 'Stalled': 1}
        assert summary['non_canonical_status'] == 1
        assert summary['budget_allocated_total'] == 300.0
        assert summary['budget_spent_total'] == 200.0
        assert summary['over_budget'] == 1
        assert summary['average_progress'] == 75.0

    def test_empty(self):
        summary = summarize([])
        assert summary['total_projects'] == 0
        assert summary['average_progress'] is None
