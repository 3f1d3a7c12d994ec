"""Tests for spreadsheet sources."""

from unittest.mock import MagicMock, Mock

import pytest
from googleapiclient.errors import HttpError

from adapters.source import CsvSource, get_source_adapter, rows_from_values
from adapters.source.google_sheets import GoogleSheetsSource
from core.config import Settings
from core.errors import ConfigurationError, SourceError


class TestRowsFromValues:
    def test_header_keys_and_padding(self):
        rows = rows_from_values([
            ['serial', 'name', 'status'],
            [1, 'Bridge', 'Active'],
            [2, 'Tunnel'],
        ])

        assert rows == [
            {'serial': 1, 'name': 'Bridge', 'status': 'Active'},
            {'serial': 2, 'name': 'Tunnel', 'status': None},
        ]

    def test_blank_rows_are_skipped(self):
        rows = rows_from_values([['serial', 'name'], ['', '  '], [], [3, 'Dam']])
        assert rows == [{'serial': 3, 'name': 'Dam'}]

    def test_unnamed_columns_are_dropped(self):
        rows = rows_from_values([[' serial ', '', 'name'], [1, 'note', 'Bridge']])
        assert rows == [{'serial': 1, 'name': 'Bridge'}]

    def test_empty_sheet(self):
        assert rows_from_values([]) == []


class TestCsvSource:
    def test_reads_rows(self, tmp_path):
        path = tmp_path / 'projects.csv'
        path.write_text(
            "serial,name,budgetAllocated\n1,Bridge,\"1,500.00\"\n,,\n2,Tunnel\n",
            encoding='utf-8',
        )

        source = CsvSource(str(path))

        assert source.is_available()
        assert source.read_rows() == [
            {'serial': '1', 'name': 'Bridge', 'budgetAllocated': '1,500.00'},
            {'serial': '2', 'name': 'Tunnel', 'budgetAllocated': None},
        ]

    def test_byte_order_mark_is_ignored(self, tmp_path):
        path = tmp_path / 'projects.csv'
        path.write_bytes("serial,name\n1,Bridge\n".encode('utf-8-sig'))

        assert CsvSource(str(path)).read_rows()[0]['serial'] == '1'

    def test_missing_file(self, tmp_path):
        source = CsvSource(str(tmp_path / 'missing.csv'))

        assert not source.is_available()
        with pytest.raises(SourceError):
            source.read_rows()


class TestGoogleSheetsSource:
    @pytest.fixture
    def service(self):
        return MagicMock()

    def test_reads_the_configured_range(self, service):
        values_api = service.spreadsheets.return_value.values.return_value
        values_api.get.return_value.execute.return_value = {
            'values': [['serial', 'name'], [1, 'Bridge'], [2]],
        }
        source = GoogleSheetsSource(spreadsheet_id='sheet-123', sheet_name='Projects', service=service)

        rows = source.read_rows()

        assert rows == [{'serial': 1, 'name': 'Bridge'}, {'serial': 2, 'name': None}]
        kwargs = values_api.get.call_args[1]
        assert kwargs['spreadsheetId'] == 'sheet-123'
        assert kwargs['range'] == 'Projects'
        assert kwargs['valueRenderOption'] == 'UNFORMATTED_VALUE'

    def test_api_error_becomes_source_error(self, service):
        values_api = service.spreadsheets.return_value.values.return_value
        values_api.get.return_value.execute.side_effect = HttpError(
            Mock(status=403, reason='Forbidden'), b'{"error": {"message": "denied"}}'
        )
        source = GoogleSheetsSource(spreadsheet_id='sheet-123', service=service)

        with pytest.raises(SourceError):
            source.read_rows()

    def test_unconfigured_source(self, service):
        source = GoogleSheetsSource(spreadsheet_id=None, service=service)
        source.spreadsheet_id = None

        assert not source.is_available()
        with pytest.raises(SourceError):
            source.read_rows()


class TestFactory:
    def test_csv(self, tmp_path):
        source = get_source_adapter('csv', Settings(source_csv_path=str(tmp_path / 'p.csv')))
        assert isinstance(source, CsvSource)

    def test_csv_requires_a_path(self):
        with pytest.raises(ConfigurationError):
            get_source_adapter('csv', Settings(source_csv_path=None))

    def test_unknown(self):
        with pytest.raises(ConfigurationError):
            get_source_adapter('excel', Settings())
