"""Tests for the SQLAlchemy store adapter against a temporary SQLite file."""

from datetime import datetime, timezone

import pytest

from adapters.store.sql_store import ProjectRow, SqlStoreAdapter
from core.retry import RetryPolicy
from core.row_model import parse_row
from core.sync_engine import SyncEngine


@pytest.fixture
def sql_store(tmp_path):
    return SqlStoreAdapter(f"sqlite:///{tmp_path / 'projects.db'}")


def store_dict(sheet_row, serial, **overrides):
    record = parse_row(sheet_row(serial, **overrides))
    data = record.to_store_dict()
    data['row_hash'] = record.content_hash
    return data


class TestSqlStore:
    def test_available(self, sql_store):
        assert sql_store.is_available()
        assert sql_store.name == "sql"

    def test_upsert_then_fetch_all(self, sql_store, sheet_row):
        result = sql_store.upsert([store_dict(sheet_row, 1), store_dict(sheet_row, 2)])

        assert result.succeeded == [1, 2]
        stored = sql_store.fetch_all()
        assert sorted(stored) == [1, 2]
        assert stored[1]['updated_at'] == '2024-03-01T09:00:00+00:00'
        assert stored[1]['row_hash'] == parse_row(sheet_row(1)).content_hash
        assert stored[1]['deleted_at'] is None

    def test_upsert_overwrites(self, sql_store, sheet_row):
        sql_store.upsert([store_dict(sheet_row, 1)])
        sql_store.upsert([store_dict(sheet_row, 1, name="Renamed")])

        assert sql_store.fetch_all()[1]['name'] == "Renamed"

    def test_soft_delete_hides_rows_from_pages(self, sql_store, sheet_row):
        sql_store.upsert([store_dict(sheet_row, n) for n in (1, 2, 3)])

        sql_store.soft_delete([2], datetime(2024, 5, 1, tzinfo=timezone.utc))

        page = sql_store.fetch_page(0, 10)
        assert [record.serial for record in page.records] == [1, 3]
        assert sql_store.fetch_all()[2]['deleted_at'] == '2024-05-01T00:00:00+00:00'

    def test_upsert_clears_tombstone(self, sql_store, sheet_row):
        sql_store.upsert([store_dict(sheet_row, 1)])
        sql_store.soft_delete([1], datetime(2024, 5, 1, tzinfo=timezone.utc))

        sql_store.upsert([store_dict(sheet_row, 1)])

        assert sql_store.fetch_all()[1]['deleted_at'] is None

    def test_delete(self, sql_store, sheet_row):
        sql_store.upsert([store_dict(sheet_row, 1), store_dict(sheet_row, 2)])

        sql_store.delete([1])

        assert sorted(sql_store.fetch_all()) == [2]

    def test_pages_are_ordered_and_bounded(self, sql_store, sheet_row):
        sql_store.upsert([store_dict(sheet_row, n) for n in (5, 3, 1, 4, 2)])

        first = sql_store.fetch_page(0, 2)
        last = sql_store.fetch_page(4, 2)

        assert [record.serial for record in first.records] == [1, 2]
        assert first.has_more
        assert [record.serial for record in last.records] == [5]
        assert not last.has_more

    def test_rejects_unknown_order_column(self, sql_store):
        with pytest.raises(ValueError):
            sql_store.fetch_page(0, 10, order_by='row_hash')


class TestEngineOverSql:
    def test_reconcile_is_idempotent(self, sql_store, sheet_row):
        engine = SyncEngine(sql_store, 'hard_delete', retry_policy=RetryPolicy(max_attempts=3, base=0.0))
        rows = [sheet_row(n) for n in range(1, 6)]

        first = engine.reconcile(rows)
        second = engine.reconcile(rows)

        assert first.inserted == 5
        assert second.skipped == 5
        assert second.inserted == second.updated == second.removed == 0

    def test_removed_rows_are_deleted(self, sql_store, sheet_row):
        engine = SyncEngine(sql_store, 'hard_delete', retry_policy=RetryPolicy(max_attempts=3, base=0.0))
        engine.reconcile([sheet_row(n) for n in range(1, 4)])

        report = engine.reconcile([sheet_row(1), sheet_row(3)])

        assert report.removed == 1
        assert sorted(sql_store.fetch_all()) == [1, 3]

    def test_out_of_band_edit_is_restored(self, sql_store, sheet_row):
        engine = SyncEngine(sql_store, 'hard_delete', retry_policy=RetryPolicy(max_attempts=3, base=0.0))
        engine.reconcile([sheet_row(1, name="Alpha")])
        db = sql_store.get_session()
        try:
            db.query(ProjectRow).filter(ProjectRow.serial == 1).update({'name': "Tampered"})
            db.commit()
        finally:
            db.close()

        report = engine.reconcile([sheet_row(1, name="Alpha")])

        assert report.updated == 1
        assert report.skipped == 0
        assert sql_store.fetch_all()[1]['name'] == "Alpha"
