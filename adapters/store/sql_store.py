"""SQLAlchemy backing-store adapter (PostgreSQL, or SQLite for local use)."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, Float, Integer, String, Text, create_engine, text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from adapters.store.base import BaseStoreAdapter, BatchResult, Page
from core.errors import QueryError, RejectedError
from core.row_model import STORE_FIELDS, ProjectRecord, parse_timestamp

logger = logging.getLogger(__name__)

Base = declarative_base()


class ProjectRow(Base):
    """Mirror of one spreadsheet project row"""
    __tablename__ = 'projects'

    serial = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(Text, nullable=False)
    status = Column(String(64), nullable=True)
    budget_allocated = Column(Float, nullable=True)
    budget_spent = Column(Float, nullable=True)
    progress_percent = Column(Float, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    row_hash = Column(String(64), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True, index=True)
    synced_at = Column(DateTime(timezone=True), nullable=True)

    def to_store_dict(self) -> Dict[str, Any]:
        return {
            'serial': self.serial,
            'name': self.name,
            'status': self.status,
            'budget_allocated': self.budget_allocated,
            'budget_spent': self.budget_spent,
            'progress_percent': self.progress_percent,
            'updated_at': _iso(self.updated_at),
            'row_hash': self.row_hash,
            'deleted_at': _iso(self.deleted_at),
        }

    def __repr__(self):
        return f"<ProjectRow(serial={self.serial}, name='{self.name}')>"


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    # SQLite drops tzinfo on the way back
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _error_for(e: SQLAlchemyError):
    if isinstance(e, OperationalError):
        return QueryError(f"database unavailable: {e}")
    return RejectedError(f"database rejected write: {e}")


class SqlStoreAdapter(BaseStoreAdapter):
    """
    Backing store kept in a SQL database through SQLAlchemy ORM.

    Useful for local deployments where no REST store exists; shares the
    table layout of the REST store.
    """

    def __init__(self, database_url: str = 'sqlite:///project_dashboard.db'):
        """
        Initialize the SQL store adapter.

        Args:
            database_url: SQLAlchemy database URL
        """
        engine_kwargs: Dict[str, Any] = {}
        if database_url.startswith('sqlite'):
            # Writes fan out over worker threads
            engine_kwargs['connect_args'] = {'check_same_thread': False}
            if database_url in ('sqlite://', 'sqlite:///:memory:'):
                engine_kwargs['poolclass'] = StaticPool

        self.engine = create_engine(database_url, **engine_kwargs)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

        # Create tables
        Base.metadata.create_all(bind=self.engine)

    @property
    def name(self) -> str:
        return "sql"

    def get_session(self):
        """Get a database session."""
        return self.SessionLocal()

    def fetch_all(self) -> Dict[int, Dict[str, Any]]:
        db = self.get_session()
        try:
            return {row.serial: row.to_store_dict() for row in db.query(ProjectRow).all()}
        except SQLAlchemyError as e:
            raise QueryError(f"database read failed: {e}")
        finally:
            db.close()

    def fetch_page(self, offset: int, limit: int, order_by: str = 'serial') -> Page:
        if order_by not in STORE_FIELDS:
            raise ValueError(f"cannot order by {order_by!r}")
        column = getattr(ProjectRow, order_by)

        db = self.get_session()
        try:
            query = db.query(ProjectRow).filter(ProjectRow.deleted_at.is_(None))
            ordering = [column.asc()] if order_by == 'serial' else [column.asc(), ProjectRow.serial.asc()]
            rows = query.order_by(*ordering).offset(offset).limit(limit + 1).all()
            records = [ProjectRecord.from_store_dict(row.to_store_dict()) for row in rows[:limit]]
            return Page(records, len(rows) > limit)
        except SQLAlchemyError as e:
            raise QueryError(f"database read failed: {e}")
        finally:
            db.close()

    def upsert(self, rows: List[Dict[str, Any]]) -> BatchResult:
        if not rows:
            return BatchResult()
        serials = [row['serial'] for row in rows]
        now = datetime.now(timezone.utc)

        db = self.get_session()
        try:
            for data in rows:
                row = db.get(ProjectRow, data['serial'])
                if row is None:
                    row = ProjectRow(serial=data['serial'])
                    db.add(row)
                row.name = data['name']
                row.status = data.get('status')
                row.budget_allocated = data.get('budget_allocated')
                row.budget_spent = data.get('budget_spent')
                row.progress_percent = data.get('progress_percent')
                updated_at = data.get('updated_at')
                row.updated_at = parse_timestamp(updated_at) if updated_at else None
                row.row_hash = data.get('row_hash')
                row.deleted_at = None
                row.synced_at = now
            db.commit()
            return BatchResult(succeeded=serials)
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("Upsert of %d rows failed: %s", len(rows), e)
            return BatchResult.all_failed(serials, _error_for(e))
        finally:
            db.close()

    def delete(self, serials: List[int]) -> BatchResult:
        if not serials:
            return BatchResult()
        db = self.get_session()
        try:
            db.query(ProjectRow).filter(ProjectRow.serial.in_(serials)).delete(synchronize_session=False)
            db.commit()
            return BatchResult(succeeded=list(serials))
        except SQLAlchemyError as e:
            db.rollback()
            return BatchResult.all_failed(serials, _error_for(e))
        finally:
            db.close()

    def soft_delete(self, serials: List[int], deleted_at: datetime) -> BatchResult:
        if not serials:
            return BatchResult()
        db = self.get_session()
        try:
            db.query(ProjectRow).filter(ProjectRow.serial.in_(serials)).update(
                {ProjectRow.deleted_at: deleted_at}, synchronize_session=False
            )
            db.commit()
            return BatchResult(succeeded=list(serials))
        except SQLAlchemyError as e:
            db.rollback()
            return BatchResult.all_failed(serials, _error_for(e))
        finally:
            db.close()

    def is_available(self) -> bool:
        """Check if the database is available."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False
