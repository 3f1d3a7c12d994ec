"""PostgREST (Supabase-compatible) backing-store adapter."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests

from adapters.store.base import BaseStoreAdapter, BatchResult, Page
from adapters.store.http import send
from adapters.store.query_client import QueryClient
from core.errors import MalformedResponseError, RejectedError, StoreError
from core.row_model import STORE_FIELDS

logger = logging.getLogger(__name__)

SNAPSHOT_COLUMNS = STORE_FIELDS + ('row_hash', 'deleted_at')


class RestStoreAdapter(BaseStoreAdapter):
    """
    Adapter for a row-oriented table exposed over PostgREST.

    Reads go through QueryClient; writes are ``POST`` upserts keyed by
    ``serial`` and ``DELETE``/``PATCH`` requests filtered with
    ``serial=in.(...)``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        table: str = 'projects',
        timeout: float = 10.0,
        page_size: int = 500,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the REST store adapter.

        Args:
            base_url: REST root of the store
            api_key: Store API key
            table: Table name
            timeout: Per-request timeout in seconds
            page_size: Rows per page when reading the full snapshot
            session: Optional requests session to reuse
        """
        self.query = QueryClient(base_url, api_key, table=table, timeout=timeout, session=session)
        self.session = self.query.session
        self.timeout = timeout
        self.page_size = page_size

    @property
    def name(self) -> str:
        return "rest"

    @property
    def table_url(self) -> str:
        return self.query.table_url

    def fetch_all(self) -> Dict[int, Dict[str, Any]]:
        """Read the full table, tombstones included, keyed by serial."""
        stored: Dict[int, Dict[str, Any]] = {}
        offset = 0
        while True:
            rows, has_more = self.query.fetch_raw_page(
                offset,
                self.page_size,
                columns=SNAPSHOT_COLUMNS,
                include_deleted=True,
            )
            for row in rows:
                try:
                    serial = int(row['serial'])
                except (TypeError, ValueError):
                    raise MalformedResponseError(f"store row with an unusable serial: {row['serial']!r}")
                stored[serial] = row
            if not has_more:
                break
            offset += len(rows)
        return stored

    def fetch_page(self, offset: int, limit: int, order_by: str = 'serial') -> Page:
        return self.query.fetch_page(offset, limit, order_by=order_by)

    def _write(self, method: str, serials: List[int], **kwargs: Any) -> BatchResult:
        try:
            send(self.session, method, self.table_url, self.timeout, **kwargs)
        except StoreError as e:
            return BatchResult.all_failed(serials, e)
        return BatchResult(succeeded=list(serials))

    def upsert(self, rows: List[Dict[str, Any]]) -> BatchResult:
        if not rows:
            return BatchResult()
        serials = [row['serial'] for row in rows]
        payload = [dict(row, deleted_at=None) for row in rows]
        result = self._write(
            'POST',
            serials,
            params={'on_conflict': 'serial'},
            json=payload,
            headers={'Prefer': 'resolution=merge-duplicates,return=minimal'},
        )

        # One bad record rejects the whole request; split to find it
        if len(rows) > 1 and result.failed:
            error = next(iter(result.failed.values()))
            if isinstance(error, RejectedError):
                logger.warning("Upsert of %d rows rejected (%s); retrying row by row", len(rows), error)
                isolated = BatchResult()
                for row in rows:
                    isolated.merge(self.upsert([row]))
                return isolated
        return result

    def delete(self, serials: List[int]) -> BatchResult:
        if not serials:
            return BatchResult()
        return self._write('DELETE', serials, params={'serial': _in_filter(serials)})

    def soft_delete(self, serials: List[int], deleted_at: datetime) -> BatchResult:
        if not serials:
            return BatchResult()
        return self._write(
            'PATCH',
            serials,
            params={'serial': _in_filter(serials)},
            json={'deleted_at': deleted_at.isoformat()},
            headers={'Prefer': 'return=minimal'},
        )

    def is_available(self) -> bool:
        return bool(self.query.base_url)


def _in_filter(serials: List[int]) -> str:
    return f"in.({','.join(str(serial) for serial in serials)})"
