"""Paginated, ordered reads against a PostgREST table."""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from adapters.store.base import Page
from adapters.store.http import json_list, send, store_headers
from core.errors import MalformedResponseError
from core.row_model import STORE_FIELDS, ProjectRecord

logger = logging.getLogger(__name__)


class QueryClient:
    """
    Read-only client for the projects table.

    Every request carries an explicit column projection and a deterministic
    order ending in ``serial.asc`` so that offset pagination is stable. Errors
    are mapped to the store error taxonomy and never retried here; retrying is
    left to the caller, which knows how much staleness it can accept.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        table: str = 'projects',
        timeout: float = 10.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the query client.

        Args:
            base_url: REST root of the store, e.g. ``https://x.supabase.co/rest/v1``
            api_key: Store API key sent as ``apikey`` and bearer token
            table: Table name
            timeout: Per-request timeout in seconds
            session: Optional requests session to reuse
        """
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip('/')
        self.table = table
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(store_headers(api_key))

    @property
    def table_url(self) -> str:
        return f"{self.base_url}/{self.table}"

    def _order_clause(self, order_by: str, columns: Sequence[str]) -> str:
        if order_by not in columns:
            raise ValueError(f"cannot order by {order_by!r}; choose one of {list(columns)}")
        if order_by == 'serial':
            return 'serial.asc'
        return f"{order_by}.asc,serial.asc"

    def fetch_raw_page(
        self,
        offset: int,
        limit: int,
        order_by: str = 'serial',
        columns: Sequence[str] = STORE_FIELDS,
        include_deleted: bool = False
    ) -> Tuple[List[Dict[str, Any]], bool]:
        """
        Fetch one page of raw row dicts.

        Returns:
            Tuple of (rows, has_more)

        Raises:
            StoreError: Mapped failure of the request
        """
        if offset < 0 or limit < 1:
            raise ValueError("offset must be >= 0 and limit >= 1")

        params = {
            'select': ','.join(columns),
            'order': self._order_clause(order_by, columns),
            'offset': str(offset),
            # One extra row tells us whether another page exists
            'limit': str(limit + 1),
        }
        if not include_deleted:
            params['deleted_at'] = 'is.null'

        response = send(self.session, 'GET', self.table_url, self.timeout, params=params)
        rows = json_list(response)
        for row in rows:
            if not isinstance(row, dict) or 'serial' not in row:
                raise MalformedResponseError("store row without a serial", response.status_code)

        has_more = len(rows) > limit
        logger.debug("Fetched %d rows at offset %d (has_more=%s)", min(len(rows), limit), offset, has_more)
        return rows[:limit], has_more

    def fetch_page(self, offset: int, limit: int, order_by: str = 'serial') -> Page:
        """
        Fetch one page of live project records.

        Raises:
            StoreError: Mapped failure of the request
        """
        rows, has_more = self.fetch_raw_page(offset, limit, order_by=order_by)
        try:
            records = [ProjectRecord.from_store_dict(row) for row in rows]
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(f"store returned an unreadable record: {e}")
        return Page(records, has_more)
