"""Base backing-store adapter interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Sequence

from core.errors import StoreError
from core.row_model import ProjectRecord


class Page(NamedTuple):
    """One page of an ordered read."""

    records: List[ProjectRecord]
    has_more: bool


@dataclass
class BatchResult:
    """Per-serial outcome of one write request."""

    succeeded: List[int] = field(default_factory=list)
    failed: Dict[int, StoreError] = field(default_factory=dict)

    @classmethod
    def all_failed(cls, serials: Sequence[int], error: StoreError) -> 'BatchResult':
        return cls(failed={serial: error for serial in serials})

    def merge(self, other: 'BatchResult') -> None:
        self.succeeded.extend(other.succeeded)
        self.failed.update(other.failed)


class BaseStoreAdapter(ABC):
    """
    Abstract base class for all backing-store adapters.

    Stored rows are plain dicts in the store's column naming (see
    ``core.row_model.STORE_FIELDS``) plus two bookkeeping columns:
    ``row_hash`` (content hash of the synced fields) and ``deleted_at``
    (tombstone timestamp for soft-deleted rows, otherwise None).
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of the store provider."""
        pass

    @abstractmethod
    def fetch_all(self) -> Dict[int, Dict[str, Any]]:
        """
        Read every stored row, tombstoned ones included.

        Returns:
            Mapping of serial to stored row dict

        Raises:
            StoreError: If the store cannot be read
        """
        pass

    @abstractmethod
    def fetch_page(self, offset: int, limit: int, order_by: str = 'serial') -> Page:
        """
        Read one page of live (not tombstoned) records ordered by ``order_by``.

        Raises:
            StoreError: If the store cannot be read
        """
        pass

    @abstractmethod
    def upsert(self, rows: List[Dict[str, Any]]) -> BatchResult:
        """
        Insert or update rows keyed by serial, clearing any tombstone.

        Args:
            rows: Store dicts, each including ``row_hash``

        Returns:
            Which serials were written and which failed with what error.
            Transport failures are reported here, not raised.
        """
        pass

    @abstractmethod
    def delete(self, serials: List[int]) -> BatchResult:
        """Hard-delete rows by serial."""
        pass

    @abstractmethod
    def soft_delete(self, serials: List[int], deleted_at: datetime) -> BatchResult:
        """Mark rows as removed without deleting them."""
        pass

    def is_available(self) -> bool:
        """
        Check if the store is properly configured.

        Returns:
            True if the store can be used, False otherwise
        """
        return True
