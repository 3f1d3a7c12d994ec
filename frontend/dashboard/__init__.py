"""Dashboard module: read cache, summary metrics and the sync service."""

from frontend.dashboard.read_cache import CacheEntry, CacheResult, ReadCache
from frontend.dashboard.summary import summarize
from frontend.dashboard.sync_service import DashboardSyncService

__all__ = ['CacheEntry', 'CacheResult', 'ReadCache', 'DashboardSyncService', 'summarize']
