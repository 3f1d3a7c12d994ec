"""Core module for project dashboard sync logic."""

from core.config import settings
from core.row_model import ProjectRecord, parse_row
from core.scheduler import SchedulerState, TriggerScheduler
from core.sync_engine import RemovalPolicy, SyncEngine, SyncReport

__all__ = [
    'ProjectRecord',
    'RemovalPolicy',
    'SchedulerState',
    'SyncEngine',
    'SyncReport',
    'TriggerScheduler',
    'parse_row',
    'settings',
]
