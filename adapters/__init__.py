"""Adapters package for the spreadsheet source and the backing store."""

from adapters.source import get_source_adapter
from adapters.store import get_store_adapter

__all__ = ['get_source_adapter', 'get_store_adapter']
