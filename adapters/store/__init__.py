"""Backing-store adapters package."""

from adapters.store.base import BaseStoreAdapter, BatchResult, Page
from adapters.store.query_client import QueryClient
from adapters.store.rest_store import RestStoreAdapter
from adapters.store.sql_store import SqlStoreAdapter
from core.errors import ConfigurationError


def get_store_adapter(provider: str = None, config=None) -> BaseStoreAdapter:
    """
    Factory function to get the appropriate store adapter.

    Args:
        provider: Store provider name ('rest', 'supabase', 'sql')
                 If None, uses settings.store_provider
        config: Settings instance, defaults to the global settings

    Returns:
        An instance of the appropriate store adapter
    """
    if config is None:
        from core.config import settings as config

    provider = (provider or config.store_provider).lower()

    if provider in ('rest', 'supabase', 'postgrest'):
        if not config.store_url:
            raise ConfigurationError("STORE_URL is required for the REST store")
        return RestStoreAdapter(
            base_url=config.store_url,
            api_key=config.store_api_key,
            table=config.store_table,
            timeout=config.request_timeout_seconds,
        )
    if provider in ('sql', 'sqlite', 'postgres'):
        return SqlStoreAdapter(config.database_url)

    raise ConfigurationError(f"Unknown store provider: {provider}. Available: ['rest', 'sql']")


__all__ = [
    'BaseStoreAdapter',
    'BatchResult',
    'Page',
    'QueryClient',
    'RestStoreAdapter',
    'SqlStoreAdapter',
    'get_store_adapter',
]
