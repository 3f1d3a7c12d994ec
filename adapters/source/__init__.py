"""Spreadsheet source adapters package."""

from adapters.source.base import BaseSourceAdapter, rows_from_values
from adapters.source.csv_source import CsvSource
from core.errors import ConfigurationError


def get_source_adapter(provider: str = None, config=None) -> BaseSourceAdapter:
    """
    Factory function to get the appropriate spreadsheet source.

    Args:
        provider: Source provider name ('google_sheets', 'csv')
                 If None, uses settings.source_provider
        config: Settings instance, defaults to the global settings

    Returns:
        An instance of the appropriate source adapter
    """
    if config is None:
        from core.config import settings as config

    provider = (provider or config.source_provider).lower()

    if provider in ('google_sheets', 'sheets'):
        # Google client libraries are heavy; load them only when used
        from adapters.source.google_sheets import GoogleSheetsSource
        return GoogleSheetsSource(
            spreadsheet_id=config.spreadsheet_id,
            sheet_name=config.sheet_name,
            service_account_json=config.google_service_account_json,
            service_account_file=config.google_service_account_file,
            oauth_client_file=config.google_oauth_client_file,
            oauth_token_file=config.google_oauth_token_file,
        )
    if provider == 'csv':
        if not config.source_csv_path:
            raise ConfigurationError("SOURCE_CSV_PATH is required for the csv source")
        return CsvSource(config.source_csv_path)

    raise ConfigurationError(f"Unknown source provider: {provider}. Available: ['google_sheets', 'csv']")


__all__ = [
    'BaseSourceAdapter',
    'CsvSource',
    'get_source_adapter',
    'rows_from_values',
]
