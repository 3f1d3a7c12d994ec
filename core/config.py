"""Centralized configuration for the project dashboard sync."""

import os
from dataclasses import dataclass, field
from typing import Optional, List

from core.errors import ConfigurationError


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(',') if item.strip()]


@dataclass
class Settings:
    """Application settings loaded from environment variables."""

    # Backing store
    store_provider: str = field(default_factory=lambda: os.getenv('STORE_PROVIDER', 'rest'))
    store_url: Optional[str] = field(default_factory=lambda: os.getenv('STORE_URL'))
    store_api_key: Optional[str] = field(default_factory=lambda: os.getenv('STORE_API_KEY'))
    store_table: str = field(default_factory=lambda: os.getenv('STORE_TABLE', 'projects'))
    database_url: str = field(default_factory=lambda: os.getenv('DATABASE_URL', 'sqlite:///project_dashboard.db'))

    # Spreadsheet source
    source_provider: str = field(default_factory=lambda: os.getenv('SOURCE_PROVIDER', 'google_sheets'))
    spreadsheet_id: Optional[str] = field(default_factory=lambda: os.getenv('SPREADSHEET_ID'))
    sheet_name: str = field(default_factory=lambda: os.getenv('SHEET_NAME', 'Projects'))
    google_service_account_json: Optional[str] = field(default_factory=lambda: os.getenv('GOOGLE_SERVICE_ACCOUNT_JSON'))
    google_service_account_file: str = field(default_factory=lambda: os.getenv('GOOGLE_SERVICE_ACCOUNT_FILE', 'service-account.json'))
    google_oauth_client_file: str = 'credentials.json'
    google_oauth_token_file: str = 'token.json'
    source_csv_path: Optional[str] = field(default_factory=lambda: os.getenv('SOURCE_CSV_PATH'))

    # Read cache
    cache_ttl_seconds: float = field(default_factory=lambda: _env_float('CACHE_TTL_SECONDS', 300.0))
    cache_page_size: int = field(default_factory=lambda: _env_int('CACHE_PAGE_SIZE', 100))
    cache_refresh_timeout_seconds: float = field(default_factory=lambda: _env_float('CACHE_REFRESH_TIMEOUT_SECONDS', 60.0))

    # Sync scheduling
    sync_interval_seconds: float = field(default_factory=lambda: _env_float('SYNC_INTERVAL_SECONDS', 3600.0))
    sync_run_timeout_seconds: float = field(default_factory=lambda: _env_float('SYNC_RUN_TIMEOUT_SECONDS', 300.0))
    sync_batch_size: int = field(default_factory=lambda: _env_int('SYNC_BATCH_SIZE', 50))
    sync_max_workers: int = field(default_factory=lambda: _env_int('SYNC_MAX_WORKERS', 4))

    # No default; require_removal_policy() fails when unset
    removal_policy: Optional[str] = field(default_factory=lambda: os.getenv('SYNC_REMOVAL_POLICY'))

    # Network and retry bounds
    request_timeout_seconds: float = field(default_factory=lambda: _env_float('REQUEST_TIMEOUT_SECONDS', 10.0))
    retry_max_attempts: int = field(default_factory=lambda: _env_int('RETRY_MAX_ATTEMPTS', 5))
    retry_backoff_base: float = field(default_factory=lambda: _env_float('RETRY_BACKOFF_BASE', 0.5))
    retry_backoff_max: float = field(default_factory=lambda: _env_float('RETRY_BACKOFF_MAX', 30.0))

    # HTTP server
    webhook_secret: Optional[str] = field(default_factory=lambda: os.getenv('SYNC_WEBHOOK_SECRET'))
    cors_origins: List[str] = field(default_factory=lambda: _env_list('CORS_ORIGINS', [
        'http://localhost:3000',
        'http://127.0.0.1:3000',
        'http://localhost:5000',
        'http://127.0.0.1:5000',
    ]))
    host: str = field(default_factory=lambda: os.getenv('HOST', '0.0.0.0'))
    port: int = field(default_factory=lambda: _env_int('PORT', 5000))

    # Application settings
    log_level: str = field(default_factory=lambda: os.getenv('LOG_LEVEL', 'INFO').upper())
    debug: bool = field(default_factory=lambda: os.getenv('DEBUG', '').lower() == 'true')

    def require_removal_policy(self) -> str:
        """Return the configured removal policy or fail loudly."""
        if not self.removal_policy:
            raise ConfigurationError(
                "SYNC_REMOVAL_POLICY is not set. Choose one of soft_delete, "
                "hard_delete or ignore for this deployment."
            )
        return self.removal_policy.strip().lower()


# Global settings instance
settings = Settings()
