"""Environment configuration for the MySideline sync."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from sync.errors import ConfigError


DEFAULT_EVENT_URL = (
    'https://profile.mysideline.com.au/register/clubsearch/'
    '?source=rugby-league&entityType=team&isEntityIdSearch=true&entity=true&criteria='
)

_TRUE_VALUES = {'true', '1', 'yes', 'on'}
_FALSE_VALUES = {'false', '0', 'no', 'off'}


def _read_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or raw.strip() == '':
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{key} must be a boolean, got '{raw}'")


def _read_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got '{raw}'")
    if value < 0:
        raise ConfigError(f"{key} must not be negative, got {value}")
    return value


@dataclass(frozen=True)
class SyncConfig:
    """Read-only configuration snapshot for one sync run."""
    search_url: Optional[str] = None
    event_url_prefix: str = DEFAULT_EVENT_URL
    request_timeout_ms: int = 60000
    ready_timeout_ms: int = 60000
    retry_attempts: int = 3
    request_delay_ms: int = 2000
    card_pause_ms: int = 1000
    soft_deadline_seconds: int = 600
    enable_scraping: bool = True
    use_mock_data: bool = False
    headless: bool = True
    screenshot_dir: Optional[str] = None
    sync_interval_hours: int = 24
    carnivals_table: str = 'carnivals'
    audit_table: Optional[str] = None
    sync_log_table: str = 'mysideline-sync-log'
    logo_bucket: Optional[str] = None
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> 'SyncConfig':
        """
        Build a configuration snapshot from environment variables.

        Args:
            env: Mapping to read instead of ``os.environ``

        Raises:
            ConfigError: If a value cannot be parsed
        """
        env = os.environ if env is None else env

        development = env.get('ENVIRONMENT', 'production').strip().lower() == 'development'

        return cls(
            search_url=env.get('MYSIDELINE_URL') or None,
            event_url_prefix=env.get('MYSIDELINE_EVENT_URL') or DEFAULT_EVENT_URL,
            request_timeout_ms=_read_int(env, 'MYSIDELINE_REQUEST_TIMEOUT_MS', 60000),
            ready_timeout_ms=_read_int(env, 'MYSIDELINE_READY_TIMEOUT_MS', 60000),
            retry_attempts=_read_int(env, 'MYSIDELINE_RETRY_ATTEMPTS', 3),
            request_delay_ms=_read_int(env, 'MYSIDELINE_REQUEST_DELAY_MS', 2000),
            card_pause_ms=_read_int(env, 'MYSIDELINE_CARD_PAUSE_MS', 1000),
            soft_deadline_seconds=_read_int(env, 'MYSIDELINE_SOFT_DEADLINE_SECONDS', 600),
            enable_scraping=_read_bool(env, 'MYSIDELINE_ENABLE_SCRAPING', True),
            use_mock_data=_read_bool(env, 'MYSIDELINE_USE_MOCK', False),
            headless=_read_bool(env, 'MYSIDELINE_HEADLESS', not development),
            screenshot_dir=env.get('MYSIDELINE_SCREENSHOT_DIR') or None,
            sync_interval_hours=_read_int(env, 'MYSIDELINE_SYNC_INTERVAL_HOURS', 24),
            carnivals_table=env.get('CARNIVALS_TABLE_NAME') or 'carnivals',
            audit_table=env.get('AUDIT_TABLE_NAME') or None,
            sync_log_table=env.get('SYNC_LOG_TABLE_NAME') or 'mysideline-sync-log',
            logo_bucket=env.get('LOGO_BUCKET') or None,
            log_level=env.get('LOG_LEVEL') or 'INFO',
        )

    def validate(self) -> None:
        """
        Check the settings a live scrape depends on.

        Raises:
            ConfigError: If the search URL is missing outside mock mode
        """
        if self.use_mock_data or not self.enable_scraping:
            return
        if not self.search_url:
            raise ConfigError('MYSIDELINE_URL is required unless MYSIDELINE_USE_MOCK is enabled')
        if not self.search_url.startswith(('http://', 'https://')):
            raise ConfigError(f"MYSIDELINE_URL must be an http(s) URL, got '{self.search_url}'")
        if self.retry_attempts < 1:
            raise ConfigError('MYSIDELINE_RETRY_ATTEMPTS must be at least 1')
