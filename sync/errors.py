"""Exception kinds raised by the MySideline sync pipeline."""


class MySidelineSyncError(Exception):
    """Base class for sync pipeline errors."""


class ConfigError(MySidelineSyncError):
    """Configuration is missing or invalid; the run cannot start."""


class BrowserUnavailableError(MySidelineSyncError):
    """The headless browser could not be launched or was lost."""


class TransientNetworkError(MySidelineSyncError):
    """Navigation or a browser action timed out after all retries."""


class StructuralMismatchError(MySidelineSyncError):
    """The page no longer has the structure the scraper expects."""


class StoreTransientError(MySidelineSyncError):
    """The event store returned a retryable failure."""


class SyncBusyError(MySidelineSyncError):
    """A sync run is already in progress."""
