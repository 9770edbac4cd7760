# cardsync/errors.py
"""Error types raised across the sync pipeline.

Stage errors propagate up to the scheduler's per-run handler; notification
errors never leave the notifier.
"""


class CardSyncError(Exception):
    """Base class for every error raised by cardsync."""


class ConfigurationError(CardSyncError):
    pass


class NetworkError(CardSyncError):
    """The target site could not be reached or the browser failed."""


class FetchTimeoutError(NetworkError, TimeoutError):
    """Navigation to the target site timed out."""


class PersistenceError(CardSyncError):
    """Storage unavailable or the upsert was rejected."""


class NotificationError(CardSyncError):
    """A webhook delivery failed. Only raised and caught inside the notifier."""


class SyncCancelledError(CardSyncError):
    """The run was aborted because the service is shutting down."""
