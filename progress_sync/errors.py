"""
Error taxonomy for the sync engine.

Only the remote store raises to its callers (reads); everything else reports
failures through sentinels or result objects.
"""


class ProgressSyncError(Exception):
    """Base class for sync engine errors."""


class RemoteStoreError(ProgressSyncError):
    """Transient failure talking to the remote record service (network, timeout, 5xx)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LocalStorageUnavailable(ProgressSyncError):
    """Device storage is disabled, full or unreadable."""


class IdentityResolutionError(ProgressSyncError):
    """The active identity could not be loaded or created."""
