"""Exception hierarchy for SkinSync."""


class SkinSyncError(Exception):
    """Base exception for all SkinSync errors."""


class SkinSyncConfigError(SkinSyncError):
    """Raised when a project or the application is not configured correctly.

    Configuration errors are always raised before any network or
    filesystem mutation takes place.
    """


class SkinSyncUnsupportedError(SkinSyncConfigError):
    """Raised when an operation is not available for a solution type."""


class SkinSyncBaselineMissingError(SkinSyncConfigError):
    """Raised when an operation needs a baseline that was never captured."""


class SkinSyncTransportError(SkinSyncError):
    """Raised when an FTP operation fails."""


class SkinSyncNetworkError(SkinSyncTransportError):
    """Raised when a transient network error persists after all retries."""


class SkinSyncAuthenticationError(SkinSyncTransportError):
    """Raised when the FTP server rejects the credentials."""


class SkinSyncRemotePathError(SkinSyncTransportError):
    """Raised when the configured remote path cannot be listed."""


class SkinSyncCancelledError(SkinSyncError):
    """Raised when an operation is cancelled through its cancellation token."""
