"""SkinSync - keep storefront skin projects in sync with their FTP servers."""

from .exceptions import (
    SkinSyncAuthenticationError,
    SkinSyncBaselineMissingError,
    SkinSyncCancelledError,
    SkinSyncConfigError,
    SkinSyncError,
    SkinSyncNetworkError,
    SkinSyncRemotePathError,
    SkinSyncTransportError,
    SkinSyncUnsupportedError,
)
from .progress import CancellationToken
from .project import FtpCredential, Project, SolutionType, load_project
from .sync import InMemoryMetadataStore, JsonMetadataStore, SyncEngine
from .transport import FtpTransport, TransferResult

__all__ = [
    "SyncEngine",
    "FtpTransport",
    "TransferResult",
    "FtpCredential",
    "Project",
    "SolutionType",
    "load_project",
    "CancellationToken",
    "InMemoryMetadataStore",
    "JsonMetadataStore",
    "SkinSyncError",
    "SkinSyncConfigError",
    "SkinSyncUnsupportedError",
    "SkinSyncBaselineMissingError",
    "SkinSyncTransportError",
    "SkinSyncNetworkError",
    "SkinSyncAuthenticationError",
    "SkinSyncRemotePathError",
    "SkinSyncCancelledError",
]
