"""Error hierarchy shared by the sync pipeline and its collaborators."""

from __future__ import annotations


class MailIntelError(RuntimeError):
    """Base class for application specific failures."""


class ProviderError(MailIntelError):
    """Raised by provider adapters on connection, auth or fetch failures."""


class InvalidSyncTransitionError(MailIntelError):
    """Raised when an account sync status change is not permitted."""


class FolderSyncError(MailIntelError):
    """Wrap a folder level failure, naming the folder that failed."""

    def __init__(self, folder: str, cause: BaseException) -> None:
        super().__init__(f"Error syncing {folder} folder: {cause}")
        self.folder = folder
        self.cause = cause


__all__ = [
    "FolderSyncError",
    "InvalidSyncTransitionError",
    "MailIntelError",
    "ProviderError",
]
