"""Core utilities for configuration, logging, models, and dependency wiring."""

from .config import AppSettings, LlmSettings, SyncSettings, load_app_settings
from .container import ServiceContainer
from .errors import (
    FolderSyncError,
    InvalidSyncTransitionError,
    MailIntelError,
    ProviderError,
)
from .logging import configure_logging

__all__ = [
    "AppSettings",
    "FolderSyncError",
    "InvalidSyncTransitionError",
    "LlmSettings",
    "MailIntelError",
    "ProviderError",
    "ServiceContainer",
    "SyncSettings",
    "configure_logging",
    "load_app_settings",
]
