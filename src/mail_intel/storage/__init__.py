"""Persistence layer for accounts, messages and metrics."""

from .sqlite import AccountRegistry, SqliteStore

__all__ = ["AccountRegistry", "SqliteStore"]
