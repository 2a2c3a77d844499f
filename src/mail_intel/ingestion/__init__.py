"""Message parsing and account synchronisation."""

from .parser import EmailParser
from .sync import SyncOrchestrator

__all__ = ["EmailParser", "SyncOrchestrator"]
