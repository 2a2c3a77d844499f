"""Mail provider transports."""

from .imap_client import ImapProviderAdapter, imap_since

__all__ = ["ImapProviderAdapter", "imap_since"]
