"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Protocol

from .models import (
    Classification,
    EmailAccount,
    EmailFolder,
    EmailMessage,
    MessagePage,
    MessageQuery,
    MetricSample,
    OperationalMetric,
    RawMessage,
)


class ProviderAdapter(Protocol):
    """Abstraction over a mail source such as IMAP."""

    async def authenticate(self, account: EmailAccount) -> str:
        """Authenticate the account and return the credential used for fetching."""
        raise NotImplementedError

    async def fetch_messages(
        self, account: EmailAccount, folder: EmailFolder, since: datetime
    ) -> Sequence[RawMessage]:
        """Return messages in ``folder`` received on or after ``since``."""
        raise NotImplementedError


class MessageRepository(Protocol):
    """Abstraction for message persistence."""

    async def exists(self, message_id: str) -> bool:
        raise NotImplementedError

    async def add(self, message: EmailMessage) -> bool:
        """Insert a message unless its ``message_id`` is already stored.

        Returns ``True`` when a row was written. Duplicates are a no-op.
        """
        raise NotImplementedError

    async def update(self, message: EmailMessage) -> None:
        """Persist changes to a message and its attachments."""
        raise NotImplementedError

    async def get_by_message_id(self, message_id: str) -> EmailMessage | None:
        raise NotImplementedError

    async def query(self, query: MessageQuery) -> MessagePage:
        """Return a page of messages for a user matching the filters."""
        raise NotImplementedError


class AccountRepository(Protocol):
    """Abstraction for the account registry."""

    async def add(self, account: EmailAccount) -> None:
        raise NotImplementedError

    async def get_by_id(self, account_id: str) -> EmailAccount | None:
        raise NotImplementedError

    async def update(self, account: EmailAccount) -> None:
        raise NotImplementedError

    async def list_accounts(self) -> Sequence[EmailAccount]:
        raise NotImplementedError

    async def get_accounts_needing_sync(
        self, now: datetime, *, stale_after: timedelta | None = None
    ) -> Sequence[EmailAccount]:
        """Return active accounts whose interval elapsed, plus stale InProgress ones."""
        raise NotImplementedError


class MetricsRepository(Protocol):
    """Abstraction over historical operational metrics."""

    async def get_series(
        self, metric_name: str, start: datetime, end: datetime
    ) -> Sequence[MetricSample]:
        """Return samples for ``metric_name`` between ``start`` and ``end``."""
        raise NotImplementedError

    async def add_metric(self, metric: OperationalMetric) -> None:
        raise NotImplementedError


class ClassificationBackend(Protocol):
    """Chat completion capability used by the AI classification strategy."""

    provider_id: str

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the raw text produced by the model."""
        raise NotImplementedError


class Classifier(Protocol):
    """Anything that maps a message to a classification."""

    async def classify(self, message: EmailMessage) -> Classification:
        raise NotImplementedError


__all__ = [
    "AccountRepository",
    "ClassificationBackend",
    "Classifier",
    "MessageRepository",
    "MetricsRepository",
    "ProviderAdapter",
]
