"""SQLite-backed repositories for accounts, messages and metrics."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta
from pathlib import Path
from types import TracebackType
from typing import Any, TypeVar

from ..core.config import StorageSettings
from ..core.datetime_utils import parse_datetime, serialize_datetime
from ..core.models import (
    AttachmentType,
    DocumentCategory,
    EmailAccount,
    EmailAttachment,
    EmailCategory,
    EmailFolder,
    EmailMessage,
    EmailPriority,
    EmailProvider,
    MessagePage,
    MessageQuery,
    MetricSample,
    OperationalMetric,
    ProcessingStatus,
    Sentiment,
    SyncStatus,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_MESSAGE_COLUMNS = (
    "id",
    "message_id",
    "account_id",
    "user_id",
    "subject",
    "from_address",
    "from_name",
    "to_addresses",
    "cc_addresses",
    "sent_at",
    "received_at",
    "created_at",
    "folder",
    "conversation_id",
    "in_reply_to",
    "body_text",
    "body_html",
    "body_preview",
    "is_read",
    "is_flagged",
    "is_draft",
    "has_attachments",
    "priority",
    "category",
    "sentiment",
    "contains_action_items",
    "requires_response",
    "suggested_response_by",
    "ai_summary",
    "keywords",
    "action_items",
    "confidence",
    "is_ai_processed",
    "ai_processed_at",
)

_ACCOUNT_COLUMNS = (
    "id",
    "email_address",
    "provider",
    "user_id",
    "display_name",
    "is_active",
    "is_primary",
    "status",
    "last_synced_at",
    "last_sync_attempt_at",
    "consecutive_failures",
    "last_sync_error",
    "total_emails_synced",
    "total_attachments_synced",
    "sync_interval_minutes",
    "imap_host",
    "imap_port",
    "use_ssl",
)

_ATTACHMENT_COLUMNS = (
    "id",
    "message_id",
    "external_id",
    "filename",
    "content_type",
    "size",
    "storage_path",
    "attachment_type",
    "status",
    "extracted_text",
    "word_count",
    "ai_summary",
    "keywords",
    "document_category",
    "confidence",
    "processed_at",
    "processing_error",
)


def _placeholders(columns: Sequence[str]) -> str:
    return ", ".join("?" for _ in columns)


def _assignments(columns: Sequence[str]) -> str:
    return ", ".join(f"{column} = ?" for column in columns if column != "id")


class SqliteStore:
    """Persist accounts, messages, attachments and metrics in SQLite.

    All public methods are coroutines that run the blocking ``sqlite3`` calls
    in a worker thread. A single connection is shared and guarded by a lock,
    so the store is safe to use from concurrent account syncs.
    """

    def __init__(self, settings: StorageSettings) -> None:
        self._settings = settings
        db_path = Path(settings.db_path)
        if str(db_path) != ":memory:":
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._enable_foreign_keys()
        self._apply_migrations()

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        with self._lock:
            self._connection.close()

    # MessageRepository API ---------------------------------------------------
    async def exists(self, message_id: str) -> bool:
        return await self._run(self._exists, message_id)

    async def add(self, message: EmailMessage) -> bool:
        """Insert ``message`` unless its ``message_id`` is already stored."""
        return await self._run(self._add_message, message)

    async def update(self, message: EmailMessage) -> None:
        await self._run(self._update_message, message)

    async def get_by_message_id(self, message_id: str) -> EmailMessage | None:
        return await self._run(self._get_by_message_id, message_id)

    async def query(self, query: MessageQuery) -> MessagePage:
        return await self._run(self._query_messages, query)

    # AccountRepository API ---------------------------------------------------
    async def add_account(self, account: EmailAccount) -> None:
        await self._run(self._add_account, account)

    async def get_account(self, account_id: str) -> EmailAccount | None:
        return await self._run(self._get_account, account_id)

    async def update_account(self, account: EmailAccount) -> None:
        await self._run(self._update_account, account)

    async def list_accounts(self) -> list[EmailAccount]:
        return await self._run(self._list_accounts)

    async def get_accounts_needing_sync(
        self, now: datetime, *, stale_after: timedelta | None = None
    ) -> list[EmailAccount]:
        accounts = await self._run(self._list_accounts)
        return [
            account
            for account in accounts
            if account.should_sync_now(now, stale_after=stale_after)
        ]

    # MetricsRepository API ---------------------------------------------------
    async def add_metric(self, metric: OperationalMetric) -> None:
        await self._run(self._add_metric, metric)

    async def get_series(
        self, metric_name: str, start: datetime, end: datetime
    ) -> list[MetricSample]:
        return await self._run(self._get_series, metric_name, start, end)

    # Message helpers ---------------------------------------------------------
    def _exists(self, message_id: str) -> bool:
        cur = self._connection.execute(
            "SELECT 1 FROM messages WHERE message_id = ? LIMIT 1", (message_id,)
        )
        return cur.fetchone() is not None

    def _add_message(self, message: EmailMessage) -> bool:
        columns = ", ".join(_MESSAGE_COLUMNS)
        with self._connection:
            cur = self._connection.execute(
                f"INSERT INTO messages ({columns}) "
                f"VALUES ({_placeholders(_MESSAGE_COLUMNS)}) "
                "ON CONFLICT(message_id) DO NOTHING",
                _message_values(message),
            )
            inserted = cur.rowcount == 1
            if inserted:
                self._replace_attachments(message)
        if inserted:
            LOGGER.debug("Stored message %s", message.message_id)
        return inserted

    def _update_message(self, message: EmailMessage) -> None:
        values = _message_values(message)
        with self._connection:
            cur = self._connection.execute(
                f"UPDATE messages SET {_assignments(_MESSAGE_COLUMNS)} WHERE id = ?",
                (*values[1:], message.id),
            )
            if cur.rowcount == 0:
                raise KeyError(f"Message {message.id} is not stored")
            self._replace_attachments(message)

    def _replace_attachments(self, message: EmailMessage) -> None:
        self._connection.execute(
            "DELETE FROM attachments WHERE message_id = ?", (message.id,)
        )
        if not message.attachments:
            return
        columns = ", ".join(_ATTACHMENT_COLUMNS)
        self._connection.executemany(
            f"INSERT INTO attachments ({columns}) "
            f"VALUES ({_placeholders(_ATTACHMENT_COLUMNS)})",
            [_attachment_values(item) for item in message.attachments],
        )

    def _get_by_message_id(self, message_id: str) -> EmailMessage | None:
        cur = self._connection.execute(
            "SELECT * FROM messages WHERE message_id = ?", (message_id,)
        )
        row = cur.fetchone()
        if row is None:
            return None
        return self._hydrate_messages([row])[0]

    def _query_messages(self, query: MessageQuery) -> MessagePage:
        clauses = ["user_id = ?"]
        params: list[Any] = [query.user_id]
        if query.account_id is not None:
            clauses.append("account_id = ?")
            params.append(query.account_id)
        if query.folder is not None:
            clauses.append("folder = ?")
            params.append(str(query.folder))
        if query.is_read is not None:
            clauses.append("is_read = ?")
            params.append(int(query.is_read))
        if query.ai_processed is not None:
            clauses.append("is_ai_processed = ?")
            params.append(int(query.ai_processed))
        if query.created_since is not None:
            clauses.append("created_at >= ?")
            params.append(serialize_datetime(query.created_since))
        where = " AND ".join(clauses)

        total = self._connection.execute(
            f"SELECT COUNT(*) FROM messages WHERE {where}", params
        ).fetchone()[0]
        cur = self._connection.execute(
            f"SELECT * FROM messages WHERE {where} "
            "ORDER BY received_at DESC, id LIMIT ? OFFSET ?",
            (*params, query.limit, query.offset),
        )
        return MessagePage(items=self._hydrate_messages(cur.fetchall()), total=int(total))

    def _hydrate_messages(self, rows: Iterable[sqlite3.Row]) -> list[EmailMessage]:
        messages = [_row_to_message(row) for row in rows]
        if not messages:
            return messages
        by_id = {message.id: message for message in messages}
        query = (
            "SELECT * FROM attachments WHERE message_id IN "
            f"({_placeholders(list(by_id))}) ORDER BY rowid"
        )
        for row in self._connection.execute(query, list(by_id)):
            by_id[row["message_id"]].attachments.append(_row_to_attachment(row))
        return messages

    # Account helpers ---------------------------------------------------------
    def _add_account(self, account: EmailAccount) -> None:
        columns = ", ".join(_ACCOUNT_COLUMNS)
        with self._connection:
            self._connection.execute(
                f"INSERT INTO accounts ({columns}) "
                f"VALUES ({_placeholders(_ACCOUNT_COLUMNS)})",
                _account_values(account),
            )

    def _update_account(self, account: EmailAccount) -> None:
        values = _account_values(account)
        with self._connection:
            cur = self._connection.execute(
                f"UPDATE accounts SET {_assignments(_ACCOUNT_COLUMNS)} WHERE id = ?",
                (*values[1:], account.id),
            )
        if cur.rowcount == 0:
            raise KeyError(f"Account {account.id} is not stored")

    def _get_account(self, account_id: str) -> EmailAccount | None:
        cur = self._connection.execute(
            "SELECT * FROM accounts WHERE id = ?", (account_id,)
        )
        row = cur.fetchone()
        return _row_to_account(row) if row else None

    def _list_accounts(self) -> list[EmailAccount]:
        cur = self._connection.execute(
            "SELECT * FROM accounts ORDER BY is_primary DESC, email_address"
        )
        return [_row_to_account(row) for row in cur.fetchall()]

    # Metric helpers ----------------------------------------------------------
    def _add_metric(self, metric: OperationalMetric) -> None:
        with self._connection:
            cur = self._connection.execute(
                """
                INSERT INTO metrics (
                    metric_name, category, source, value, unit, severity, timestamp
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    metric.name,
                    metric.category,
                    metric.source,
                    metric.value,
                    metric.unit,
                    metric.severity,
                    serialize_datetime(metric.timestamp),
                ),
            )
        metric.id = cur.lastrowid

    def _get_series(
        self, metric_name: str, start: datetime, end: datetime
    ) -> list[MetricSample]:
        cur = self._connection.execute(
            """
            SELECT timestamp, value FROM metrics
            WHERE metric_name = ? AND timestamp >= ? AND timestamp <= ?
            ORDER BY timestamp ASC, id ASC
            """,
            (metric_name, serialize_datetime(start), serialize_datetime(end)),
        )
        samples: list[MetricSample] = []
        for row in cur.fetchall():
            samples.append(
                MetricSample(
                    timestamp=_required_datetime(row["timestamp"], "metrics.timestamp"),
                    value=float(row["value"]),
                )
            )
        return samples

    # Internal helpers --------------------------------------------------------
    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(self._locked, func, *args)

    def _locked(self, func: Callable[..., T], *args: Any) -> T:
        with self._lock:
            return func(*args)

    def _enable_foreign_keys(self) -> None:
        with self._connection:
            self._connection.execute("PRAGMA foreign_keys = ON")

    def _apply_migrations(self) -> None:
        schema_dir = Path(__file__).resolve().parent / "schema"
        for migration in sorted(schema_dir.glob("*.sql")):
            LOGGER.debug("Applying migration %s", migration.name)
            script = migration.read_text(encoding="utf-8")
            with self._connection:
                self._connection.executescript(script)


class AccountRegistry:
    """Expose the account half of :class:`SqliteStore` as an account repository."""

    def __init__(self, store: SqliteStore) -> None:
        self._store = store

    async def add(self, account: EmailAccount) -> None:
        await self._store.add_account(account)

    async def get_by_id(self, account_id: str) -> EmailAccount | None:
        return await self._store.get_account(account_id)

    async def update(self, account: EmailAccount) -> None:
        await self._store.update_account(account)

    async def list_accounts(self) -> list[EmailAccount]:
        return await self._store.list_accounts()

    async def get_accounts_needing_sync(
        self, now: datetime, *, stale_after: timedelta | None = None
    ) -> list[EmailAccount]:
        return await self._store.get_accounts_needing_sync(now, stale_after=stale_after)


# Row mapping ----------------------------------------------------------------


def _required_datetime(value: str | None, column: str) -> datetime:
    parsed = parse_datetime(value)
    if parsed is None:
        raise ValueError(f"Column {column} must not be NULL")
    return parsed


def _dump_list(values: Iterable[str]) -> str:
    return json.dumps(list(values))


def _load_list(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(str(item) for item in json.loads(value))


def _message_values(message: EmailMessage) -> tuple[Any, ...]:
    return (
        message.id,
        message.message_id,
        message.account_id,
        message.user_id,
        message.subject,
        message.from_address,
        message.from_name,
        _dump_list(message.to_addresses),
        _dump_list(message.cc_addresses),
        serialize_datetime(message.sent_at),
        serialize_datetime(message.received_at),
        serialize_datetime(message.created_at),
        str(message.folder),
        message.conversation_id,
        message.in_reply_to,
        message.body_text,
        message.body_html,
        message.body_preview,
        int(message.is_read),
        int(message.is_flagged),
        int(message.is_draft),
        int(message.has_attachments),
        str(message.priority),
        str(message.category),
        str(message.sentiment),
        int(message.contains_action_items),
        int(message.requires_response),
        serialize_datetime(message.suggested_response_by),
        message.ai_summary,
        _dump_list(message.keywords),
        _dump_list(message.action_items),
        message.confidence,
        int(message.is_ai_processed),
        serialize_datetime(message.ai_processed_at),
    )


def _row_to_message(row: sqlite3.Row) -> EmailMessage:
    return EmailMessage(
        id=row["id"],
        message_id=row["message_id"],
        account_id=row["account_id"],
        user_id=row["user_id"],
        subject=row["subject"],
        from_address=row["from_address"],
        from_name=row["from_name"],
        to_addresses=_load_list(row["to_addresses"]),
        cc_addresses=_load_list(row["cc_addresses"]),
        sent_at=parse_datetime(row["sent_at"]),
        received_at=_required_datetime(row["received_at"], "messages.received_at"),
        created_at=_required_datetime(row["created_at"], "messages.created_at"),
        folder=EmailFolder(row["folder"]),
        conversation_id=row["conversation_id"],
        in_reply_to=row["in_reply_to"],
        body_text=row["body_text"],
        body_html=row["body_html"],
        body_preview=row["body_preview"],
        is_read=bool(row["is_read"]),
        is_flagged=bool(row["is_flagged"]),
        is_draft=bool(row["is_draft"]),
        has_attachments=bool(row["has_attachments"]),
        priority=EmailPriority(row["priority"]),
        category=EmailCategory(row["category"]),
        sentiment=Sentiment(row["sentiment"]),
        contains_action_items=bool(row["contains_action_items"]),
        requires_response=bool(row["requires_response"]),
        suggested_response_by=parse_datetime(row["suggested_response_by"]),
        ai_summary=row["ai_summary"],
        keywords=_load_list(row["keywords"]),
        action_items=_load_list(row["action_items"]),
        confidence=float(row["confidence"]),
        is_ai_processed=bool(row["is_ai_processed"]),
        ai_processed_at=parse_datetime(row["ai_processed_at"]),
    )


def _attachment_values(attachment: EmailAttachment) -> tuple[Any, ...]:
    return (
        attachment.id,
        attachment.message_id,
        attachment.external_id,
        attachment.filename,
        attachment.content_type,
        attachment.size,
        attachment.storage_path,
        str(attachment.attachment_type),
        str(attachment.status),
        attachment.extracted_text,
        attachment.word_count,
        attachment.ai_summary,
        _dump_list(attachment.keywords),
        str(attachment.document_category) if attachment.document_category else None,
        attachment.confidence,
        serialize_datetime(attachment.processed_at),
        attachment.processing_error,
    )


def _row_to_attachment(row: sqlite3.Row) -> EmailAttachment:
    category = row["document_category"]
    return EmailAttachment(
        id=row["id"],
        message_id=row["message_id"],
        external_id=row["external_id"],
        filename=row["filename"],
        content_type=row["content_type"],
        size=int(row["size"]),
        storage_path=row["storage_path"],
        attachment_type=AttachmentType(row["attachment_type"]),
        status=ProcessingStatus(row["status"]),
        extracted_text=row["extracted_text"],
        word_count=int(row["word_count"]),
        ai_summary=row["ai_summary"],
        keywords=_load_list(row["keywords"]),
        document_category=DocumentCategory(category) if category else None,
        confidence=row["confidence"],
        processed_at=parse_datetime(row["processed_at"]),
        processing_error=row["processing_error"],
    )


def _account_values(account: EmailAccount) -> tuple[Any, ...]:
    return (
        account.id,
        account.email_address,
        str(account.provider),
        account.user_id,
        account.display_name,
        int(account.is_active),
        int(account.is_primary),
        str(account.status),
        serialize_datetime(account.last_synced_at),
        serialize_datetime(account.last_sync_attempt_at),
        account.consecutive_failures,
        account.last_sync_error,
        account.total_emails_synced,
        account.total_attachments_synced,
        account.sync_interval_minutes,
        account.imap_host,
        account.imap_port,
        int(account.use_ssl),
    )


def _row_to_account(row: sqlite3.Row) -> EmailAccount:
    return EmailAccount(
        id=row["id"],
        email_address=row["email_address"],
        provider=EmailProvider(row["provider"]),
        user_id=row["user_id"],
        display_name=row["display_name"],
        is_active=bool(row["is_active"]),
        is_primary=bool(row["is_primary"]),
        status=SyncStatus(row["status"]),
        last_synced_at=parse_datetime(row["last_synced_at"]),
        last_sync_attempt_at=parse_datetime(row["last_sync_attempt_at"]),
        consecutive_failures=int(row["consecutive_failures"]),
        last_sync_error=row["last_sync_error"],
        total_emails_synced=int(row["total_emails_synced"]),
        total_attachments_synced=int(row["total_attachments_synced"]),
        sync_interval_minutes=int(row["sync_interval_minutes"]),
        imap_host=row["imap_host"],
        imap_port=row["imap_port"],
        use_ssl=bool(row["use_ssl"]),
    )


__all__ = ["AccountRegistry", "SqliteStore"]
