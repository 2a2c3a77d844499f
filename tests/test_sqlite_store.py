"""Tests for the SQLite-backed repositories."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from mail_intel.core.config import StorageSettings
from mail_intel.core.models import (
    AttachmentType,
    EmailAccount,
    EmailAttachment,
    EmailFolder,
    EmailMessage,
    EmailProvider,
    MessageQuery,
    OperationalMetric,
    ProcessingStatus,
    SyncStatus,
)
from mail_intel.intelligence.rules import RuleBasedClassifier
from mail_intel.storage import AccountRegistry, SqliteStore

NOW = datetime(2025, 10, 24, 15, 0, tzinfo=UTC)


def _message(index: int, **overrides: object) -> EmailMessage:
    values: dict[str, object] = {
        "id": f"msg-{index}",
        "message_id": f"<{index}@example.com>",
        "account_id": "acc-1",
        "user_id": "user-1",
        "subject": f"Subject {index}",
        "from_address": "sender@example.com",
        "received_at": NOW - timedelta(hours=index),
        "created_at": NOW,
        "to_addresses": ("user@example.com",),
        "body_text": "Hello there",
    }
    values.update(overrides)
    return EmailMessage(**values)  # type: ignore[arg-type]


def _store(tmp_path: Path) -> SqliteStore:
    return SqliteStore(StorageSettings(db_path=tmp_path / "mail.db"))


@pytest.mark.asyncio
async def test_add_is_unique_per_message_id(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        assert await store.add(_message(1)) is True
        duplicate = _message(1, id="msg-other")
        assert await store.add(duplicate) is False

        assert await store.exists("<1@example.com>") is True
        assert await store.exists("<2@example.com>") is False
        stored = await store.get_by_message_id("<1@example.com>")

    assert stored is not None
    assert stored.id == "msg-1"
    assert stored.to_addresses == ("user@example.com",)
    assert stored.received_at == NOW - timedelta(hours=1)
    assert stored.body_preview == "Hello there"


@pytest.mark.asyncio
async def test_update_persists_classification_and_attachments(tmp_path: Path) -> None:
    message = _message(1, body_text="Please review the project budget")
    with _store(tmp_path) as store:
        await store.add(message)
        classification = await RuleBasedClassifier().classify(message)
        message.apply_classification(classification, NOW)
        message.add_attachment(
            EmailAttachment(
                id="att-1",
                message_id=message.id,
                filename="plan.pdf",
                content_type="application/pdf",
                size=128,
                storage_path="attachments/msg-1/plan.pdf",
                attachment_type=AttachmentType.PDF,
                status=ProcessingStatus.FAILED,
                processing_error="Error processing attachment: bad header",
            )
        )
        await store.update(message)
        stored = await store.get_by_message_id(message.message_id)

    assert stored is not None
    assert stored.is_ai_processed is True
    assert stored.ai_processed_at == NOW
    assert stored.category == classification.category
    assert stored.keywords == ("project", "budget")
    assert stored.has_attachments is True
    assert [item.filename for item in stored.attachments] == ["plan.pdf"]
    assert stored.attachments[0].status is ProcessingStatus.FAILED


@pytest.mark.asyncio
async def test_update_of_unknown_message_raises(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        with pytest.raises(KeyError):
            await store.update(_message(9))


@pytest.mark.asyncio
async def test_query_filters_and_paginates(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        await store.add(_message(1))
        await store.add(_message(2, is_read=True))
        await store.add(_message(3, folder=EmailFolder.SENT))
        await store.add(_message(4, user_id="someone-else"))
        await store.add(_message(5, created_at=NOW - timedelta(days=30)))

        everything = await store.query(MessageQuery(user_id="user-1"))
        unread = await store.query(MessageQuery(user_id="user-1", is_read=False))
        sent = await store.query(
            MessageQuery(user_id="user-1", folder=EmailFolder.SENT)
        )
        recent = await store.query(
            MessageQuery(user_id="user-1", created_since=NOW - timedelta(days=1))
        )
        second_page = await store.query(
            MessageQuery(user_id="user-1", offset=1, limit=2)
        )

    assert everything.total == 4
    assert [item.id for item in everything.items] == [
        "msg-1",
        "msg-2",
        "msg-3",
        "msg-5",
    ]
    assert unread.total == 3
    assert [item.id for item in sent.items] == ["msg-3"]
    assert recent.total == 3
    assert second_page.total == 4
    assert [item.id for item in second_page.items] == ["msg-2", "msg-3"]


@pytest.mark.asyncio
async def test_pending_classification_query(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        first, second = _message(1), _message(2)
        await store.add(first)
        await store.add(second)
        first.apply_classification(await RuleBasedClassifier().classify(first), NOW)
        await store.update(first)

        pending = await store.query(MessageQuery(user_id="user-1", ai_processed=False))

    assert [item.id for item in pending.items] == ["msg-2"]


@pytest.mark.asyncio
async def test_account_round_trip_and_due_selection(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        registry = AccountRegistry(store)
        due = EmailAccount(
            id="acc-1",
            email_address="a@example.com",
            provider=EmailProvider.GMAIL,
            user_id="user-1",
        )
        recent = EmailAccount(
            id="acc-2",
            email_address="b@example.com",
            provider=EmailProvider.IMAP,
            user_id="user-1",
            imap_host="mail.example.com",
            imap_port=993,
        )
        await registry.add(due)
        await registry.add(recent)

        recent.begin_sync(NOW)
        recent.complete_sync(NOW, emails=4, attachments=1)
        await registry.update(recent)

        stored = await registry.get_by_id("acc-2")
        missing = await registry.get_by_id("nope")
        needing_sync = await registry.get_accounts_needing_sync(
            NOW + timedelta(minutes=1)
        )
        listed = await registry.list_accounts()

    assert stored is not None
    assert stored.status is SyncStatus.COMPLETED
    assert stored.total_emails_synced == 4
    assert stored.last_synced_at == NOW
    assert stored.imap_host == "mail.example.com"
    assert missing is None
    assert [account.id for account in needing_sync] == ["acc-1"]
    assert {account.id for account in listed} == {"acc-1", "acc-2"}


@pytest.mark.asyncio
async def test_stale_in_progress_accounts_are_due(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        account = EmailAccount(
            id="acc-1",
            email_address="a@example.com",
            provider=EmailProvider.IMAP,
            user_id="user-1",
        )
        account.begin_sync(NOW)
        await store.add_account(account)

        later = NOW + timedelta(minutes=45)
        without_window = await store.get_accounts_needing_sync(later)
        fresh = await store.get_accounts_needing_sync(
            later, stale_after=timedelta(hours=1)
        )
        stale = await store.get_accounts_needing_sync(
            later, stale_after=timedelta(minutes=30)
        )

    assert without_window == []
    assert fresh == []
    assert [item.id for item in stale] == ["acc-1"]
    assert stale[0].last_sync_attempt_at == NOW


@pytest.mark.asyncio
async def test_metric_series_is_ordered_and_bounded(tmp_path: Path) -> None:
    with _store(tmp_path) as store:
        for offset, value in ((2, 30.0), (0, 10.0), (1, 20.0), (10, 99.0)):
            metric = OperationalMetric(
                name="emails_synced",
                value=value,
                timestamp=NOW - timedelta(days=offset),
            )
            await store.add_metric(metric)
            assert metric.id is not None
        await store.add_metric(
            OperationalMetric(name="other", value=1.0, timestamp=NOW)
        )

        series = await store.get_series("emails_synced", NOW - timedelta(days=5), NOW)

    assert [sample.value for sample in series] == [30.0, 20.0, 10.0]
    assert series[-1].timestamp == NOW


def test_schema_is_created(tmp_path: Path) -> None:
    db_path = tmp_path / "mail.db"
    SqliteStore(StorageSettings(db_path=db_path)).close()

    with sqlite3.connect(db_path) as connection:
        tables = {
            row[0]
            for row in connection.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table'"
            )
        }

    assert {"accounts", "messages", "attachments", "metrics"} <= tables
