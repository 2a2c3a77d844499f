"""Account synchronisation orchestration."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import PurePosixPath
from uuid import uuid4

from ..core.config import SyncSettings
from ..core.datetime_utils import subtract_months, utc_now
from ..core.errors import FolderSyncError
from ..core.interfaces import (
    AccountRepository,
    Classifier,
    MessageRepository,
    ProviderAdapter,
)
from ..core.models import (
    EmailAccount,
    EmailAttachment,
    EmailFolder,
    EmailMessage,
    FolderSyncResult,
    MessageQuery,
    RawAttachment,
    RawMessage,
    SyncResult,
    SyncStatus,
    detect_attachment_type,
)
from ..intelligence.attachments import AttachmentProcessor

LOGGER = logging.getLogger(__name__)

ACCOUNT_NOT_FOUND = "Email account not found"
SYNC_IN_PROGRESS = "Sync already in progress for this account"


def _new_id() -> str:
    return uuid4().hex


class SyncOrchestrator:
    """Drive sync attempts for linked accounts."""

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        accounts: AccountRepository,
        messages: MessageRepository,
        provider: ProviderAdapter,
        classifier: Classifier,
        attachment_processor: AttachmentProcessor,
        *,
        settings: SyncSettings | None = None,
        attachments_root: str = "attachments",
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._accounts = accounts
        self._messages = messages
        self._provider = provider
        self._classifier = classifier
        self._attachment_processor = attachment_processor
        self._settings = settings or SyncSettings()
        self._attachments_root = PurePosixPath(attachments_root)
        self._clock = clock
        self._id_factory = id_factory
        self._folders = tuple(EmailFolder(name) for name in self._settings.folders)
        self._stale_after = timedelta(minutes=self._settings.stale_sync_minutes)
        self._active: set[str] = set()

    # Public API -----------------------------------------------------------

    async def sync_account(
        self, account_id: str, start_date: datetime | None = None
    ) -> SyncResult:
        """Run one sync attempt; failures are reported on the result."""
        started_at = self._clock()
        # Claimed before the first await so a second call in this process sees it.
        if account_id in self._active:
            LOGGER.warning("Account %s is already syncing; skipping", account_id)
            return self._failed(account_id, started_at, SYNC_IN_PROGRESS, "in_progress")
        self._active.add(account_id)
        try:
            return await self._run_attempt(account_id, started_at, start_date)
        finally:
            self._active.discard(account_id)

    async def sync_all_accounts(self, concurrency: int | None = None) -> list[SyncResult]:
        """Sync every account that is due; one failure never stops the rest."""
        accounts = await self._accounts.get_accounts_needing_sync(
            self._clock(), stale_after=self._stale_after
        )
        limit = concurrency or self._settings.account_concurrency
        LOGGER.info("Syncing %s account(s) with concurrency %s", len(accounts), limit)
        if limit <= 1:
            return [await self._sync_guarded(account) for account in accounts]

        semaphore = asyncio.Semaphore(limit)

        async def run(account: EmailAccount) -> SyncResult:
            async with semaphore:
                return await self._sync_guarded(account)

        return list(await asyncio.gather(*(run(account) for account in accounts)))

    # Sync attempt ---------------------------------------------------------

    async def _run_attempt(
        self, account_id: str, started_at: datetime, start_date: datetime | None
    ) -> SyncResult:
        account = await self._accounts.get_by_id(account_id)
        if account is None:
            LOGGER.warning("Sync requested for unknown account %s", account_id)
            return self._failed(account_id, started_at, ACCOUNT_NOT_FOUND, "not_found")
        if account.status is SyncStatus.IN_PROGRESS:
            if not account.is_sync_stale(started_at, self._stale_after):
                LOGGER.warning("Account %s is already syncing; skipping", account_id)
                return self._failed(
                    account_id, started_at, SYNC_IN_PROGRESS, "in_progress"
                )
            LOGGER.warning(
                "Account %s has an unfinished sync from %s; marking it failed",
                account_id,
                account.last_sync_attempt_at,
            )
            account.abandon_sync(max_failures=self._settings.max_consecutive_failures)
            await self._accounts.update(account)

        since = start_date or self._default_start(started_at)
        account.begin_sync(started_at)
        await self._accounts.update(account)
        LOGGER.info(
            "Starting sync for account %s (%s) since %s",
            account.id,
            account.email_address,
            since.isoformat(),
        )

        result = SyncResult(account_id=account.id, success=True, started_at=started_at)
        try:
            await self._provider.authenticate(account)
            for folder in self._folders:
                result.folders.append(await self._sync_folder(account, folder, since))
        except Exception as exc:  # pylint: disable=broad-except
            error = str(exc)
            LOGGER.error("Sync failed for account %s: %s", account.id, error)
            account.fail_sync(error, max_failures=self._settings.max_consecutive_failures)
            await self._accounts.update(account)
            if not account.is_active:
                LOGGER.warning(
                    "Account %s deactivated after %s consecutive failures",
                    account.id,
                    account.consecutive_failures,
                )
            result.success = False
            result.error_message = error
            result.error_kind = "provider_failure"
            result.completed_at = self._clock()
            return result

        completed_at = self._clock()
        account.complete_sync(
            completed_at, result.emails_processed, result.attachments_processed
        )
        await self._accounts.update(account)
        result.completed_at = completed_at
        LOGGER.info(
            "Finished sync for account %s: %s emails, %s attachments",
            account.id,
            result.emails_processed,
            result.attachments_processed,
        )
        return result

    # Folder traversal -----------------------------------------------------

    async def _sync_folder(
        self, account: EmailAccount, folder: EmailFolder, since: datetime
    ) -> FolderSyncResult:
        outcome = FolderSyncResult(folder=folder)
        try:
            raw_messages = await self._provider.fetch_messages(account, folder, since)
            LOGGER.debug(
                "Fetched %s message(s) from %s for account %s",
                len(raw_messages),
                folder,
                account.id,
            )
            for raw in raw_messages:
                await self._ingest(account, folder, raw, outcome)
            await self._classify_pending(account, since)
        except Exception as exc:
            raise FolderSyncError(str(folder), exc) from exc
        return outcome

    async def _ingest(
        self,
        account: EmailAccount,
        folder: EmailFolder,
        raw: RawMessage,
        outcome: FolderSyncResult,
    ) -> None:
        try:
            if await self._messages.exists(raw.message_id):
                LOGGER.debug("Skipping known message %s", raw.message_id)
                outcome.emails_skipped += 1
                return
            message = self._build_message(account, folder, raw)
            if not await self._messages.add(message):
                LOGGER.debug("Message %s stored concurrently", raw.message_id)
                outcome.emails_skipped += 1
                return
            for raw_attachment in raw.attachments:
                attachment = self._build_attachment(message, raw_attachment)
                await self._attachment_processor.process(
                    attachment, raw_attachment.content
                )
                message.add_attachment(attachment)
                await self._messages.update(message)
                outcome.attachments_processed += 1
            outcome.emails_processed += 1
        except Exception:  # pylint: disable=broad-except
            outcome.emails_failed += 1
            LOGGER.warning(
                "Failed to store message %s for account %s",
                raw.message_id,
                account.id,
                exc_info=True,
            )

    async def _classify_pending(self, account: EmailAccount, since: datetime) -> int:
        page = await self._messages.query(
            MessageQuery(
                user_id=account.user_id,
                ai_processed=False,
                created_since=since,
                limit=self._settings.classification_batch_limit,
            )
        )
        classified = 0
        for message in page.items:
            try:
                classification = await self._classifier.classify(message)
                message.apply_classification(classification, self._clock())
                await self._messages.update(message)
                classified += 1
            except Exception:  # pylint: disable=broad-except
                LOGGER.warning(
                    "Failed to classify message %s", message.message_id, exc_info=True
                )
        if classified:
            LOGGER.debug("Classified %s message(s) for user %s", classified, account.user_id)
        return classified

    # Helpers --------------------------------------------------------------

    async def _sync_guarded(self, account: EmailAccount) -> SyncResult:
        try:
            return await self.sync_account(account.id)
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.exception("Unexpected error syncing account %s", account.id)
            return self._failed(account.id, self._clock(), str(exc), "unexpected")

    def _default_start(self, now: datetime) -> datetime:
        return subtract_months(now, self._settings.initial_sync_months)

    def _failed(
        self, account_id: str, started_at: datetime, error: str, kind: str
    ) -> SyncResult:
        return SyncResult(
            account_id=account_id,
            success=False,
            started_at=started_at,
            completed_at=self._clock(),
            error_message=error,
            error_kind=kind,
        )

    def _build_message(
        self, account: EmailAccount, folder: EmailFolder, raw: RawMessage
    ) -> EmailMessage:
        return EmailMessage(
            id=self._id_factory(),
            message_id=raw.message_id,
            account_id=account.id,
            user_id=account.user_id,
            subject=raw.subject,
            from_address=raw.from_address,
            from_name=raw.from_name,
            to_addresses=raw.to_addresses,
            cc_addresses=raw.cc_addresses,
            sent_at=raw.sent_at,
            received_at=raw.received_at,
            created_at=self._clock(),
            folder=folder,
            conversation_id=raw.conversation_id,
            in_reply_to=raw.in_reply_to,
            body_text=raw.body_text,
            body_html=raw.body_html,
            is_read=raw.is_read,
            is_flagged=raw.is_flagged,
            is_draft=raw.is_draft,
        )

    def _build_attachment(
        self, message: EmailMessage, raw: RawAttachment
    ) -> EmailAttachment:
        return EmailAttachment(
            id=self._id_factory(),
            message_id=message.id,
            filename=raw.filename,
            content_type=raw.content_type,
            size=raw.size,
            storage_path=str(self._attachments_root / message.id / raw.filename),
            external_id=raw.external_id,
            attachment_type=detect_attachment_type(raw.filename, raw.content_type),
        )


__all__ = ["ACCOUNT_NOT_FOUND", "SYNC_IN_PROGRESS", "SyncOrchestrator"]
