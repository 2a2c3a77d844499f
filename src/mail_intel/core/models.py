"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from pathlib import PurePath

from .errors import InvalidSyncTransitionError


class EmailProvider(StrEnum):
    """Mail provider backing an account."""

    IMAP = "IMAP"
    GMAIL = "Gmail"
    OUTLOOK = "Outlook"
    EXCHANGE = "Exchange"


class SyncStatus(StrEnum):
    """Lifecycle of an account sync attempt."""

    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    FAILED = "Failed"
    PAUSED = "Paused"


class EmailFolder(StrEnum):
    """Logical folder a message lives in."""

    INBOX = "Inbox"
    SENT = "Sent"
    DRAFTS = "Drafts"
    ARCHIVE = "Archive"
    JUNK = "Junk"
    TRASH = "Trash"
    CUSTOM = "Custom"


class EmailPriority(StrEnum):
    LOW = "Low"
    NORMAL = "Normal"
    HIGH = "High"
    URGENT = "Urgent"


class EmailCategory(StrEnum):
    GENERAL = "General"
    MEETING = "Meeting"
    PROJECT = "Project"
    DECISION = "Decision"
    ACTION = "Action"
    REPORT = "Report"
    FYI = "FYI"
    NEWSLETTER = "Newsletter"


class Sentiment(StrEnum):
    VERY_NEGATIVE = "VeryNegative"
    NEGATIVE = "Negative"
    NEUTRAL = "Neutral"
    POSITIVE = "Positive"
    VERY_POSITIVE = "VeryPositive"


class ProcessingStatus(StrEnum):
    PENDING = "Pending"
    PROCESSED = "Processed"
    FAILED = "Failed"


class AttachmentType(StrEnum):
    """Coarse file family used to pick a text extractor."""

    PDF = "PDF"
    WORD = "Word"
    EXCEL = "Excel"
    POWERPOINT = "PowerPoint"
    IMAGE = "Image"
    TEXT = "Text"
    ARCHIVE = "Archive"
    AUDIO = "Audio"
    VIDEO = "Video"
    EMAIL = "Email"
    CALENDAR = "Calendar"
    OTHER = "Other"


class DocumentCategory(StrEnum):
    CONTRACT = "Contract"
    REPORT = "Report"
    INVOICE = "Invoice"
    PROPOSAL = "Proposal"
    SPECIFICATION = "Specification"
    MANUAL = "Manual"
    PRESENTATION = "Presentation"
    SPREADSHEET = "Spreadsheet"
    CORRESPONDENCE = "Correspondence"
    LEGAL = "Legal"
    FINANCIAL = "Financial"
    TECHNICAL = "Technical"
    MARKETING = "Marketing"
    HR = "HR"
    OTHER = "Other"


# Sync state machine -------------------------------------------------------

ABANDONED_SYNC_ERROR = "Previous sync attempt did not finish"

_ALLOWED_TRANSITIONS: dict[SyncStatus, frozenset[SyncStatus]] = {
    SyncStatus.NOT_STARTED: frozenset({SyncStatus.IN_PROGRESS}),
    SyncStatus.COMPLETED: frozenset({SyncStatus.IN_PROGRESS}),
    SyncStatus.FAILED: frozenset({SyncStatus.IN_PROGRESS}),
    SyncStatus.PAUSED: frozenset({SyncStatus.IN_PROGRESS}),
    SyncStatus.IN_PROGRESS: frozenset({SyncStatus.COMPLETED, SyncStatus.FAILED}),
}


def transition(current: SyncStatus, target: SyncStatus) -> SyncStatus:
    """Return ``target`` if moving from ``current`` is allowed, else raise."""
    if target not in _ALLOWED_TRANSITIONS[current]:
        raise InvalidSyncTransitionError(
            f"Cannot move sync status from {current} to {target}"
        )
    return target


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class EmailAccount:
    """A linked mailbox and its sync bookkeeping."""

    id: str
    email_address: str
    provider: EmailProvider
    user_id: str
    display_name: str | None = None
    is_active: bool = True
    is_primary: bool = False
    status: SyncStatus = SyncStatus.NOT_STARTED
    last_synced_at: datetime | None = None
    last_sync_attempt_at: datetime | None = None
    consecutive_failures: int = 0
    last_sync_error: str | None = None
    total_emails_synced: int = 0
    total_attachments_synced: int = 0
    sync_interval_minutes: int = 5
    imap_host: str | None = None
    imap_port: int | None = None
    use_ssl: bool = True

    def begin_sync(self, now: datetime) -> None:
        self.status = transition(self.status, SyncStatus.IN_PROGRESS)
        self.last_sync_attempt_at = now

    def complete_sync(self, now: datetime, emails: int, attachments: int) -> None:
        self.status = transition(self.status, SyncStatus.COMPLETED)
        self.total_emails_synced += emails
        self.total_attachments_synced += attachments
        self.last_synced_at = now
        self.last_sync_error = None
        self.consecutive_failures = 0

    def fail_sync(self, error: str, *, max_failures: int = 5) -> None:
        """Record a failed attempt; deactivate after too many in a row."""
        self.status = transition(self.status, SyncStatus.FAILED)
        self.last_sync_error = error
        self.consecutive_failures += 1
        if self.consecutive_failures >= max_failures:
            self.is_active = False

    def pause(self) -> None:
        if self.status is SyncStatus.IN_PROGRESS:
            raise InvalidSyncTransitionError("Cannot pause an account while syncing")
        self.status = SyncStatus.PAUSED

    def activate(self) -> None:
        self.is_active = True
        self.consecutive_failures = 0

    def is_sync_stale(self, now: datetime, stale_after: timedelta) -> bool:
        """True when an InProgress attempt started at least ``stale_after`` ago."""
        if self.status is not SyncStatus.IN_PROGRESS:
            return False
        if self.last_sync_attempt_at is None:
            return True
        return now - self.last_sync_attempt_at >= stale_after

    def abandon_sync(self, *, max_failures: int = 5) -> None:
        """Close a stale InProgress attempt as Failed so a new one can start."""
        self.fail_sync(ABANDONED_SYNC_ERROR, max_failures=max_failures)

    def should_sync_now(
        self, now: datetime, *, stale_after: timedelta | None = None
    ) -> bool:
        if not self.is_active:
            return False
        if self.status is SyncStatus.IN_PROGRESS:
            return stale_after is not None and self.is_sync_stale(now, stale_after)
        if self.last_synced_at is None:
            return True
        interval = timedelta(minutes=self.sync_interval_minutes)
        return now - self.last_synced_at >= interval


@dataclass(frozen=True, slots=True)
class Classification:
    """Outcome of analysing one message."""

    priority: EmailPriority
    category: EmailCategory
    sentiment: Sentiment
    contains_action_items: bool
    requires_response: bool
    summary: str
    keywords: tuple[str, ...]
    action_items: tuple[str, ...]
    confidence: float
    provider: str
    used_fallback: bool = False


_RESPONSE_WINDOWS: dict[EmailPriority, timedelta] = {
    EmailPriority.URGENT: timedelta(hours=2),
    EmailPriority.HIGH: timedelta(hours=24),
    EmailPriority.NORMAL: timedelta(days=3),
    EmailPriority.LOW: timedelta(days=7),
}

PREVIEW_LENGTH = 200


def _extension(filename: str) -> str:
    return PurePath(filename).suffix.lower()


_EXTENSION_TYPES: dict[str, AttachmentType] = {
    ".pdf": AttachmentType.PDF,
    ".doc": AttachmentType.WORD,
    ".docx": AttachmentType.WORD,
    ".xls": AttachmentType.EXCEL,
    ".xlsx": AttachmentType.EXCEL,
    ".csv": AttachmentType.EXCEL,
    ".ppt": AttachmentType.POWERPOINT,
    ".pptx": AttachmentType.POWERPOINT,
    ".jpg": AttachmentType.IMAGE,
    ".jpeg": AttachmentType.IMAGE,
    ".png": AttachmentType.IMAGE,
    ".gif": AttachmentType.IMAGE,
    ".bmp": AttachmentType.IMAGE,
    ".txt": AttachmentType.TEXT,
    ".md": AttachmentType.TEXT,
    ".log": AttachmentType.TEXT,
    ".zip": AttachmentType.ARCHIVE,
    ".rar": AttachmentType.ARCHIVE,
    ".7z": AttachmentType.ARCHIVE,
    ".mp3": AttachmentType.AUDIO,
    ".wav": AttachmentType.AUDIO,
    ".mp4": AttachmentType.VIDEO,
    ".avi": AttachmentType.VIDEO,
    ".mov": AttachmentType.VIDEO,
    ".eml": AttachmentType.EMAIL,
    ".msg": AttachmentType.EMAIL,
    ".ics": AttachmentType.CALENDAR,
}


def detect_attachment_type(filename: str, content_type: str) -> AttachmentType:
    """Derive the attachment family from the extension, then the MIME type."""
    by_extension = _EXTENSION_TYPES.get(_extension(filename))
    if by_extension is not None:
        return by_extension
    lowered = content_type.lower()
    if "pdf" in lowered:
        return AttachmentType.PDF
    if "word" in lowered:
        return AttachmentType.WORD
    if "excel" in lowered or "spreadsheet" in lowered:
        return AttachmentType.EXCEL
    if "powerpoint" in lowered or "presentation" in lowered:
        return AttachmentType.POWERPOINT
    if lowered.startswith("image/"):
        return AttachmentType.IMAGE
    if lowered.startswith("text/"):
        return AttachmentType.TEXT
    if lowered.startswith("audio/"):
        return AttachmentType.AUDIO
    if lowered.startswith("video/"):
        return AttachmentType.VIDEO
    return AttachmentType.OTHER


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class EmailAttachment:
    """File attached to a persisted message."""

    id: str
    message_id: str
    filename: str
    content_type: str
    size: int
    storage_path: str
    external_id: str | None = None
    attachment_type: AttachmentType = AttachmentType.OTHER
    status: ProcessingStatus = ProcessingStatus.PENDING
    extracted_text: str | None = None
    word_count: int = 0
    ai_summary: str | None = None
    keywords: tuple[str, ...] = ()
    document_category: DocumentCategory | None = None
    confidence: float | None = None
    processed_at: datetime | None = None
    processing_error: str | None = None

    def can_extract_text(self) -> bool:
        return self.attachment_type in {
            AttachmentType.PDF,
            AttachmentType.WORD,
            AttachmentType.EXCEL,
            AttachmentType.TEXT,
        }

    def mark_processed(
        self,
        *,
        text: str,
        summary: str,
        keywords: tuple[str, ...],
        category: DocumentCategory,
        confidence: float,
        now: datetime,
    ) -> None:
        self.extracted_text = text
        self.word_count = len(text.split())
        self.ai_summary = summary
        self.keywords = keywords
        self.document_category = category
        self.confidence = min(max(confidence, 0.0), 1.0)
        self.status = ProcessingStatus.PROCESSED
        self.processed_at = now
        self.processing_error = None

    def mark_failed(self, error: str, now: datetime) -> None:
        self.status = ProcessingStatus.FAILED
        self.processing_error = error
        self.processed_at = now


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class EmailMessage:
    """A persisted email and its classification block."""

    id: str
    message_id: str
    account_id: str
    user_id: str
    subject: str
    from_address: str
    received_at: datetime
    created_at: datetime
    folder: EmailFolder = EmailFolder.INBOX
    from_name: str | None = None
    to_addresses: tuple[str, ...] = ()
    cc_addresses: tuple[str, ...] = ()
    sent_at: datetime | None = None
    conversation_id: str | None = None
    in_reply_to: str | None = None
    body_text: str = ""
    body_html: str | None = None
    body_preview: str = ""
    is_read: bool = False
    is_flagged: bool = False
    is_draft: bool = False
    has_attachments: bool = False
    attachments: list[EmailAttachment] = field(default_factory=list)
    priority: EmailPriority = EmailPriority.NORMAL
    category: EmailCategory = EmailCategory.GENERAL
    sentiment: Sentiment = Sentiment.NEUTRAL
    contains_action_items: bool = False
    requires_response: bool = False
    suggested_response_by: datetime | None = None
    ai_summary: str | None = None
    keywords: tuple[str, ...] = ()
    action_items: tuple[str, ...] = ()
    confidence: float = 0.0
    is_ai_processed: bool = False
    ai_processed_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.body_preview:
            self.body_preview = build_preview(self.body_text)

    def apply_classification(self, result: Classification, now: datetime) -> None:
        self.priority = result.priority
        self.category = result.category
        self.sentiment = result.sentiment
        self.contains_action_items = result.contains_action_items
        self.requires_response = result.requires_response
        self.ai_summary = result.summary
        self.keywords = tuple(dict.fromkeys(result.keywords))
        self.action_items = result.action_items
        self.confidence = min(max(result.confidence, 0.0), 1.0)
        self.is_ai_processed = True
        self.ai_processed_at = now
        if result.requires_response:
            self.suggested_response_by = now + _RESPONSE_WINDOWS[result.priority]
        else:
            self.suggested_response_by = None

    def add_attachment(self, attachment: EmailAttachment) -> None:
        self.attachments.append(attachment)
        self.has_attachments = True

    def mark_read(self) -> None:
        self.is_read = True

    def mark_unread(self) -> None:
        self.is_read = False

    def toggle_flag(self) -> None:
        self.is_flagged = not self.is_flagged

    def move_to_folder(self, folder: EmailFolder) -> None:
        self.folder = folder


def build_preview(body: str) -> str:
    """Return the first characters of ``body`` with an ellipsis when truncated."""
    if len(body) > PREVIEW_LENGTH:
        return body[:PREVIEW_LENGTH] + "..."
    return body


@dataclass(slots=True)
class RawAttachment:
    """Attachment payload as delivered by a provider adapter."""

    filename: str
    content_type: str
    content: bytes
    external_id: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class RawMessage:
    """Provider-neutral message fetched from a mailbox."""

    message_id: str
    subject: str
    from_address: str
    received_at: datetime
    from_name: str | None = None
    to_addresses: tuple[str, ...] = ()
    cc_addresses: tuple[str, ...] = ()
    sent_at: datetime | None = None
    conversation_id: str | None = None
    in_reply_to: str | None = None
    body_text: str = ""
    body_html: str | None = None
    is_read: bool = False
    is_flagged: bool = False
    is_draft: bool = False
    attachments: tuple[RawAttachment, ...] = ()


@dataclass(slots=True)
class FolderSyncResult:
    """Counters for one folder within a sync attempt."""

    folder: EmailFolder
    emails_processed: int = 0
    attachments_processed: int = 0
    emails_skipped: int = 0
    emails_failed: int = 0


@dataclass(slots=True)
class SyncResult:
    """Summary of one sync attempt for an account."""

    account_id: str
    success: bool
    started_at: datetime
    completed_at: datetime | None = None
    error_message: str | None = None
    error_kind: str | None = None
    folders: list[FolderSyncResult] = field(default_factory=list)

    @property
    def emails_processed(self) -> int:
        return sum(item.emails_processed for item in self.folders)

    @property
    def attachments_processed(self) -> int:
        return sum(item.attachments_processed for item in self.folders)

    @property
    def duration(self) -> timedelta | None:
        if self.completed_at is None:
            return None
        return self.completed_at - self.started_at


@dataclass(frozen=True, slots=True)
class ForecastPoint:
    date: datetime
    value: float
    lower_bound: float
    upper_bound: float


@dataclass(frozen=True, slots=True)
class MetricSample:
    timestamp: datetime
    value: float


@dataclass(slots=True)
class OperationalMetric:
    """A recorded metric observation with an explicit timestamp."""

    name: str
    value: float
    timestamp: datetime
    category: str = "General"
    source: str = "system"
    unit: str = ""
    severity: str = "Info"
    id: int | None = None


@dataclass(slots=True)
class MessageQuery:
    """Filters and pagination applied to message listings."""

    user_id: str
    account_id: str | None = None
    folder: EmailFolder | None = None
    is_read: bool | None = None
    ai_processed: bool | None = None
    created_since: datetime | None = None
    offset: int = 0
    limit: int = 50


@dataclass(slots=True)
class MessagePage:
    items: list[EmailMessage]
    total: int


__all__ = [
    "ABANDONED_SYNC_ERROR",
    "AttachmentType",
    "Classification",
    "DocumentCategory",
    "EmailAccount",
    "EmailAttachment",
    "EmailCategory",
    "EmailFolder",
    "EmailMessage",
    "EmailPriority",
    "EmailProvider",
    "FolderSyncResult",
    "ForecastPoint",
    "MessagePage",
    "MessageQuery",
    "MetricSample",
    "OperationalMetric",
    "PREVIEW_LENGTH",
    "ProcessingStatus",
    "RawAttachment",
    "RawMessage",
    "Sentiment",
    "SyncResult",
    "SyncStatus",
    "build_preview",
    "detect_attachment_type",
    "transition",
]
