"""Utilities for parsing raw RFC822 messages into provider-neutral records."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from datetime import datetime
from email import policy
from email.message import EmailMessage as MimeMessage
from email.parser import BytesParser
from email.utils import getaddresses, parseaddr, parsedate_to_datetime

from ..core.datetime_utils import ensure_utc
from ..core.models import RawAttachment, RawMessage


class EmailParser:
    """Convert raw email payloads into :class:`RawMessage` records."""

    def __init__(self) -> None:
        self._parser = BytesParser(policy=policy.default)

    def parse(
        self,
        payload: bytes,
        *,
        received_at: datetime,
        is_read: bool = False,
        is_flagged: bool = False,
        is_draft: bool = False,
    ) -> RawMessage:
        """Parse raw RFC822 bytes; ``received_at`` is the server arrival time."""
        message = self._parser.parsebytes(payload)
        message_id = _clean_header(message.get("Message-ID")) or synthetic_message_id(
            payload
        )
        from_name, from_address = parseaddr(str(message.get("From") or ""))
        body_text, body_html = _extract_bodies(message)
        in_reply_to = _clean_header(message.get("In-Reply-To"))

        return RawMessage(
            message_id=message_id,
            subject=str(message.get("Subject") or ""),
            from_address=from_address,
            from_name=from_name or None,
            to_addresses=tuple(_extract_addresses(message.get_all("To", []))),
            cc_addresses=tuple(_extract_addresses(message.get_all("Cc", []))),
            sent_at=_try_parse_datetime(message.get("Date")),
            received_at=received_at,
            conversation_id=_resolve_thread_id(message),
            in_reply_to=in_reply_to,
            body_text=body_text or "",
            body_html=body_html,
            is_read=is_read,
            is_flagged=is_flagged,
            is_draft=is_draft,
            attachments=tuple(_collect_attachments(message)),
        )


def synthetic_message_id(payload: bytes) -> str:
    """Stable identifier for messages that lack a Message-ID header."""
    digest = hashlib.sha256(payload).hexdigest()
    return f"<{digest}@mail-intel>"


def _clean_header(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _extract_addresses(headers: Iterable[str]) -> Iterable[str]:
    for _, email_address in getaddresses([str(header) for header in headers]):
        if email_address:
            yield email_address


def _resolve_thread_id(message: MimeMessage) -> str | None:
    for header in ("Thread-Index", "Thread-Id", "References", "In-Reply-To"):
        value = message.get(header)
        if value:
            return str(value).split()[0]
    return None


def _collapse_chunks(chunks: Iterable[str], separator: str) -> str | None:
    filtered_chunks = [chunk for chunk in chunks if chunk]
    if not filtered_chunks:
        return None
    return separator.join(filtered_chunks)


def _extract_bodies(message: MimeMessage) -> tuple[str | None, str | None]:
    plain_chunks: list[str] = []
    html_chunks: list[str] = []

    for part in message.walk():
        if part.is_multipart():
            continue
        if part.get_content_disposition() == "attachment":
            continue
        try:
            content_obj = part.get_content()
        except LookupError:
            continue
        if not isinstance(content_obj, str):
            continue
        content_type = part.get_content_type()
        if content_type == "text/plain":
            plain_chunks.append(content_obj.strip())
        elif content_type == "text/html":
            html_chunks.append(content_obj.strip())

    return _collapse_chunks(plain_chunks, "\n\n"), _collapse_chunks(html_chunks, "\n")


def _collect_attachments(message: MimeMessage) -> Iterable[RawAttachment]:
    for index, part in enumerate(message.iter_attachments()):
        payload = part.get_payload(decode=True) or b""
        yield RawAttachment(
            filename=part.get_filename() or f"attachment-{index + 1}",
            content_type=part.get_content_type(),
            content=payload,
            external_id=_clean_header(part.get("Content-ID")),
        )


def _try_parse_datetime(header_value: object) -> datetime | None:
    if header_value is None:
        return None
    try:
        return ensure_utc(parsedate_to_datetime(str(header_value)))
    except (TypeError, ValueError):
        return None


__all__ = ["EmailParser", "synthetic_message_id"]
