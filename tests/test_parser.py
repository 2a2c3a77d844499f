"""Tests for RFC822 parsing into provider-neutral messages."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from mail_intel.ingestion import EmailParser
from mail_intel.ingestion.parser import synthetic_message_id

FIXTURE_PATH = Path(__file__).parent / "fixtures" / "sample_email.eml"
RECEIVED_AT = datetime(2025, 10, 24, 15, 5, tzinfo=UTC)


def test_email_parser_extracts_headers_and_bodies() -> None:
    payload = FIXTURE_PATH.read_bytes()
    parser = EmailParser()

    message = parser.parse(payload, received_at=RECEIVED_AT, is_read=True)

    assert message.message_id == "<1234@example.com>"
    assert message.subject == "Test Email"
    assert message.from_address == "sender@example.com"
    assert message.from_name == "Sender Name"
    assert message.to_addresses == ("user@example.com",)
    assert message.cc_addresses == ("another@example.com",)
    assert message.sent_at == datetime(2025, 10, 24, 15, 0, tzinfo=UTC)
    assert message.received_at == RECEIVED_AT
    assert message.conversation_id == "<thread@example.com>"
    assert message.in_reply_to == "<thread@example.com>"
    assert message.body_text == "Hello world."
    assert "<strong>world</strong>" in (message.body_html or "")
    assert message.is_read is True
    assert message.is_flagged is False

    assert len(message.attachments) == 1
    attachment = message.attachments[0]
    assert attachment.filename == "note.txt"
    assert attachment.content_type == "application/octet-stream"
    assert attachment.content == b"Attachment content"
    assert attachment.size == 18
    assert attachment.external_id == "<note-1>"


def test_missing_message_id_gets_stable_synthetic_value() -> None:
    payload = (
        b"From: someone@example.com\r\n"
        b"Subject: No id\r\n"
        b"Date: not a date\r\n"
        b"\r\n"
        b"Body text\r\n"
    )
    parser = EmailParser()

    first = parser.parse(payload, received_at=RECEIVED_AT)
    second = parser.parse(payload, received_at=RECEIVED_AT)

    assert first.message_id == second.message_id == synthetic_message_id(payload)
    assert first.message_id.endswith("@mail-intel>")
    assert first.sent_at is None
    assert first.conversation_id is None
    assert first.body_text == "Body text"
    assert first.attachments == ()


def test_unnamed_attachments_get_positional_names() -> None:
    payload = (
        b"Message-ID: <att@example.com>\r\n"
        b"From: someone@example.com\r\n"
        b"MIME-Version: 1.0\r\n"
        b'Content-Type: multipart/mixed; boundary="b"\r\n'
        b"\r\n"
        b"--b\r\n"
        b"Content-Type: text/plain\r\n"
        b"\r\n"
        b"See attached\r\n"
        b"--b\r\n"
        b"Content-Type: application/pdf\r\n"
        b"Content-Disposition: attachment\r\n"
        b"\r\n"
        b"%PDF-1.4\r\n"
        b"--b--\r\n"
    )

    message = EmailParser().parse(payload, received_at=RECEIVED_AT)

    assert message.body_text == "See attached"
    assert [item.filename for item in message.attachments] == ["attachment-1"]
    assert message.attachments[0].content_type == "application/pdf"
