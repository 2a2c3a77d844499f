"""Tests for attachment extraction and analysis."""

from __future__ import annotations

import io
from datetime import UTC, datetime

import openpyxl
import pytest
from docx import Document

from mail_intel.core.models import (
    AttachmentType,
    DocumentCategory,
    EmailAttachment,
    ProcessingStatus,
    detect_attachment_type,
)
from mail_intel.intelligence.attachments import (
    AttachmentProcessor,
    categorise_document,
    extract_keywords,
)

NOW = datetime(2025, 4, 2, 8, 30, tzinfo=UTC)


def _attachment(filename: str, content_type: str, size: int = 10) -> EmailAttachment:
    return EmailAttachment(
        id="att-1",
        message_id="m-1",
        filename=filename,
        content_type=content_type,
        size=size,
        storage_path=f"attachments/m-1/{filename}",
        attachment_type=detect_attachment_type(filename, content_type),
    )


def _processor() -> AttachmentProcessor:
    return AttachmentProcessor(clock=lambda: NOW)


@pytest.mark.asyncio
async def test_plain_text_is_extracted_and_categorised() -> None:
    attachment = _attachment("notes.txt", "text/plain")
    content = b"Invoice 42\nAmount due: 300 EUR for consulting services"

    await _processor().process(attachment, content)

    assert attachment.status is ProcessingStatus.PROCESSED
    assert attachment.extracted_text == content.decode()
    assert attachment.word_count == 9
    assert attachment.document_category is DocumentCategory.INVOICE
    assert attachment.confidence == pytest.approx(0.85)
    assert attachment.ai_summary is not None
    assert attachment.ai_summary.startswith("Summary of notes.txt: Invoice 42")
    assert attachment.processed_at == NOW
    assert attachment.processing_error is None


@pytest.mark.asyncio
async def test_word_document_uses_python_docx() -> None:
    document = Document()
    document.add_paragraph("Service agreement between the parties")
    document.add_paragraph("Signed in March")
    buffer = io.BytesIO()
    document.save(buffer)
    attachment = _attachment(
        "terms.docx",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    )

    await _processor().process(attachment, buffer.getvalue())

    assert attachment.status is ProcessingStatus.PROCESSED
    assert attachment.extracted_text == (
        "Service agreement between the parties\nSigned in March"
    )
    assert attachment.document_category is DocumentCategory.CONTRACT


@pytest.mark.asyncio
async def test_spreadsheet_uses_openpyxl() -> None:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.append(["Quarter", "Revenue"])
    sheet.append(["Q1", 1200])
    buffer = io.BytesIO()
    workbook.save(buffer)
    attachment = _attachment(
        "numbers.xlsx",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )

    await _processor().process(attachment, buffer.getvalue())

    assert attachment.status is ProcessingStatus.PROCESSED
    assert attachment.extracted_text == "Quarter | Revenue\nQ1 | 1200"
    assert attachment.document_category is DocumentCategory.FINANCIAL


@pytest.mark.asyncio
async def test_unsupported_types_get_descriptive_text() -> None:
    attachment = _attachment("photo.png", "image/png", size=2048)

    await _processor().process(attachment, b"\x89PNG")

    assert attachment.status is ProcessingStatus.PROCESSED
    assert attachment.extracted_text is not None
    assert attachment.extracted_text.startswith("Extracted content from photo.png")
    assert attachment.document_category is DocumentCategory.OTHER
    assert attachment.confidence == pytest.approx(0.5)


@pytest.mark.asyncio
async def test_corrupt_pdf_is_recorded_not_raised() -> None:
    attachment = _attachment("broken.pdf", "application/pdf")

    await _processor().process(attachment, b"definitely not a pdf")

    assert attachment.status is ProcessingStatus.FAILED
    assert attachment.processing_error is not None
    assert attachment.processing_error.startswith("Error processing attachment:")
    assert attachment.processed_at == NOW


@pytest.mark.asyncio
async def test_extractor_errors_are_contained() -> None:
    def explode(_data: bytes) -> str:
        raise RuntimeError("parser crashed")

    processor = AttachmentProcessor(
        extractors={AttachmentType.TEXT: explode}, clock=lambda: NOW
    )
    attachment = _attachment("a.txt", "text/plain")

    await processor.process(attachment, b"abc")

    assert attachment.status is ProcessingStatus.FAILED
    assert attachment.processing_error == "Error processing attachment: parser crashed"


@pytest.mark.asyncio
async def test_processed_attachments_are_skipped_unless_reprocessed() -> None:
    attachment = _attachment("a.txt", "text/plain")
    processor = _processor()
    await processor.process(attachment, b"first version")

    await processor.process(attachment, b"second version")
    assert attachment.extracted_text == "first version"

    await processor.process(attachment, b"second version", reprocess=True)
    assert attachment.extracted_text == "second version"


def test_presentations_fall_back_to_type_category() -> None:
    category, confidence = categorise_document(
        "deck.pptx", "", AttachmentType.POWERPOINT
    )
    assert category is DocumentCategory.PRESENTATION
    assert confidence == pytest.approx(0.5)


def test_extract_keywords_skips_stopwords_and_short_words() -> None:
    text = "Budget budget budget timeline timeline with with with the a an resource"
    assert extract_keywords(text) == ("budget", "timeline", "resource")
