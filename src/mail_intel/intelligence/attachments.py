"""Attachment text extraction and document analysis."""

from __future__ import annotations

import asyncio
import io
import logging
import re
import warnings
from collections import Counter
from collections.abc import Callable
from datetime import datetime

import openpyxl
import pdfplumber
from docx import Document

from mail_intel.core.datetime_utils import utc_now
from mail_intel.core.models import (
    AttachmentType,
    DocumentCategory,
    EmailAttachment,
    ProcessingStatus,
)

LOGGER = logging.getLogger(__name__)

KEYWORD_CONFIDENCE = 0.85
DEFAULT_CONFIDENCE = 0.5
_SUMMARY_CHARS = 160
_MAX_KEYWORDS = 5

_CATEGORY_TERMS: tuple[tuple[DocumentCategory, tuple[str, ...]], ...] = (
    (DocumentCategory.CONTRACT, ("contract", "agreement", "terms and conditions")),
    (DocumentCategory.INVOICE, ("invoice", "amount due", "bill to")),
    (DocumentCategory.PROPOSAL, ("proposal", "quotation", "quote")),
    (DocumentCategory.SPECIFICATION, ("specification", "requirements", "spec")),
    (DocumentCategory.MANUAL, ("manual", "user guide", "handbook")),
    (DocumentCategory.REPORT, ("report", "summary of findings", "quarterly")),
    (DocumentCategory.LEGAL, ("legal", "compliance", "nda")),
    (DocumentCategory.FINANCIAL, ("budget", "forecast", "balance sheet", "revenue")),
    (DocumentCategory.TECHNICAL, ("architecture", "design", "api")),
    (DocumentCategory.MARKETING, ("marketing", "campaign", "brochure")),
    (DocumentCategory.HR, ("resume", "cv", "onboarding", "payroll")),
    (DocumentCategory.CORRESPONDENCE, ("letter", "memo", "dear")),
)

_TYPE_CATEGORIES = {
    AttachmentType.POWERPOINT: DocumentCategory.PRESENTATION,
    AttachmentType.EXCEL: DocumentCategory.SPREADSHEET,
}

_STOPWORDS = frozenset(
    {
        "about", "after", "again", "also", "been", "before", "being", "between",
        "could", "does", "each", "from", "have", "here", "into", "more", "most",
        "only", "other", "over", "same", "should", "some", "such", "than", "that",
        "their", "them", "then", "there", "these", "they", "this", "those",
        "through", "under", "very", "were", "what", "when", "where", "which",
        "while", "will", "with", "would", "your",
    }
)
_WORD_PATTERN = re.compile(r"[a-zA-Z][a-zA-Z\-]{3,}")


def extract_pdf(data: bytes) -> str:
    text_parts: list[str] = []
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore")
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            for page in pdf.pages:
                text = page.extract_text()
                if text:
                    text_parts.append(text)
    return "\n\n".join(text_parts)


def extract_docx(data: bytes) -> str:
    document = Document(io.BytesIO(data))
    return "\n".join(paragraph.text for paragraph in document.paragraphs if paragraph.text)


def extract_xlsx(data: bytes) -> str:
    workbook = openpyxl.load_workbook(io.BytesIO(data), data_only=True, read_only=True)
    try:
        rows: list[str] = []
        for sheet in workbook.worksheets:
            for row in sheet.iter_rows(values_only=True):
                cells = [str(value) for value in row if value is not None]
                if cells:
                    rows.append(" | ".join(cells))
        return "\n".join(rows)
    finally:
        workbook.close()


def extract_plain_text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def describe_attachment(attachment: EmailAttachment) -> str:
    """Descriptive text used for types without a text extractor."""
    return (
        f"Extracted content from {attachment.filename}: "
        f"{attachment.attachment_type} attachment of {attachment.size} bytes "
        f"({attachment.content_type})."
    )


Extractor = Callable[[bytes], str]

_EXTRACTORS: dict[AttachmentType, Extractor] = {
    AttachmentType.PDF: extract_pdf,
    AttachmentType.WORD: extract_docx,
    AttachmentType.EXCEL: extract_xlsx,
    AttachmentType.TEXT: extract_plain_text,
}


def categorise_document(
    filename: str, text: str, attachment_type: AttachmentType
) -> tuple[DocumentCategory, float]:
    """Pick a document category from filename and text keywords."""
    haystack = f"{filename} {text}".lower()
    for category, terms in _CATEGORY_TERMS:
        if any(re.search(rf"\b{re.escape(term)}\b", haystack) for term in terms):
            return category, KEYWORD_CONFIDENCE
    fallback = _TYPE_CATEGORIES.get(attachment_type, DocumentCategory.OTHER)
    return fallback, DEFAULT_CONFIDENCE


def extract_keywords(text: str, limit: int = _MAX_KEYWORDS) -> tuple[str, ...]:
    words = (match.lower() for match in _WORD_PATTERN.findall(text))
    counts = Counter(word for word in words if word not in _STOPWORDS)
    return tuple(word for word, _ in counts.most_common(limit))


def summarise_text(filename: str, text: str) -> str:
    lead = " ".join(text.split())
    if not lead:
        return f"Summary of {filename}: no extractable text."
    if len(lead) > _SUMMARY_CHARS:
        lead = lead[:_SUMMARY_CHARS].rstrip() + "..."
    return f"Summary of {filename}: {lead}"


class AttachmentProcessor:
    """Extract text from attachments and record a document analysis."""

    def __init__(
        self,
        *,
        extractors: dict[AttachmentType, Extractor] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._extractors = dict(_EXTRACTORS if extractors is None else extractors)
        self._clock = clock

    async def process(
        self,
        attachment: EmailAttachment,
        content: bytes,
        *,
        reprocess: bool = False,
    ) -> None:
        """Populate analysis fields on ``attachment``; never raises for bad input."""
        if attachment.status is ProcessingStatus.PROCESSED and not reprocess:
            LOGGER.debug("Attachment %s already processed", attachment.id)
            return
        try:
            text = await self._extract(attachment, content)
            category, confidence = categorise_document(
                attachment.filename, text, attachment.attachment_type
            )
            attachment.mark_processed(
                text=text,
                summary=summarise_text(attachment.filename, text),
                keywords=extract_keywords(text),
                category=category,
                confidence=confidence,
                now=self._clock(),
            )
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.warning(
                "Failed to process attachment %s (%s): %s",
                attachment.id,
                attachment.filename,
                exc,
            )
            attachment.mark_failed(f"Error processing attachment: {exc}", self._clock())

    async def _extract(self, attachment: EmailAttachment, content: bytes) -> str:
        extractor = self._extractors.get(attachment.attachment_type)
        if extractor is None:
            return describe_attachment(attachment)
        return await asyncio.to_thread(extractor, content)


__all__ = [
    "AttachmentProcessor",
    "categorise_document",
    "describe_attachment",
    "extract_keywords",
    "summarise_text",
]
