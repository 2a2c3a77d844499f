"""Deterministic keyword rules used when no AI backend is available."""

from __future__ import annotations

import re
from collections.abc import Iterable

from mail_intel.core.models import (
    Classification,
    EmailCategory,
    EmailMessage,
    EmailPriority,
    Sentiment,
)

RULE_CONFIDENCE = 0.75
RULE_PROVIDER = "rules"

_URGENT_TERMS = ("urgent", "asap", "immediately", "critical")
_POSITIVE_TERMS = ("thank you", "great", "excellent")
_NEGATIVE_TERMS = ("concern", "issue", "problem")
_ACTION_TERMS = ("please", "need", "should")
_RESPONSE_PHRASES = ("please confirm", "let me know", "your thoughts", "feedback")
_KEYWORD_VOCABULARY = ("project", "meeting", "budget", "timeline", "resource")

_ACTION_LINE_PATTERNS = (
    re.compile(r"\burgent\b", re.IGNORECASE),
    re.compile(r"\basap\b", re.IGNORECASE),
    re.compile(r"\baction required\b", re.IGNORECASE),
    re.compile(r"\bplease\b", re.IGNORECASE),
)
_MAX_ACTION_ITEMS = 5


def _contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(term in text for term in terms)


class RuleBasedClassifier:
    """Keyword cascade producing a reproducible classification."""

    provider_id = RULE_PROVIDER

    async def classify(self, message: EmailMessage) -> Classification:
        return self.classify_text(message.subject, message.body_text)

    def classify_text(self, subject: str, body: str) -> Classification:
        subject_lower = (subject or "").lower()
        body_lower = (body or "").lower()
        combined = f"{subject_lower} {body_lower}"

        priority = EmailPriority.NORMAL
        category = EmailCategory.GENERAL
        contains_action_items = False

        # Only the first matching rule applies. Check order is urgent terms,
        # important, meeting, project, decision, action, report; a message that
        # mentions both "project" and "report" is therefore a Project.
        if _contains_any(combined, _URGENT_TERMS):
            priority = EmailPriority.URGENT
        elif "important" in combined:
            priority = EmailPriority.HIGH
        elif "meeting" in combined:
            priority = EmailPriority.HIGH
            category = EmailCategory.MEETING
        elif "project" in combined:
            category = EmailCategory.PROJECT
        elif "decision" in combined:
            category = EmailCategory.DECISION
        elif "action" in combined:
            category = EmailCategory.ACTION
            contains_action_items = True
        elif "report" in combined:
            category = EmailCategory.REPORT

        if _contains_any(body_lower, _POSITIVE_TERMS):
            sentiment = Sentiment.POSITIVE
        elif _contains_any(body_lower, _NEGATIVE_TERMS):
            sentiment = Sentiment.NEGATIVE
        else:
            sentiment = Sentiment.NEUTRAL

        if _contains_any(body_lower, _ACTION_TERMS):
            contains_action_items = True

        requires_response = _contains_any(body_lower, _RESPONSE_PHRASES)
        keywords = tuple(term for term in _KEYWORD_VOCABULARY if term in body_lower)
        action_items = tuple(extract_action_items(body or ""))

        return Classification(
            priority=priority,
            category=category,
            sentiment=sentiment,
            contains_action_items=contains_action_items,
            requires_response=requires_response,
            summary=build_summary(category, priority, requires_response, sentiment),
            keywords=keywords,
            action_items=action_items,
            confidence=RULE_CONFIDENCE,
            provider=RULE_PROVIDER,
        )


def build_summary(
    category: EmailCategory,
    priority: EmailPriority,
    requires_response: bool,
    sentiment: Sentiment,
) -> str:
    response = (
        "requires a response" if requires_response else "does not require a response"
    )
    return (
        f"AI Summary: This is a {category} email with {priority} priority. "
        f"It {response}. Sentiment is {sentiment}."
    )


def extract_action_items(body: str) -> list[str]:
    """Return body lines that read as requests, capped at five."""
    items: list[str] = []
    for line in body.splitlines():
        cleaned = re.sub(r"\s+", " ", line.strip())
        if not cleaned:
            continue
        if cleaned.lower().startswith(("please", "todo", "action", "kindly")) or any(
            pattern.search(cleaned) for pattern in _ACTION_LINE_PATTERNS
        ):
            items.append(cleaned)
        if len(items) >= _MAX_ACTION_ITEMS:
            break
    return items


__all__ = [
    "RULE_CONFIDENCE",
    "RuleBasedClassifier",
    "build_summary",
    "extract_action_items",
]
