"""Tests for the deterministic keyword classifier."""

from __future__ import annotations

import pytest

from mail_intel.core.models import EmailCategory, EmailPriority, Sentiment
from mail_intel.intelligence.rules import RULE_CONFIDENCE, RuleBasedClassifier


@pytest.fixture()
def classifier() -> RuleBasedClassifier:
    return RuleBasedClassifier()


def test_urgent_subject_wins_priority(classifier: RuleBasedClassifier) -> None:
    result = classifier.classify_text("URGENT: server down", "please fix immediately")

    assert result.priority is EmailPriority.URGENT
    assert result.category is EmailCategory.GENERAL
    assert result.contains_action_items is True
    assert result.requires_response is False
    assert result.action_items == ("please fix immediately",)
    assert result.confidence == RULE_CONFIDENCE


def test_project_is_checked_before_report(classifier: RuleBasedClassifier) -> None:
    result = classifier.classify_text(
        "Weekly status", "Attached is the report for this project"
    )

    assert result.category is EmailCategory.PROJECT
    assert result.priority is EmailPriority.NORMAL
    assert result.keywords == ("project",)


def test_meeting_sets_high_priority_and_category(
    classifier: RuleBasedClassifier,
) -> None:
    result = classifier.classify_text("Meeting tomorrow", "Agenda attached")

    assert result.priority is EmailPriority.HIGH
    assert result.category is EmailCategory.MEETING


def test_urgent_suppresses_category_rules(classifier: RuleBasedClassifier) -> None:
    result = classifier.classify_text("ASAP", "We need a decision on the budget")

    assert result.priority is EmailPriority.URGENT
    assert result.category is EmailCategory.GENERAL
    assert result.keywords == ("budget",)


def test_action_category_flags_action_items(classifier: RuleBasedClassifier) -> None:
    result = classifier.classify_text("Action list", "Items below")

    assert result.category is EmailCategory.ACTION
    assert result.contains_action_items is True


def test_important_yields_high_priority(classifier: RuleBasedClassifier) -> None:
    result = classifier.classify_text("Important", "About the decision")

    assert result.priority is EmailPriority.HIGH
    assert result.category is EmailCategory.GENERAL


@pytest.mark.parametrize(
    ("body", "expected"),
    [
        ("Thank you for the help", Sentiment.POSITIVE),
        ("This is great, but there is an issue", Sentiment.POSITIVE),
        ("I have a concern", Sentiment.NEGATIVE),
        ("Nothing to add", Sentiment.NEUTRAL),
    ],
)
def test_sentiment_reads_body(
    classifier: RuleBasedClassifier, body: str, expected: Sentiment
) -> None:
    assert classifier.classify_text("Hello", body).sentiment is expected


def test_sentiment_ignores_subject(classifier: RuleBasedClassifier) -> None:
    assert classifier.classify_text("Great news", "ok").sentiment is Sentiment.NEUTRAL


def test_response_phrases_and_summary(classifier: RuleBasedClassifier) -> None:
    result = classifier.classify_text("Decision", "Let me know your thoughts")

    assert result.requires_response is True
    assert result.category is EmailCategory.DECISION
    assert result.summary == (
        "AI Summary: This is a Decision email with Normal priority. "
        "It requires a response. Sentiment is Neutral."
    )


def test_plain_message_falls_through(classifier: RuleBasedClassifier) -> None:
    result = classifier.classify_text("Hi", "See you")

    assert result.priority is EmailPriority.NORMAL
    assert result.category is EmailCategory.GENERAL
    assert result.contains_action_items is False
    assert result.keywords == ()
    assert result.action_items == ()


def test_classification_is_deterministic(classifier: RuleBasedClassifier) -> None:
    first = classifier.classify_text("Report", "Please send feedback on the timeline")
    second = classifier.classify_text("Report", "Please send feedback on the timeline")
    assert first == second


def test_action_items_are_capped(classifier: RuleBasedClassifier) -> None:
    body = "\n".join(f"Please do task {index}" for index in range(8))
    assert len(classifier.classify_text("Tasks", body).action_items) == 5
