"""Prompt templates for LLM-driven classification."""

from __future__ import annotations

from textwrap import dedent

from mail_intel.core.models import EmailMessage

MAX_BODY_CHARS = 4000

CLASSIFICATION_SYSTEM_PROMPT = dedent(
    """
    You are an assistant that classifies business email.
    Respond strictly with one JSON object using this schema and no other keys:
    {
      "priority": "Low" | "Normal" | "High" | "Urgent",
      "category": "General" | "Meeting" | "Project" | "Decision" | "Action"
                  | "Report" | "FYI" | "Newsletter",
      "sentiment": "VeryNegative" | "Negative" | "Neutral" | "Positive"
                   | "VeryPositive",
      "contains_action_items": boolean,
      "requires_response": boolean,
      "summary": string,
      "keywords": [string, ...],
      "action_items": [string, ...],
      "confidence": number between 0 and 1
    }
    Do not include any prose outside the JSON object.
    """
).strip()


def build_classification_prompt(message: EmailMessage) -> str:
    """Compose the user prompt carrying the message being classified."""
    subject = message.subject or "(no subject)"
    sender = message.from_address or "(unknown sender)"
    body = message.body_text[:MAX_BODY_CHARS]
    return f"Subject: {subject}\nFrom: {sender}\n\nEmail body:\n{body}"


__all__ = ["CLASSIFICATION_SYSTEM_PROMPT", "build_classification_prompt"]
