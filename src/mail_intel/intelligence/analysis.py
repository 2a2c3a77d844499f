"""Content analysis engine combining an AI strategy with rule fallback."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from mail_intel.core.interfaces import ClassificationBackend
from mail_intel.core.models import (
    Classification,
    EmailCategory,
    EmailMessage,
    EmailPriority,
    Sentiment,
)

from .llm import LLMError
from .prompts import CLASSIFICATION_SYSTEM_PROMPT, build_classification_prompt
from .rules import RuleBasedClassifier

LOGGER = logging.getLogger(__name__)

ClassificationErrorKind = Literal["unavailable", "transport", "malformed_response"]


@dataclass(frozen=True, slots=True)
class ClassificationError:
    """Reason the AI strategy could not produce a classification."""

    kind: ClassificationErrorKind
    detail: str


def _match_enum(enum_type: type[StrEnum], value: Any) -> Any:
    if not isinstance(value, str):
        return value
    wanted = value.strip().replace("_", "").replace(" ", "").lower()
    for member in enum_type:
        if member.value.lower() == wanted:
            return member
    return value


class ClassificationPayload(BaseModel):
    """Strict schema for the JSON object returned by the model."""

    model_config = ConfigDict(extra="forbid")

    priority: EmailPriority
    category: EmailCategory
    sentiment: Sentiment
    contains_action_items: bool
    requires_response: bool
    summary: str = Field(min_length=1)
    keywords: list[str] = Field(default_factory=list)
    action_items: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value: Any) -> Any:
        return _match_enum(EmailPriority, value)

    @field_validator("category", mode="before")
    @classmethod
    def _category(cls, value: Any) -> Any:
        return _match_enum(EmailCategory, value)

    @field_validator("sentiment", mode="before")
    @classmethod
    def _sentiment(cls, value: Any) -> Any:
        return _match_enum(Sentiment, value)


def _first_json_object(raw: str) -> str | None:
    """Return the first well-formed JSON object in ``raw``; surrounding text is ignored."""
    decoder = json.JSONDecoder()
    start = raw.find("{")
    while start != -1:
        try:
            _, end = decoder.raw_decode(raw, start)
        except json.JSONDecodeError:
            start = raw.find("{", start + 1)
            continue
        return raw[start:end]
    return None


def parse_classification(
    raw: str, provider: str
) -> Classification | ClassificationError:
    """Validate raw model output against :class:`ClassificationPayload`."""
    candidate = _first_json_object(raw)
    if candidate is None:
        return ClassificationError("malformed_response", "No JSON object in reply")
    try:
        payload = ClassificationPayload.model_validate_json(candidate)
    except ValidationError as exc:
        return ClassificationError("malformed_response", str(exc))

    return Classification(
        priority=payload.priority,
        category=payload.category,
        sentiment=payload.sentiment,
        contains_action_items=payload.contains_action_items,
        requires_response=payload.requires_response,
        summary=payload.summary.strip(),
        keywords=tuple(
            dict.fromkeys(item.strip() for item in payload.keywords if item.strip())
        ),
        action_items=tuple(
            item.strip() for item in payload.action_items if item.strip()
        ),
        confidence=payload.confidence,
        provider=provider,
    )


class AiClassificationStrategy:
    """Ask a chat backend for a classification and validate the answer."""

    def __init__(self, backend: ClassificationBackend | None) -> None:
        self._backend = backend

    async def classify(
        self, message: EmailMessage
    ) -> Classification | ClassificationError:
        if self._backend is None:
            return ClassificationError("unavailable", "No classification backend")
        try:
            raw = await self._backend.complete(
                CLASSIFICATION_SYSTEM_PROMPT, build_classification_prompt(message)
            )
        except LLMError as exc:
            return ClassificationError("transport", str(exc))
        except Exception as exc:  # pylint: disable=broad-except
            return ClassificationError("transport", f"{type(exc).__name__}: {exc}")
        return parse_classification(raw, self._backend.provider_id)


class ContentAnalysisEngine:
    """Classify messages with the AI strategy, falling back to rules."""

    def __init__(
        self,
        backend: ClassificationBackend | None = None,
        *,
        rules: RuleBasedClassifier | None = None,
    ) -> None:
        self._ai = AiClassificationStrategy(backend)
        self._rules = rules or RuleBasedClassifier()
        self._has_backend = backend is not None

    async def classify(self, message: EmailMessage) -> Classification:
        if not self._has_backend:
            return await self._rules.classify(message)

        outcome = await self._ai.classify(message)
        if isinstance(outcome, Classification):
            return outcome

        LOGGER.warning(
            "AI classification failed for %s (%s): %s",
            message.message_id,
            outcome.kind,
            outcome.detail,
        )
        fallback = await self._rules.classify(message)
        return replace(fallback, used_fallback=True)


__all__ = [
    "AiClassificationStrategy",
    "ClassificationError",
    "ClassificationPayload",
    "ContentAnalysisEngine",
    "parse_classification",
]
