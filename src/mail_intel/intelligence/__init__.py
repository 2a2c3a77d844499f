"""Classification and attachment analysis services."""

from .analysis import (
    AiClassificationStrategy,
    ClassificationError,
    ContentAnalysisEngine,
)
from .attachments import AttachmentProcessor
from .llm import LLMError, OllamaChatBackend, OpenAIChatBackend, build_backend
from .rules import RuleBasedClassifier

__all__ = [
    "AiClassificationStrategy",
    "AttachmentProcessor",
    "ClassificationError",
    "ContentAnalysisEngine",
    "LLMError",
    "OllamaChatBackend",
    "OpenAIChatBackend",
    "RuleBasedClassifier",
    "build_backend",
]
