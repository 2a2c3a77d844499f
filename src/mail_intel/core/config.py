"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class ImapSettings(BaseModel):
    """Settings controlling IMAP connectivity for provider adapters."""

    host: str | None = Field(
        default=None,
        description="IMAP hostname; derived from the account provider when unset",
    )
    port: int = Field(default=993, description="IMAP port, typically 993 for SSL")
    use_ssl: bool = Field(default=True, description="Whether to enforce SSL")
    timeout_seconds: int = Field(
        default=30, ge=1, description="Socket timeout for IMAP operations"
    )
    username: str | None = Field(
        default=None, description="Fallback username for password based accounts"
    )
    app_password: str | None = Field(
        default=None, description="Fallback app password for password based accounts"
    )
    folder_names: dict[str, str] = Field(
        default_factory=lambda: {
            "Inbox": "INBOX",
            "Sent": "Sent",
            "Drafts": "Drafts",
            "Archive": "Archive",
            "Junk": "Junk",
            "Trash": "Trash",
        },
        description="Server mailbox name for each logical folder",
    )


class LlmSettings(BaseModel):
    """Settings for the optional classification backend."""

    provider: Literal["none", "ollama", "openai"] = Field(
        default="none", description="Backend used for AI classification"
    )
    base_url: str = Field(
        default="http://localhost:11434", description="Base URL of the chat API"
    )
    model: str = Field(default="gpt-oss:20b", description="Model identifier")
    api_key: str | None = Field(default=None, description="Bearer key for hosted APIs")
    timeout_seconds: int = Field(
        default=30, description="Request timeout for LLM calls"
    )
    temperature: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for classification requests",
    )
    max_output_tokens: int | None = Field(
        default=500,
        ge=32,
        description="Maximum tokens to request from the provider",
    )
    max_retries: int = Field(
        default=3, ge=1, description="Attempts made before giving up on a request"
    )


class StorageSettings(BaseModel):
    """Settings for local persistence."""

    db_path: Path = Field(
        default=Path("./mail_intel.db"), description="SQLite database path"
    )
    attachments_dir: Path = Field(
        default=Path("./attachments"),
        description="Root folder used when building attachment storage paths",
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Emit key=value structured log lines"
    )


class SyncSettings(BaseModel):
    """Settings controlling sync windows, batching and failure handling."""

    initial_sync_months: int = Field(
        default=3, ge=0, description="Months of history fetched when no start date"
    )
    folders: tuple[str, ...] = Field(
        default=("Inbox", "Sent"), description="Folders traversed per sync attempt"
    )
    classification_batch_limit: int = Field(
        default=1000,
        ge=1,
        description="Maximum unclassified messages analysed after a folder sync",
    )
    max_consecutive_failures: int = Field(
        default=5, ge=1, description="Failures tolerated before deactivating"
    )
    account_concurrency: int = Field(
        default=1, ge=1, description="Accounts synced in parallel by sync-all"
    )
    stale_sync_minutes: int = Field(
        default=60,
        ge=1,
        description="Minutes after which an unfinished InProgress attempt may be restarted",
    )


class ForecastSettings(BaseModel):
    """Settings for the metric forecast engine."""

    confidence: float = Field(
        default=0.85, ge=0.0, le=1.0, description="Band width factor"
    )
    min_lookback_days: int = Field(
        default=30, ge=1, description="Minimum history window in days"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    imap: ImapSettings = Field(default_factory=ImapSettings)
    llm: LlmSettings = Field(default_factory=LlmSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    forecast: ForecastSettings = Field(default_factory=ForecastSettings)


ENV_PREFIX = "MAIL_INTEL_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _coerce(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if value == "":
        return None
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values: dict[str, Any] = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values: dict[str, Any] = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        _merge_into_tree(collected, path, _coerce(value))

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    *,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment=include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "ForecastSettings",
    "ImapSettings",
    "LlmSettings",
    "LoggingSettings",
    "StorageSettings",
    "SyncSettings",
    "load_app_settings",
]
