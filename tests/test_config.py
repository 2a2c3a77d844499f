"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from mail_intel.core.config import load_app_settings


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    """Ensure each test sees a fresh settings instance."""

    load_app_settings.cache_clear()


def test_defaults_loaded_without_env_file() -> None:
    """Default values should be returned when no overrides are present."""

    settings = load_app_settings(include_environment=False)
    assert settings.imap.host is None
    assert settings.storage.db_path == Path("./mail_intel.db")
    assert settings.sync.initial_sync_months == 3
    assert settings.sync.folders == ("Inbox", "Sent")
    assert settings.sync.max_consecutive_failures == 5
    assert settings.llm.provider == "none"
    assert settings.forecast.confidence == pytest.approx(0.85)


def test_env_file_overrides(tmp_path: Path) -> None:
    """Values defined in an env file should override defaults."""

    env_file = tmp_path / "test.env"
    env_file.write_text(
        "MAIL_INTEL_IMAP__HOST=imap.example.com\n"
        "MAIL_INTEL_LLM__PROVIDER=ollama\n"
        "MAIL_INTEL_LOGGING__STRUCTURED=true\n"
        "MAIL_INTEL_SYNC__ACCOUNT_CONCURRENCY=4\n"
        "UNRELATED_KEY=ignored\n",
        encoding="utf-8",
    )

    settings = load_app_settings(env_file=env_file, include_environment=False)
    assert settings.imap.host == "imap.example.com"
    assert settings.llm.provider == "ollama"
    assert settings.logging.structured is True
    assert settings.sync.account_concurrency == 4


def test_environment_overrides_env_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    env_file = tmp_path / "test.env"
    env_file.write_text("MAIL_INTEL_LLM__MODEL=from-file\n", encoding="utf-8")
    monkeypatch.setenv("MAIL_INTEL_LLM__MODEL", "from-env")

    settings = load_app_settings(env_file=env_file)
    assert settings.llm.model == "from-env"


def test_empty_values_become_none(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MAIL_INTEL_LLM__API_KEY", "")

    settings = load_app_settings()
    assert settings.llm.api_key is None


def test_missing_env_file_is_ignored(tmp_path: Path) -> None:
    settings = load_app_settings(
        env_file=tmp_path / "absent.env", include_environment=False
    )
    assert settings.storage.db_path == Path("./mail_intel.db")
