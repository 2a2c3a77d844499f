"""Assemble application services from settings."""

from __future__ import annotations

from .core.config import AppSettings
from .core.container import ServiceContainer
from .forecasting import ForecastEngine
from .ingestion import EmailParser, SyncOrchestrator
from .intelligence import AttachmentProcessor, ContentAnalysisEngine, build_backend
from .storage import AccountRegistry, SqliteStore
from .transport import ImapProviderAdapter

SETTINGS = "settings"
STORE = "store"
ACCOUNTS = "accounts"
CLASSIFIER = "classifier"
PROVIDER = "provider"
ORCHESTRATOR = "orchestrator"
FORECAST = "forecast"


def build_container(settings: AppSettings) -> ServiceContainer:
    """Register every service lazily; nothing connects until resolved."""
    container = ServiceContainer()
    container.register_instance(SETTINGS, settings)
    container.register(STORE, lambda _c: SqliteStore(settings.storage))
    container.register(ACCOUNTS, lambda c: AccountRegistry(c.resolve(STORE)))
    container.register(
        CLASSIFIER, lambda _c: ContentAnalysisEngine(build_backend(settings.llm))
    )
    container.register(
        PROVIDER,
        lambda _c: ImapProviderAdapter(settings.imap, parser=EmailParser()),
    )
    container.register(
        ORCHESTRATOR,
        lambda c: SyncOrchestrator(
            c.resolve(ACCOUNTS),
            c.resolve(STORE),
            c.resolve(PROVIDER),
            c.resolve(CLASSIFIER),
            AttachmentProcessor(),
            settings=settings.sync,
            attachments_root=str(settings.storage.attachments_dir),
        ),
    )
    container.register(
        FORECAST,
        lambda c: ForecastEngine(
            c.resolve(STORE),
            confidence=settings.forecast.confidence,
            min_lookback_days=settings.forecast.min_lookback_days,
        ),
    )
    return container


__all__ = [
    "ACCOUNTS",
    "CLASSIFIER",
    "FORECAST",
    "ORCHESTRATOR",
    "PROVIDER",
    "SETTINGS",
    "STORE",
    "build_container",
]
