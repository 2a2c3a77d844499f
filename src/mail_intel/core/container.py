"""Simple service container for dependency management."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

T = TypeVar("T")


class ServiceContainer:
    """Lazy singleton registry keyed by service name."""

    def __init__(self) -> None:
        self._factories: dict[str, Callable[[ServiceContainer], Any]] = {}
        self._instances: dict[str, Any] = {}

    def register(self, key: str, factory: Callable[[ServiceContainer], T]) -> None:
        """Register a factory; replacing one drops any cached instance."""
        self._factories[key] = factory
        self._instances.pop(key, None)

    def register_instance(self, key: str, instance: Any) -> None:
        """Register an already constructed service."""
        self._factories[key] = lambda _container: instance
        self._instances[key] = instance

    def resolve(self, key: str) -> Any:
        """Resolve a service by key, invoking its factory once."""
        if key in self._instances:
            return self._instances[key]
        factory = self._factories.get(key)
        if factory is None:
            msg = f"Service '{key}' is not registered"
            raise KeyError(msg)
        instance = factory(self)
        self._instances[key] = instance
        return instance

    def try_resolve(self, key: str) -> Any | None:
        """Resolve a service if registered; return None otherwise."""
        if key not in self._factories:
            return None
        return self.resolve(key)

    def clear(self) -> None:
        """Drop cached instances so the next resolve rebuilds them."""
        self._instances.clear()


__all__ = ["ServiceContainer"]
