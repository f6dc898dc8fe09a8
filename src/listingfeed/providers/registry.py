"""Process-wide registry of provider implementations.

Providers are looked up by ``provider_name`` when a Manager is built for a
tenant. Registration normally happens at import time, so lookups vastly
outnumber writes; a lock keeps late plugin loading safe as well.
"""

import logging
import threading
from enum import Enum
from typing import Optional, Union

from .base import BaseProvider, ConfigurationError

logger = logging.getLogger(__name__)


def _key(name: Union[str, Enum]) -> str:
    if isinstance(name, Enum):
        return str(name.value)
    return str(name)


class ProviderRegistry:
    """Maps provider names to provider classes.

    Example:
        registry = ProviderRegistry()

        @registry.register
        class FooProvider(BaseProvider):
            provider_name = "foo"
            ...

        registry.find("foo")          # FooProvider
        registry.available_providers()  # ["foo"]
    """

    def __init__(self) -> None:
        self._providers: dict[str, type[BaseProvider]] = {}
        self._lock = threading.Lock()

    def register(
        self, provider_class: type[BaseProvider], replace: bool = False
    ) -> type[BaseProvider]:
        """Register a provider class under its ``provider_name``.

        Re-registering the same class is a no-op. Registering a different
        class under a name that is already taken raises unless ``replace``
        is set.

        Args:
            provider_class: BaseProvider subclass exposing ``provider_name``
            replace: Overwrite an existing registration

        Returns:
            The class, so this can be used as a decorator

        Raises:
            ConfigurationError: If the class has no provider_name or the
                name is already taken
        """
        name = getattr(provider_class, "provider_name", None)
        if not name:
            raise ConfigurationError(
                "registry",
                f"{provider_class.__name__} must define provider_name",
            )
        name = _key(name)

        with self._lock:
            existing = self._providers.get(name)
            if existing is provider_class:
                return provider_class
            if existing is not None and not replace:
                raise ConfigurationError(
                    "registry",
                    f"Provider '{name}' is already registered by {existing.__name__}",
                )
            self._providers[name] = provider_class

        logger.debug(f"Registered provider: {name} ({provider_class.__name__})")
        return provider_class

    def unregister(self, name: Union[str, Enum]) -> bool:
        """Remove a provider. Returns True if it was registered."""
        with self._lock:
            removed = self._providers.pop(_key(name), None)
        return removed is not None

    def find(self, name: Union[str, Enum, None]) -> Optional[type[BaseProvider]]:
        """Get a provider class by name, or None if not registered."""
        if name is None:
            return None
        with self._lock:
            return self._providers.get(_key(name))

    def available_providers(self) -> list[str]:
        """Names of all registered providers, in registration order."""
        with self._lock:
            return list(self._providers)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, (str, Enum)):
            return False
        return self.find(name) is not None


# Shared registry; built-in providers add themselves on import
registry = ProviderRegistry()
