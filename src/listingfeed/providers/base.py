"""Abstract base class for external feed providers.

This module defines the BaseProvider abstract base class that every upstream
listing source must implement, together with the FeedError hierarchy that
providers raise. The Manager only ever talks to providers through this
interface, so a new feed can be plugged in without touching callers.

Example usage:
    @registry.register
    class MyProvider(BaseProvider):
        provider_name = "my_feed"
        required_config_keys = ("api_key",)

        async def search(self, params):
            # Implementation here
            ...

        async def find(self, reference, params=None):
            ...

        async def similar(self, property, params=None):
            ...

        async def locations(self, params=None):
            ...

        async def property_types(self, params=None):
            ...

        async def available(self):
            return True
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar, Optional

from ..models.property import NormalizedProperty
from ..models.search_result import FilterOption, NormalizedSearchResult

if TYPE_CHECKING:
    from ..models.tenant import Tenant

logger = logging.getLogger(__name__)


class FeedError(Exception):
    """Base exception for external feed errors.

    Attributes:
        provider: Name of the provider (or component) that raised the error
        message: Error description
    """

    def __init__(self, provider: str, message: str):
        self.provider = provider
        self.message = message
        super().__init__(f"[{provider}] {message}")


class ConfigurationError(FeedError):
    """Missing or invalid provider configuration, or an unknown provider."""


class AuthenticationError(FeedError):
    """Upstream rejected the configured credentials."""


class RateLimitError(FeedError):
    """Raised when an upstream rate limit is exceeded."""

    def __init__(self, provider: str, retry_after: Optional[int] = None):
        self.retry_after = retry_after
        message = "Rate limit exceeded"
        if retry_after:
            message += f" (retry after {retry_after}s)"
        super().__init__(provider, message)


class ProviderUnavailableError(FeedError):
    """Upstream is down, unreachable or timed out."""


class PropertyNotFoundError(FeedError):
    """The requested listing does not exist upstream."""

    def __init__(self, provider: str, reference: Optional[str] = None):
        self.reference = reference
        message = f"Property {reference} not found" if reference else "Property not found"
        super().__init__(provider, message)


class InvalidResponseError(FeedError):
    """Upstream returned unparsable or unexpected data."""


class UnsupportedOperationError(FeedError):
    """The provider does not implement an optional capability."""

    def __init__(self, provider: str, operation: str):
        self.operation = operation
        super().__init__(provider, f"Operation '{operation}' is not supported")


class BaseProvider(ABC):
    """Abstract base class for external feed providers.

    Attributes:
        provider_name: Unique registry key (e.g., "resales_online")
        required_config_keys: Config keys that must be present; checked in
            the constructor so misconfiguration fails before first use
        tenant: The tenant this provider instance serves
        config: Provider configuration (string keys)
    """

    provider_name: ClassVar[str]
    required_config_keys: ClassVar[tuple[str, ...]] = ()

    def __init__(self, tenant: "Tenant", config: Optional[dict[str, Any]] = None):
        self.tenant = tenant
        self.config: dict[str, Any] = {str(k): v for k, v in (config or {}).items()}
        self.validate_config()

    @classmethod
    def display_name(cls) -> str:
        """Human-readable provider name."""
        return cls.provider_name.replace("_", " ").title()

    @abstractmethod
    async def search(self, params: dict[str, Any]) -> NormalizedSearchResult:
        """Search for properties.

        Args:
            params: Normalized search parameters:
                locale, listing_type ("sale" | "rental"), property_types,
                location, min/max_bedrooms, min/max_bathrooms,
                min/max_price (major units), min/max_area, features,
                sort ("price_asc", "price_desc", "newest", "updated"),
                page (1-indexed), per_page

        Returns:
            NormalizedSearchResult for the requested page

        Raises:
            FeedError: If the upstream request fails
        """

    @abstractmethod
    async def find(
        self, reference: str, params: Optional[dict[str, Any]] = None
    ) -> Optional[NormalizedProperty]:
        """Find a single property by the provider's reference.

        Returns:
            NormalizedProperty, or None if not found

        Raises:
            PropertyNotFoundError: Alternative way to signal a missing listing
            FeedError: If the upstream request fails
        """

    @abstractmethod
    async def similar(
        self, property: NormalizedProperty, params: Optional[dict[str, Any]] = None
    ) -> list[NormalizedProperty]:
        """Find listings similar to ``property`` (params may carry ``limit``)."""

    @abstractmethod
    async def locations(
        self, params: Optional[dict[str, Any]] = None
    ) -> list[FilterOption]:
        """Location options for search filters."""

    @abstractmethod
    async def property_types(
        self, params: Optional[dict[str, Any]] = None
    ) -> list[FilterOption]:
        """Property type options for search filters."""

    @abstractmethod
    async def available(self) -> bool:
        """Check if the provider is configured and reachable."""

    async def features(self, params: Optional[dict[str, Any]] = None) -> list[FilterOption]:
        """Feature options for search filters. Optional capability."""
        raise UnsupportedOperationError(self.provider_name, "features")

    async def close(self) -> None:
        """Release network resources. No-op unless the provider holds any."""

    # Configuration helpers

    def validate_config(self) -> None:
        """Raise ConfigurationError if a required config key is missing."""
        missing = [key for key in self.required_config_keys if key not in self.config]
        if missing:
            raise ConfigurationError(
                self.provider_name,
                f"Missing required configuration: {', '.join(missing)}",
            )

    def config_value(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)

    def config_enabled(self, key: str) -> bool:
        return bool(self.config.get(key))

    @property
    def default_locale(self) -> str:
        return str(self.config.get("default_locale") or "en")

    @property
    def supported_locales(self) -> list[str]:
        return [str(locale) for locale in self.config.get("supported_locales") or ["en"]]

    def locale_supported(self, locale: Optional[str]) -> bool:
        return locale is not None and str(locale) in self.supported_locales

    @property
    def default_per_page(self) -> int:
        return int(self.config.get("results_per_page") or 24)

    def log(self, level: int, message: str, **kwargs: Any) -> None:
        """Log with a ``[provider_name]`` prefix."""
        logger.log(level, f"[{self.provider_name}] {message}", **kwargs)
