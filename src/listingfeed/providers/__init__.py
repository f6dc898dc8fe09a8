"""External feed providers.

This module provides the provider contract, the registry that maps provider
names to implementations, and the built-in Resales Online provider.

Main Components:
    - BaseProvider: Abstract base class for all providers
    - ProviderRegistry: Name -> provider class lookup
    - ResalesOnlineProvider: Resales Online WebAPI client

Example usage:
    from listingfeed.providers import registry

    provider_class = registry.find("resales_online")
    provider = provider_class(tenant, tenant.external_feed_config)
    result = await provider.search({"location": "Marbella"})
"""

from .base import (
    AuthenticationError,
    BaseProvider,
    ConfigurationError,
    FeedError,
    InvalidResponseError,
    PropertyNotFoundError,
    ProviderUnavailableError,
    RateLimitError,
    UnsupportedOperationError,
)
from .registry import ProviderRegistry, registry
from .resales_online import ResalesOnlineProvider

__all__ = [
    "BaseProvider",
    "FeedError",
    "ConfigurationError",
    "AuthenticationError",
    "RateLimitError",
    "ProviderUnavailableError",
    "PropertyNotFoundError",
    "InvalidResponseError",
    "UnsupportedOperationError",
    "ProviderRegistry",
    "registry",
    "ResalesOnlineProvider",
]
