"""listingfeed: tenant-scoped access to external property listing feeds.

Example usage:
    from listingfeed import Manager, Tenant

    tenant = Tenant(
        id=1,
        external_feed_enabled=True,
        external_feed_provider="resales_online",
        external_feed_config={"api_key": "...", "api_id_sales": "1234"},
    )

    async with Manager(tenant) as manager:
        result = await manager.search({"location": "Marbella"})
"""

from listingfeed.manager import Manager
from listingfeed.models import (
    FilterOption,
    ListingType,
    NormalizedProperty,
    NormalizedSearchResult,
    PropertyImage,
    PropertyStatus,
    RentalPeriod,
    SearchConfig,
    SearchFilterOption,
    Tenant,
)
from listingfeed.providers import (
    BaseProvider,
    ConfigurationError,
    FeedError,
    ProviderRegistry,
    registry,
)
from listingfeed.storage import CacheStore, FeedOperation

__version__ = "0.1.0"

__all__ = [
    "Manager",
    "Tenant",
    "SearchConfig",
    "SearchFilterOption",
    "NormalizedProperty",
    "NormalizedSearchResult",
    "FilterOption",
    "PropertyImage",
    "ListingType",
    "PropertyStatus",
    "RentalPeriod",
    "BaseProvider",
    "FeedError",
    "ConfigurationError",
    "ProviderRegistry",
    "registry",
    "CacheStore",
    "FeedOperation",
]
