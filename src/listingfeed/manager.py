"""External feed manager.

This module provides the Manager class, the only entry point callers use to
query a tenant's external listing feed. It resolves the configured provider
through the registry, normalizes request parameters, routes every call
through the tenant's CacheStore and turns provider failures into empty or
error-flagged results so that a misbehaving upstream never breaks a page.
"""

import logging
from typing import Any, Iterable, Optional

from pydantic import TypeAdapter

from .config import Settings
from .config import config as default_settings
from .models.property import ListingType, NormalizedProperty
from .models.search_result import FilterOption, NormalizedSearchResult
from .models.tenant import Tenant
from .options import build_filter_options, external_key_map, keys_to_external
from .providers.base import (
    BaseProvider,
    ConfigurationError,
    FeedError,
    PropertyNotFoundError,
    UnsupportedOperationError,
)
from .providers.registry import ProviderRegistry
from .providers.registry import registry as default_registry
from .storage.backends import CacheBackend
from .storage.cache import CacheStore, FeedOperation

logger = logging.getLogger(__name__)

NUMERIC_PARAMS = (
    "min_price",
    "max_price",
    "min_bedrooms",
    "max_bedrooms",
    "min_bathrooms",
    "max_bathrooms",
    "min_area",
    "max_area",
    "page",
    "per_page",
    "limit",
)
BOOLEAN_PARAMS = ("new_developments_only",)
LIST_PARAMS = ("property_types", "features")

TRUE_STRINGS = {"1", "true", "yes", "on", "t", "y"}

UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred"

_SEARCH_ADAPTER = TypeAdapter(NormalizedSearchResult)
_PROPERTY_ADAPTER = TypeAdapter(Optional[NormalizedProperty])
_LISTINGS_ADAPTER = TypeAdapter(list[NormalizedProperty])
_OPTIONS_ADAPTER = TypeAdapter(list[FilterOption])


def _to_int(key: str, value: Any) -> Optional[int]:
    if isinstance(value, (bool, int)):
        return int(value)
    try:
        if isinstance(value, float):
            return int(value)
        return int(float(str(value).strip()))
    except (ValueError, OverflowError):
        logger.debug(f"Dropping non-numeric {key}={value!r}")
        return None


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    return bool(value)


def _to_list(value: Any) -> list[str]:
    if isinstance(value, str):
        items: Iterable[Any] = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = value
    else:
        items = [value]
    return [str(item).strip() for item in items if item is not None and str(item).strip()]


class Manager:
    """Tenant-facing façade over one external feed provider.

    Features:
        - Provider resolution by name through the registry
        - Search parameter defaults and coercion
        - Tenant-scoped caching with per-operation TTLs
        - Graceful degradation: provider errors never reach the caller

    Example:
        async with Manager(tenant) as manager:
            result = await manager.search({"location": "Marbella", "page": "2"})
            if result.success:
                for listing in result.properties:
                    print(listing.title, listing.formatted_price)

            listing = await manager.find("R123456")
    """

    def __init__(
        self,
        tenant: Tenant,
        registry: Optional[ProviderRegistry] = None,
        backend: Optional[CacheBackend] = None,
        settings: Optional[Settings] = None,
        cache: Optional[CacheStore] = None,
    ):
        """Initialize the Manager.

        Args:
            tenant: Tenant whose feed settings are used
            registry: Provider registry (default: process-wide registry)
            backend: Cache backend (default from settings)
            settings: Process settings (default: module config)
            cache: Pre-built CacheStore; overrides ``backend``

        Raises:
            ConfigurationError: If the tenant names an unknown provider or the
                provider's required configuration is missing
        """
        self.tenant = tenant
        self.registry = registry or default_registry
        self.settings = settings or default_settings
        self.config: dict[str, Any] = {
            str(k): v for k, v in tenant.external_feed_config.items()
        }
        self.cache = cache or CacheStore(tenant, backend=backend, settings=self.settings)

        self._provider: Optional[BaseProvider] = None
        if self.configured():
            self._provider = self._build_provider()

    # Provider

    @property
    def provider(self) -> BaseProvider:
        """The tenant's provider instance.

        Raises:
            ConfigurationError: If external feeds are not configured
        """
        if self._provider is None:
            raise ConfigurationError(
                "manager",
                f"No external feed provider configured for tenant {self.tenant.id}",
            )
        return self._provider

    @property
    def provider_name(self) -> Optional[str]:
        return self.tenant.external_feed_provider

    def provider_display_name(self) -> str:
        if self._provider is None:
            return "Not Configured"
        return self._provider.display_name()

    def configured(self) -> bool:
        """True if the tenant enabled feeds and picked a provider."""
        return self.tenant.external_feed_configured

    async def enabled(self) -> bool:
        """True if configured and the provider reports itself available."""
        if self._provider is None:
            return False
        try:
            return await self._provider.available()
        except Exception as e:
            logger.warning(f"Provider availability check failed: {e}")
            return False

    def _build_provider(self) -> BaseProvider:
        name = (self.provider_name or "").strip()
        provider_class = self.registry.find(name)
        if provider_class is None:
            available = ", ".join(self.registry.available_providers()) or "none"
            raise ConfigurationError(
                "manager",
                f"Unknown external feed provider: {name}. Available: {available}",
            )

        logger.debug(f"Using provider {name} for tenant {self.tenant.id}")
        return provider_class(self.tenant, self.config)

    # Operations

    async def search(self, params: Optional[dict[str, Any]] = None) -> NormalizedSearchResult:
        """Search the tenant's feed.

        Args:
            params: Raw search parameters (strings from a query string are fine)

        Returns:
            NormalizedSearchResult; on failure it is empty with ``error`` set
        """
        params = {str(k): v for k, v in (params or {}).items()}
        if not self.configured():
            return self._search_result(params)

        normalized = params
        try:
            normalized = self.normalize_search_params(params)
            provider = self.provider

            async def load() -> NormalizedSearchResult:
                return _SEARCH_ADAPTER.validate_python(await provider.search(normalized))

            return await self.cache.fetch_data(
                FeedOperation.SEARCH, normalized, load, adapter=_SEARCH_ADAPTER
            )
        except FeedError as e:
            logger.warning(f"Search error ({type(e).__name__}): {e}")
            return self._search_result(normalized, error=e.message)
        except Exception as e:
            logger.error(f"Unexpected search error: {e}", exc_info=True)
            return self._search_result(normalized, error=UNEXPECTED_ERROR_MESSAGE)

    async def find(
        self, reference: str, params: Optional[dict[str, Any]] = None
    ) -> Optional[NormalizedProperty]:
        """Get one listing by provider reference, or None."""
        if not self.configured() or not reference:
            return None

        try:
            request = self.normalize_request_params(params)
            provider = self.provider
            cache_params = {**request, "reference": reference}

            async def load() -> Optional[NormalizedProperty]:
                return _PROPERTY_ADAPTER.validate_python(
                    await provider.find(reference, request)
                )

            return await self.cache.fetch_data(
                FeedOperation.PROPERTY, cache_params, load, adapter=_PROPERTY_ADAPTER
            )
        except PropertyNotFoundError:
            logger.debug(f"Property {reference} not found")
            return None
        except FeedError as e:
            logger.warning(f"Find error for {reference} ({type(e).__name__}): {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected find error for {reference}: {e}", exc_info=True)
            return None

    async def similar(
        self,
        property: Optional[NormalizedProperty],
        params: Optional[dict[str, Any]] = None,
    ) -> list[NormalizedProperty]:
        """Listings similar to ``property`` (params may carry ``limit``)."""
        if not self.configured() or property is None:
            return []

        try:
            request = self.normalize_request_params(params)
            provider = self.provider
            cache_params = {**request, "reference": property.reference}

            async def load() -> list[NormalizedProperty]:
                return _LISTINGS_ADAPTER.validate_python(
                    await provider.similar(property, request)
                )

            return await self.cache.fetch_data(
                FeedOperation.SIMILAR, cache_params, load, adapter=_LISTINGS_ADAPTER
            )
        except FeedError as e:
            logger.warning(f"Similar error for {property.reference} ({type(e).__name__}): {e}")
            return []
        except Exception as e:
            logger.error(f"Unexpected similar error: {e}", exc_info=True)
            return []

    async def locations(self, params: Optional[dict[str, Any]] = None) -> list[FilterOption]:
        """Location options for search filters."""
        return await self._options(FeedOperation.LOCATIONS, params)

    async def property_types(
        self, params: Optional[dict[str, Any]] = None
    ) -> list[FilterOption]:
        """Property type options for search filters."""
        return await self._options(FeedOperation.PROPERTY_TYPES, params)

    async def features(self, params: Optional[dict[str, Any]] = None) -> list[FilterOption]:
        """Feature options, or [] when the provider doesn't offer them."""
        return await self._options(FeedOperation.FEATURES, params)

    async def _options(
        self, operation: FeedOperation, params: Optional[dict[str, Any]]
    ) -> list[FilterOption]:
        if not self.configured():
            return []

        try:
            request = self.normalize_request_params(params)
            method = getattr(self.provider, operation.value)

            async def load() -> list[FilterOption]:
                return _OPTIONS_ADAPTER.validate_python(await method(request))

            return await self.cache.fetch_data(
                operation, request, load, adapter=_OPTIONS_ADAPTER
            )
        except UnsupportedOperationError:
            logger.debug(f"Provider {self.provider_name} doesn't support {operation.value}")
            return []
        except FeedError as e:
            logger.warning(f"{operation.value} error ({type(e).__name__}): {e}")
            return []
        except Exception as e:
            logger.error(f"Unexpected {operation.value} error: {e}", exc_info=True)
            return []

    async def filter_options(self, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """Everything a search form needs, grouped by filter.

        Provider lists are only fetched for filter types the tenant has not
        curated itself.
        """
        params = {str(k): v for k, v in (params or {}).items()}
        tenant = self.tenant

        locations = [] if tenant.managed_options("location") else await self.locations(params)
        property_types = (
            [] if tenant.managed_options("property_type") else await self.property_types(params)
        )
        features = [] if tenant.managed_options("feature") else await self.features(params)

        listing_type = params.get("listing_type")
        if isinstance(listing_type, ListingType):
            listing_type = listing_type.value

        return build_filter_options(
            tenant,
            provider_locations=locations,
            provider_property_types=property_types,
            provider_features=features,
            listing_type=listing_type,
            locale=params.get("locale") or self._default_locale(),
        )

    def invalidate_cache(self) -> int:
        """Drop every cached feed response for this tenant."""
        return self.cache.invalidate_all()

    # Key translation

    def property_type_keys_to_external(self, keys: Iterable[Any]) -> list[str]:
        mapping = external_key_map(self.tenant, "property_type", self.provider_name)
        return keys_to_external(mapping, keys)

    def feature_keys_to_external(self, keys: Iterable[Any]) -> list[str]:
        mapping = external_key_map(self.tenant, "feature", self.provider_name)
        return keys_to_external(mapping, keys)

    # Parameter normalization

    def _default_locale(self) -> str:
        return str(
            self.config.get("default_locale")
            or self.tenant.default_locale
            or self.settings.default_locale
        )

    def _default_per_page(self) -> int:
        per_page = self.config.get("results_per_page")
        if per_page not in (None, ""):
            value = _to_int("results_per_page", per_page)
            if value and value > 0:
                return value
        return self.tenant.search_config.default_results_per_page or self.settings.default_per_page

    def _listing_type(self, value: Any) -> ListingType:
        default = self.tenant.search_config.default_listing_type
        if value is None or value == "":
            return default
        try:
            return ListingType(str(getattr(value, "value", value)).strip().lower())
        except ValueError:
            logger.debug(f"Unknown listing_type {value!r}, using {default.value}")
            return default

    def normalize_request_params(self, params: Optional[dict[str, Any]]) -> dict[str, Any]:
        """Light normalization for detail and option lookups."""
        request = {
            str(k): v for k, v in (params or {}).items() if v is not None and v != ""
        }
        request["locale"] = str(request.get("locale") or self._default_locale())
        if "listing_type" in request:
            request["listing_type"] = self._listing_type(request["listing_type"]).value
        if "limit" in request:
            limit = _to_int("limit", request["limit"])
            if limit is None or limit < 1:
                del request["limit"]
            else:
                request["limit"] = limit
        return request

    def normalize_search_params(self, params: Optional[dict[str, Any]]) -> dict[str, Any]:
        """Fill defaults, coerce types and translate keys for a search.

        Returns:
            New dict without None values, ready for cache keying and the
            provider call
        """
        search_config = self.tenant.search_config
        normalized = {str(k): v for k, v in (params or {}).items()}

        normalized["locale"] = str(normalized.get("locale") or self._default_locale())
        normalized["listing_type"] = self._listing_type(normalized.get("listing_type")).value
        normalized.setdefault("page", 1)
        normalized.setdefault("per_page", self._default_per_page())
        if not normalized.get("sort"):
            normalized["sort"] = search_config.default_sort
        normalized["sort"] = str(getattr(normalized["sort"], "value", normalized["sort"]))
        normalized["sort"] = normalized["sort"].strip().lower()

        for key in NUMERIC_PARAMS:
            value = normalized.get(key)
            if value is None or value == "":
                normalized.pop(key, None)
                continue
            normalized[key] = _to_int(key, value)

        if not normalized.get("page") or normalized["page"] < 1:
            normalized["page"] = 1
        if not normalized.get("per_page") or normalized["per_page"] < 1:
            normalized["per_page"] = self._default_per_page()

        for key in BOOLEAN_PARAMS:
            if key in normalized:
                normalized[key] = _to_bool(normalized[key])

        for key in LIST_PARAMS:
            if key in normalized and normalized[key] is not None:
                normalized[key] = _to_list(normalized[key])

        if normalized.get("property_types"):
            normalized["property_types"] = self.property_type_keys_to_external(
                normalized["property_types"]
            )
        if normalized.get("features"):
            normalized["features"] = self.feature_keys_to_external(normalized["features"])

        return {k: v for k, v in normalized.items() if v is not None}

    def _search_result(
        self, params: dict[str, Any], error: Optional[str] = None
    ) -> NormalizedSearchResult:
        page = _to_int("page", params.get("page") or 1) or 1
        per_page = _to_int("per_page", params.get("per_page") or 0) or self._default_per_page()
        return NormalizedSearchResult(
            properties=[],
            total_count=0,
            page=max(page, 1),
            per_page=max(per_page, 1),
            query_params=params,
            provider=self.provider_name,
            error=error,
        )

    # Lifecycle

    async def close(self) -> None:
        """Close the provider and release resources."""
        if self._provider is not None:
            try:
                await self._provider.close()
            except Exception as e:
                logger.debug(f"Error closing {self.provider_name}: {e}")

    async def __aenter__(self) -> "Manager":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()
