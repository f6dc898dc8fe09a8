"""Pytest fixtures and test utilities."""

import asyncio
from typing import Any, Optional

import pytest

from listingfeed.config import Settings
from listingfeed.models import (
    FilterOption,
    NormalizedProperty,
    NormalizedSearchResult,
    SearchFilterOption,
    Tenant,
)
from listingfeed.providers import BaseProvider, ProviderRegistry
from listingfeed.storage import CacheStore, MemoryCacheBackend


class FakeClock:
    """Manually advanced clock for MemoryCacheBackend."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_property(reference: str = "R100", **kwargs: Any) -> NormalizedProperty:
    """Sample listing with sensible defaults."""
    data: dict[str, Any] = {
        "provider": "stub",
        "title": f"Villa {reference}",
        "property_type": "villa",
        "city": "Marbella",
        "region": "Malaga",
        "country": "Spain",
        "price": 50_000_000,
        "bedrooms": 3,
        "bathrooms": 2,
        "built_area": 200,
    }
    data.update(kwargs)
    return NormalizedProperty(reference=reference, **data)


class StubProvider(BaseProvider):
    """In-memory provider that counts calls and can be told to fail.

    Set ``fail_with`` to an exception instance to make every operation raise
    it; ``delay`` makes search() yield to the event loop before answering.
    """

    provider_name = "stub"
    required_config_keys = ("api_key",)

    def __init__(self, tenant: Tenant, config: Optional[dict[str, Any]] = None):
        super().__init__(tenant, config)
        self.calls: dict[str, int] = {}
        self.last_params: dict[str, Any] = {}
        self.fail_with: Optional[Exception] = None
        self.delay = 0.0
        self.listings = [make_property(f"R{i}", price=(i + 1) * 10_000_000) for i in range(3)]
        self.closed = False

    def _record(self, operation: str, params: Optional[dict[str, Any]]) -> None:
        self.calls[operation] = self.calls.get(operation, 0) + 1
        self.last_params = dict(params or {})
        if self.fail_with is not None:
            raise self.fail_with

    async def search(self, params: dict[str, Any]) -> NormalizedSearchResult:
        self._record("search", params)
        if self.delay:
            await asyncio.sleep(self.delay)
        return NormalizedSearchResult(
            properties=self.listings,
            total_count=len(self.listings),
            page=params.get("page", 1),
            per_page=params.get("per_page", 24),
            provider=self.provider_name,
            query_params=params,
        )

    async def find(self, reference, params=None):
        self._record("find", params)
        for listing in self.listings:
            if listing.reference == reference:
                return listing
        return None

    async def similar(self, property, params=None):
        self._record("similar", params)
        limit = (params or {}).get("limit", 8)
        return [p for p in self.listings if p.reference != property.reference][:limit]

    async def locations(self, params=None):
        self._record("locations", params)
        return [FilterOption(value="marbella", label="Marbella")]

    async def property_types(self, params=None):
        self._record("property_types", params)
        return [
            FilterOption(
                value="1-1",
                label="Apartment",
                subtypes=[FilterOption(value="1-6", label="Penthouse")],
            )
        ]

    async def available(self):
        self._record("available", None)
        return True

    async def close(self):
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock starting at t=1000."""
    return FakeClock()


@pytest.fixture
def backend(clock: FakeClock) -> MemoryCacheBackend:
    """Empty memory backend driven by the fake clock."""
    return MemoryCacheBackend(clock=clock)


@pytest.fixture
def settings() -> Settings:
    """Settings independent of the environment."""
    return Settings(_env_file=None, cache_scope="test", cache_backend="memory")


@pytest.fixture
def stub_registry() -> ProviderRegistry:
    """Fresh registry containing only StubProvider."""
    registry = ProviderRegistry()
    registry.register(StubProvider)
    return registry


@pytest.fixture
def tenant() -> Tenant:
    """Tenant with the stub feed enabled."""
    return Tenant(
        id=42,
        external_feed_enabled=True,
        external_feed_provider="stub",
        external_feed_config={"api_key": "secret"},
    )


@pytest.fixture
def disabled_tenant() -> Tenant:
    """Tenant that has external feeds switched off."""
    return Tenant(
        id=43,
        external_feed_enabled=False,
        external_feed_provider="stub",
        external_feed_config={"api_key": "secret"},
    )


@pytest.fixture
def managed_tenant() -> Tenant:
    """Tenant curating its own property types and features."""
    return Tenant(
        id=44,
        external_feed_enabled=True,
        external_feed_provider="stub",
        external_feed_config={"api_key": "secret"},
        filter_options=[
            SearchFilterOption(
                filter_type="property_type",
                global_key="penthouse",
                external_code="1-6",
                label="Penthouse",
                sort_order=2,
            ),
            SearchFilterOption(
                filter_type="property_type",
                global_key="villa",
                external_code="2-2",
                external_mappings={"stub": "V-STUB"},
                translations={"es": "Villa", "en": "Villa"},
                sort_order=1,
            ),
            SearchFilterOption(
                filter_type="property_type",
                global_key="hidden-type",
                external_code="9-9",
                visible=False,
            ),
            SearchFilterOption(
                filter_type="feature",
                global_key="sea_views",
                external_code="p_SeaViews",
                translations={"es": "Vistas al mar", "en": "Sea views"},
            ),
        ],
    )


@pytest.fixture
def cache(tenant: Tenant, backend: MemoryCacheBackend, settings: Settings) -> CacheStore:
    """CacheStore for the stub tenant."""
    return CacheStore(tenant, backend=backend, settings=settings)
