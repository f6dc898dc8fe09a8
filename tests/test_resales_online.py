"""HTTP-level tests for the Resales Online provider using respx."""

from typing import Any

import httpx
import pytest
import respx

from listingfeed.manager import Manager
from listingfeed.models import ListingType, PropertyStatus, Tenant
from listingfeed.providers import (
    AuthenticationError,
    ConfigurationError,
    InvalidResponseError,
    PropertyNotFoundError,
    ProviderUnavailableError,
    RateLimitError,
    ResalesOnlineProvider,
)
from listingfeed.providers.resales_online import DETAILS_URL, SEARCH_URL_V5, SEARCH_URL_V6

from conftest import make_property


def listing_payload(reference: str = "R3456789", **overrides: Any) -> dict[str, Any]:
    """A listing as the WebAPI returns it."""
    data: dict[str, Any] = {
        "Reference": reference,
        "Country": "Spain",
        "Province": "Málaga",
        "Area": "Costa del Sol",
        "Location": "Marbella",
        "Type": "Penthouse",
        "PropertyType": {"NameType": "Penthouse", "Subtype1": "Penthouse", "SubtypeId1": "1-6"},
        "Status": {"system": "Available"},
        "Bedrooms": "3",
        "Bathrooms": "2",
        "Currency": "EUR",
        "Price": 495000,
        "OriginalPrice": 550000,
        "Built": "145",
        "Terrace": "60",
        "GardenPlot": "0",
        "Pictures": {
            "Count": 2,
            "Picture": [
                {"Id": 1, "PictureURL": "https://cdn.example.com/1.jpg"},
                {"Id": 2, "PictureURL": "https://cdn.example.com/2.jpg"},
            ],
        },
        "PropertyFeatures": {
            "Category": [
                {"@attributes": {"Type": "Views"}, "Value": ["Sea", "Panoramic"]},
                {"@attributes": {"Type": "Pool"}, "Value": "Communal"},
            ]
        },
        "EnergyRating": {"EnergyRated": "B", "CO2Rated": "C"},
    }
    data.update(overrides)
    return data


def search_payload(*listings: dict[str, Any], count: int = 150) -> dict[str, Any]:
    return {
        "transaction": {"status": "success"},
        "QueryInfo": {"PropertyCount": count, "CurrentPage": 1, "PropertiesPerPage": 24},
        "Property": list(listings),
    }


RESALES_CONFIG = {"api_key": "test-key", "api_id_sales": "1234", "api_id_rentals": "5678"}


@pytest.fixture
def resales_tenant() -> Tenant:
    """Tenant using the Resales Online feed."""
    return Tenant(
        id=9,
        external_feed_enabled=True,
        external_feed_provider="resales_online",
        external_feed_config=RESALES_CONFIG,
    )


@pytest.fixture
async def provider(resales_tenant: Tenant):
    """Provider instance, closed after the test."""
    provider = ResalesOnlineProvider(resales_tenant, RESALES_CONFIG)
    yield provider
    await provider.close()


class TestConfiguration:
    """Test provider configuration."""

    def test_required_keys(self, resales_tenant: Tenant):
        """api_key and api_id_sales are required."""
        with pytest.raises(ConfigurationError, match="api_id_sales"):
            ResalesOnlineProvider(resales_tenant, {"api_key": "x"})

    async def test_default_locations(self, provider: ResalesOnlineProvider):
        """Built-in locations are used without configuration."""
        locations = await provider.locations()

        assert locations[0].value == "Marbella"
        assert any(o.label == "Benahavís" for o in locations)

    async def test_configured_locations(self, resales_tenant: Tenant):
        """Tenant-configured locations replace the defaults."""
        config = {**RESALES_CONFIG, "locations": [{"value": "Ronda", "label": "Ronda"}]}
        provider = ResalesOnlineProvider(resales_tenant, config)

        assert [o.value for o in await provider.locations()] == ["Ronda"]

    async def test_property_types_have_subtypes(self, provider: ResalesOnlineProvider):
        """Default property types are grouped."""
        types = await provider.property_types()

        assert types[0].label == "Apartment"
        assert types[0].subtypes[-1].value == "1-7"
        assert types[2].subtypes is None


class TestSearch:
    """Test searching through the HTTP layer."""

    @respx.mock
    async def test_sale_search(self, provider: ResalesOnlineProvider):
        """Sales use the V6 endpoint and the sales API id."""
        route = respx.get(SEARCH_URL_V6).mock(
            return_value=httpx.Response(200, json=search_payload(listing_payload()))
        )

        result = await provider.search(
            {
                "locale": "es",
                "listing_type": "sale",
                "page": 1,
                "per_page": 24,
                "sort": "price_desc",
                "location": "Marbella",
                "min_bedrooms": 3,
                "min_price": 300000,
                "property_types": ["1-6", "2-2"],
            }
        )

        params = route.calls.last.request.url.params
        assert params["p1"] == "1014359"
        assert params["p2"] == "test-key"
        assert params["p_apiid"] == "1234"
        assert params["P_Lang"] == "2"
        assert params["p_SortType"] == "1"
        assert params["p_Location"] == "Marbella"
        assert params["p_Beds"] == "3x"
        assert params["p_Min"] == "300000"
        assert params["p_PropertyTypes"] == "1-6,2-2"
        assert "p_PageNo" not in params

        assert result.total_count == 150
        assert result.total_pages == 7
        assert result.provider == "resales_online"
        assert result.size == 1

    @respx.mock
    async def test_rental_search(self, provider: ResalesOnlineProvider):
        """Rentals use the V5 endpoint and the rentals API id."""
        route = respx.get(SEARCH_URL_V5).mock(
            return_value=httpx.Response(200, json=search_payload(listing_payload()))
        )

        result = await provider.search({"listing_type": "rental", "page": 3})

        params = route.calls.last.request.url.params
        assert params["p_apiid"] == "5678"
        assert params["p_PageNo"] == "3"
        assert result.properties[0].listing_type == ListingType.RENTAL

    @respx.mock
    async def test_listing_normalized(self, provider: ResalesOnlineProvider):
        """Upstream fields map onto NormalizedProperty."""
        respx.get(SEARCH_URL_V6).mock(
            return_value=httpx.Response(200, json=search_payload(listing_payload()))
        )

        listing = (await provider.search({"page": 1})).properties[0]

        assert listing.reference == "R3456789"
        assert listing.provider == "resales_online"
        assert listing.title == "3 Bedroom Penthouse in Marbella"
        assert listing.property_type == "penthouse"
        assert listing.property_type_raw == "1-6"
        assert listing.price == 49_500_000
        assert listing.original_price == 55_000_000
        assert listing.price_reduced
        assert listing.formatted_price == "EUR 495,000"
        assert listing.bedrooms == 3
        assert listing.built_area == 145
        assert listing.full_location == "Marbella, Costa del Sol, Málaga, Spain"
        assert listing.image_urls() == [
            "https://cdn.example.com/1.jpg",
            "https://cdn.example.com/2.jpg",
        ]
        assert listing.features == ["Sea", "Panoramic", "Communal"]
        assert listing.features_for("Pool") == ["Communal"]
        assert listing.energy_rating == "B"
        assert listing.status == PropertyStatus.AVAILABLE

    @respx.mock
    async def test_single_listing_object(self, provider: ResalesOnlineProvider):
        """A bare object instead of a list is accepted."""
        payload = search_payload(count=1)
        payload["Property"] = listing_payload("R1", Type="Detached Villa")
        respx.get(SEARCH_URL_V6).mock(return_value=httpx.Response(200, json=payload))

        result = await provider.search({"page": 1})

        assert [p.reference for p in result.properties] == ["R1"]
        assert result.properties[0].property_type == "villa"

    @respx.mock
    async def test_bad_listings_skipped(self, provider: ResalesOnlineProvider):
        """Listings without a reference or with invalid values are left out."""
        no_reference = listing_payload()
        del no_reference["Reference"]
        respx.get(SEARCH_URL_V6).mock(
            return_value=httpx.Response(
                200,
                json=search_payload(
                    no_reference,
                    listing_payload("NEG", Price=-100),
                    listing_payload("BEDS", Bedrooms="-2"),
                    listing_payload("GOOD", Price="1e999"),
                ),
            )
        )

        result = await provider.search({"page": 1})

        assert [p.reference for p in result.properties] == ["GOOD"]
        assert result.properties[0].price is None
        assert result.total_count == 150

    @respx.mock
    async def test_transaction_error(self, provider: ResalesOnlineProvider):
        """A failed transaction is an invalid response."""
        respx.get(SEARCH_URL_V6).mock(
            return_value=httpx.Response(
                200, json={"transaction": {"status": "error", "message": "Bad filter"}}
            )
        )

        with pytest.raises(InvalidResponseError, match="Bad filter"):
            await provider.search({"page": 1})


class TestHTTPErrors:
    """Test mapping of HTTP failures to feed errors."""

    @pytest.mark.parametrize(
        "status, error",
        [
            (401, AuthenticationError),
            (403, AuthenticationError),
            (500, ProviderUnavailableError),
            (503, ProviderUnavailableError),
        ],
    )
    @respx.mock
    async def test_status_codes(self, provider: ResalesOnlineProvider, status, error):
        """Status codes map to specific errors."""
        respx.get(SEARCH_URL_V6).mock(return_value=httpx.Response(status))

        with pytest.raises(error):
            await provider.search({"page": 1})

    @respx.mock
    async def test_rate_limited(self, provider: ResalesOnlineProvider):
        """429 carries Retry-After."""
        respx.get(SEARCH_URL_V6).mock(
            return_value=httpx.Response(429, headers={"Retry-After": "30"})
        )

        with pytest.raises(RateLimitError) as exc_info:
            await provider.search({"page": 1})
        assert exc_info.value.retry_after == 30

    @respx.mock
    async def test_timeout(self, provider: ResalesOnlineProvider):
        """Timeouts mean the provider is unavailable."""
        respx.get(SEARCH_URL_V6).mock(side_effect=httpx.ConnectTimeout("timed out"))

        with pytest.raises(ProviderUnavailableError, match="timed out"):
            await provider.search({"page": 1})

    @respx.mock
    async def test_invalid_json(self, provider: ResalesOnlineProvider):
        """Non-JSON bodies are invalid responses."""
        respx.get(SEARCH_URL_V6).mock(return_value=httpx.Response(200, text="<html>"))

        with pytest.raises(InvalidResponseError):
            await provider.search({"page": 1})


class TestFind:
    """Test property details."""

    @respx.mock
    async def test_find(self, provider: ResalesOnlineProvider):
        """Details are fetched by reference."""
        route = respx.get(DETAILS_URL).mock(
            return_value=httpx.Response(
                200,
                json={
                    "transaction": {"status": "success"},
                    "Property": listing_payload("R42", Status={"system": "Sold"}),
                },
            )
        )

        listing = await provider.find("R42", {"locale": "de"})

        params = route.calls.last.request.url.params
        assert params["P_RefId"] == "R42"
        assert params["P_Lang"] == "3"
        assert params["p_agency_filterid"] == "2"
        assert listing.reference == "R42"
        assert listing.is_sold

    @respx.mock
    async def test_not_found(self, provider: ResalesOnlineProvider):
        """404 raises PropertyNotFoundError."""
        respx.get(DETAILS_URL).mock(return_value=httpx.Response(404))

        with pytest.raises(PropertyNotFoundError) as exc_info:
            await provider.find("R404")
        assert exc_info.value.reference == "R404"

    @respx.mock
    async def test_missing_reference(self, provider: ResalesOnlineProvider):
        """Details without a Reference are an invalid response."""
        payload = listing_payload()
        del payload["Reference"]
        respx.get(DETAILS_URL).mock(
            return_value=httpx.Response(
                200, json={"transaction": {"status": "success"}, "Property": payload}
            )
        )

        with pytest.raises(InvalidResponseError, match="without Reference"):
            await provider.find("R1")

    @respx.mock
    async def test_empty_property(self, provider: ResalesOnlineProvider):
        """No Property in the body means not found."""
        respx.get(DETAILS_URL).mock(
            return_value=httpx.Response(200, json={"transaction": {"status": "success"}})
        )

        assert await provider.find("R1") is None


class TestSimilar:
    """Test similar listing search."""

    @respx.mock
    async def test_similar(self, provider: ResalesOnlineProvider):
        """Searches around the price and drops the source listing."""
        route = respx.get(SEARCH_URL_V6).mock(
            return_value=httpx.Response(
                200, json=search_payload(listing_payload("SRC"), listing_payload("OTHER"))
            )
        )
        source = make_property(
            "SRC",
            provider="resales_online",
            price=50_000_000,
            bedrooms=3,
            property_type_raw="1-6",
        )

        result = await provider.similar(source, {"limit": 4})

        params = route.calls.last.request.url.params
        assert params["p_Min"] == "350000"
        assert params["p_Max"] == "650000"
        assert params["p_PropertyTypes"] == "1-6"
        assert params["p_PageSize"] == "5"
        assert [p.reference for p in result] == ["OTHER"]


class TestAvailable:
    """Test the availability probe."""

    @respx.mock
    async def test_available(self, provider: ResalesOnlineProvider):
        respx.get(SEARCH_URL_V6).mock(
            return_value=httpx.Response(200, json=search_payload(count=0))
        )
        assert await provider.available() is True

    @respx.mock
    async def test_unavailable(self, provider: ResalesOnlineProvider):
        respx.get(SEARCH_URL_V6).mock(return_value=httpx.Response(503))
        assert await provider.available() is False


class TestThroughManager:
    """Test the provider behind the Manager."""

    @respx.mock
    async def test_search_and_cache(self, resales_tenant, backend, settings):
        """The default registry resolves the provider; results are cached."""
        route = respx.get(SEARCH_URL_V6).mock(
            return_value=httpx.Response(200, json=search_payload(listing_payload()))
        )

        async with Manager(resales_tenant, backend=backend, settings=settings) as manager:
            first = await manager.search({"location": "Marbella"})
            second = await manager.search({"location": "Marbella"})

        assert manager.provider_display_name() == "Resales Online"
        assert first.total_count == 150
        assert second.properties[0].formatted_price == "EUR 495,000"
        assert route.call_count == 1

    @respx.mock
    async def test_upstream_failure_degrades(self, resales_tenant, backend, settings):
        """Upstream outages become an error result."""
        respx.get(SEARCH_URL_V6).mock(return_value=httpx.Response(503))

        async with Manager(resales_tenant, backend=backend, settings=settings) as manager:
            result = await manager.search()

        assert result.is_empty
        assert result.error == "Server error (503)"
