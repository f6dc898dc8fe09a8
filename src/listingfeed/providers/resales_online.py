"""Resales Online data source.

This module implements a provider for the Resales Online WebAPI, a listing
feed for the Spanish property market (Costa del Sol). Sales are searched
through the V6 endpoint, long-term rentals through V5-2, and single listings
through the V6 details endpoint. It uses httpx for async HTTP requests.

The API always answers JSON; a request is successful when
``transaction.status == "success"``.
"""

import logging
from typing import TYPE_CHECKING, Any, Optional

import httpx
from pydantic import ValidationError

from ..config import config as settings
from ..models.property import (
    ListingType,
    NormalizedProperty,
    PropertyImage,
    PropertyStatus,
)
from ..models.search_result import FilterOption, NormalizedSearchResult
from .base import (
    AuthenticationError,
    BaseProvider,
    FeedError,
    InvalidResponseError,
    PropertyNotFoundError,
    ProviderUnavailableError,
    RateLimitError,
)
from .registry import registry

if TYPE_CHECKING:
    from ..models.tenant import Tenant

logger = logging.getLogger(__name__)

SEARCH_URL_V6 = "https://webapi.resales-online.com/WebApi/V6/SearchProperties.php"
SEARCH_URL_V5 = "https://webapi.resales-online.com/WebApi/V5-2/SearchProperties.php"
DETAILS_URL = "https://webapi.resales-online.com/WebApi/V6/PropertyDetails.php"

# Resales language codes
LANG_CODES = {
    "en": "1", "es": "2", "de": "3", "fr": "4", "nl": "5", "da": "6",
    "ru": "7", "sv": "8", "pl": "9", "no": "10", "tr": "11",
}

# Sort keys to Resales p_SortType codes
SORT_OPTIONS = {
    "price_asc": "0",
    "price_desc": "1",
    "location": "2",
    "newest": "3",
    "oldest": "4",
    "listed_newest": "5",
    "listed_oldest": "6",
    "updated": "3",  # alias for newest
}

# Ordered (pattern, normalized type); first match wins
TYPE_PATTERNS = [
    (("penthouse",), "penthouse"),
    (("top floor", "top-floor"), "apartment_top"),
    (("ground floor", "ground-floor"), "apartment_ground"),
    (("middle floor", "middle-floor"), "apartment_middle"),
    (("apartment", "flat", "duplex"), "apartment"),
    (("semi-detached", "semi detached", "semidetached"), "semi_detached"),
    (("villa", "detached"), "villa"),
    (("townhouse", "town house", "town-house", "terraced"), "townhouse"),
    (("bungalow",), "bungalow"),
    (("finca", "cortijo", "country"), "finca"),
    (("plot", "land"), "land"),
    (("commercial", "office", "retail", "shop"), "commercial"),
]

STATUS_MAPPING = {
    "Available": PropertyStatus.AVAILABLE,
    "Reserved": PropertyStatus.RESERVED,
    "Sold": PropertyStatus.SOLD,
    "Off Market": PropertyStatus.UNAVAILABLE,
}

DEFAULT_LOCATIONS = [
    ("Marbella", "Marbella"),
    ("Estepona", "Estepona"),
    ("Benahavis", "Benahavís"),
    ("Mijas", "Mijas"),
    ("Fuengirola", "Fuengirola"),
    ("Benalmadena", "Benalmádena"),
    ("Torremolinos", "Torremolinos"),
    ("Malaga", "Málaga"),
    ("Nerja", "Nerja"),
    ("Casares", "Casares"),
    ("Manilva", "Manilva"),
    ("Sotogrande", "Sotogrande"),
    ("Puerto Banus", "Puerto Banús"),
    ("Nueva Andalucia", "Nueva Andalucía"),
    ("San Pedro de Alcantara", "San Pedro de Alcántara"),
]

DEFAULT_PROPERTY_TYPES: list[dict[str, Any]] = [
    {
        "value": "1-1",
        "label": "Apartment",
        "subtypes": [
            {"value": "1-2", "label": "Ground Floor Apartment"},
            {"value": "1-4", "label": "Middle Floor Apartment"},
            {"value": "1-5", "label": "Top Floor Apartment"},
            {"value": "1-6", "label": "Penthouse"},
            {"value": "1-7", "label": "Duplex"},
        ],
    },
    {
        "value": "2-1",
        "label": "House",
        "subtypes": [
            {"value": "2-2", "label": "Detached Villa"},
            {"value": "2-4", "label": "Semi-Detached House"},
            {"value": "2-5", "label": "Townhouse"},
            {"value": "2-6", "label": "Finca / Country House"},
        ],
    },
    {"value": "3-1", "label": "Plot / Land"},
    {"value": "4-1", "label": "Commercial"},
]


def _as_list(value: Any) -> list[Any]:
    """The API returns a bare object instead of a one-element list."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _to_cents(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(round(float(value) * 100))
    except (TypeError, ValueError, OverflowError):
        return None


def _to_str(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    return str(value)


def _to_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _to_float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@registry.register
class ResalesOnlineProvider(BaseProvider):
    """Provider for the Resales Online WebAPI.

    Attributes:
        provider_name: "resales_online"
        required_config_keys: api_key and api_id_sales (the agency filter
            used for sale searches; api_id_rentals is optional)

    Example:
        provider = ResalesOnlineProvider(
            tenant, {"api_key": "...", "api_id_sales": "1234"}
        )
        result = await provider.search({"location": "Marbella", "page": 1})
    """

    provider_name = "resales_online"
    required_config_keys = ("api_key", "api_id_sales")

    def __init__(
        self,
        tenant: "Tenant",
        config: Optional[dict[str, Any]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the provider.

        Args:
            tenant: Tenant the provider serves
            config: Provider configuration
            client: Pre-built HTTP client (tests pass one with a mock transport)
        """
        super().__init__(tenant, config)
        self._client = client

    @classmethod
    def display_name(cls) -> str:
        return "Resales Online"

    # Contract

    async def search(self, params: dict[str, Any]) -> NormalizedSearchResult:
        listing_type = self._listing_type(params)
        url = SEARCH_URL_V5 if listing_type == ListingType.RENTAL else SEARCH_URL_V6
        query = self._build_search_query(params, self._api_id_for(listing_type))

        self.log(logging.DEBUG, f"Search {url} page={query.get('p_PageNo', 1)}")
        response = await self._fetch_json(url, query)
        return self._normalize_search_results(response, params)

    async def find(
        self, reference: str, params: Optional[dict[str, Any]] = None
    ) -> Optional[NormalizedProperty]:
        params = params or {}
        listing_type = self._listing_type(params)
        api_id = self._api_id_for(listing_type)

        query = {
            "p1": self._p1_constant,
            "p2": self.config["api_key"],
            "P_Lang": self._lang_code_for(params.get("locale")),
            "p_agency_filterid": self._agency_filter_id(api_id),
            "p_apiid": api_id,
            "P_RefId": reference,
        }

        self.log(logging.DEBUG, f"Details for {reference}")
        response = await self._fetch_json(DETAILS_URL, query, reference=reference)

        data = response.get("Property")
        if not data:
            return None
        if isinstance(data, list):
            data = data[0]

        listing = self._normalize_property(data, params)
        status = (data.get("Status") or {}).get("system")
        if status == "Sold":
            listing.status = PropertyStatus.SOLD
        elif status == "Off Market":
            listing.status = PropertyStatus.UNAVAILABLE
        return listing

    async def similar(
        self, property: NormalizedProperty, params: Optional[dict[str, Any]] = None
    ) -> list[NormalizedProperty]:
        params = params or {}
        limit = int(params.get("limit") or 8)
        price = (property.price or 0) / 100

        search_params: dict[str, Any] = {
            "locale": params.get("locale") or self.default_locale,
            "listing_type": property.listing_type.value,
            "property_types": [property.property_type_raw] if property.property_type_raw else [],
            "location": property.city,
            "min_price": int(round(price * 0.7)),
            "max_price": int(round(price * 1.3)),
            "min_bedrooms": property.bedrooms,
            "sort": "newest",
            "per_page": limit + 1,  # the source listing may be in the results
        }

        result = await self.search(search_params)
        return [p for p in result.properties if p.reference != property.reference][:limit]

    async def locations(self, params: Optional[dict[str, Any]] = None) -> list[FilterOption]:
        # No locations endpoint upstream
        configured = self.config.get("locations")
        if configured:
            return [FilterOption.model_validate(item) for item in configured]
        return [FilterOption(value=value, label=label) for value, label in DEFAULT_LOCATIONS]

    async def property_types(
        self, params: Optional[dict[str, Any]] = None
    ) -> list[FilterOption]:
        items = self.config.get("property_types") or DEFAULT_PROPERTY_TYPES
        return [FilterOption.model_validate(item) for item in items]

    async def available(self) -> bool:
        query = {
            "p1": self._p1_constant,
            "p2": self.config["api_key"],
            "p_apiid": self.config["api_id_sales"],
            "p_PageSize": "1",
        }
        try:
            response = await self._fetch_json(SEARCH_URL_V6, query)
        except FeedError as e:
            self.log(logging.WARNING, f"Availability check failed: {e}")
            return False
        return (response.get("transaction") or {}).get("status") == "success"

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    # Configuration helpers

    @property
    def _p1_constant(self) -> str:
        return str(self.config.get("p1_constant") or "1014359")

    def _api_id_for(self, listing_type: ListingType) -> str:
        if listing_type == ListingType.RENTAL:
            return str(self.config.get("api_id_rentals") or self.config["api_id_sales"])
        return str(self.config["api_id_sales"])

    @staticmethod
    def _agency_filter_id(api_id: str) -> str:
        # Filter 4069 needs agency filter 1; every other filter uses 2
        return "1" if api_id == "4069" else "2"

    @staticmethod
    def _lang_code_for(locale: Optional[str]) -> str:
        return LANG_CODES.get(str(locale or "en"), LANG_CODES["en"])

    @staticmethod
    def _listing_type(params: dict[str, Any]) -> ListingType:
        try:
            return ListingType(params.get("listing_type") or ListingType.SALE)
        except ValueError:
            return ListingType.SALE

    # Query building

    def _build_search_query(self, params: dict[str, Any], api_id: str) -> dict[str, Any]:
        query: dict[str, Any] = {
            "p1": self._p1_constant,
            "p2": self.config["api_key"],
            "p_apiid": api_id,
            "p_PageSize": params.get("per_page") or self.default_per_page,
            "P_Lang": self._lang_code_for(params.get("locale")),
            "P_Country": self.config.get("default_country") or "Spain",
            "P_Images": self.config.get("image_count") or 0,  # 0 = all images
            "p_MustHaveFeatures": "2",
            "p_new_devs": "only" if params.get("new_developments_only") else "include",
        }

        page = int(params.get("page") or 1)
        if page > 1:
            query["p_PageNo"] = page

        if params.get("sort"):
            query["p_SortType"] = SORT_OPTIONS.get(str(params["sort"]), "0")

        property_types = params.get("property_types")
        if property_types:
            query["p_PropertyTypes"] = ",".join(str(t) for t in _as_list(property_types))

        if params.get("location"):
            query["p_Location"] = params["location"]

        # "Nx" means "at least N"
        if params.get("min_bedrooms"):
            query["p_Beds"] = f"{params['min_bedrooms']}x"
        if params.get("min_bathrooms"):
            query["p_Baths"] = f"{params['min_bathrooms']}x"

        # Prices in whole currency units
        if params.get("min_price"):
            query["p_Min"] = params["min_price"]
        if params.get("max_price"):
            query["p_Max"] = params["max_price"]

        feature_params = self.config.get("features") or {}
        for feature in _as_list(params.get("features")):
            mapping = feature_params.get(str(feature))
            if isinstance(mapping, dict) and mapping.get("param"):
                query[mapping["param"]] = "1"
            else:
                query[str(feature)] = "1"

        return query

    # HTTP

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    settings.request_timeout, connect=settings.connect_timeout
                ),
                headers={"Accept": "application/json"},
                follow_redirects=True,
                max_redirects=1,
            )
        return self._client

    async def _fetch_json(
        self, url: str, query: dict[str, Any], reference: Optional[str] = None
    ) -> dict[str, Any]:
        """GET ``url`` and decode the JSON body.

        Raises:
            AuthenticationError: On 401/403
            RateLimitError: On 429
            PropertyNotFoundError: On 404
            ProviderUnavailableError: On 5xx, timeouts and connection errors
            InvalidResponseError: If the body is not a JSON object
        """
        client = await self._get_client()
        try:
            response = await client.get(url, params=query)
        except httpx.TimeoutException:
            raise ProviderUnavailableError(self.provider_name, "Request timed out")
        except httpx.HTTPError as e:
            self.log(logging.ERROR, f"Fetch error: {type(e).__name__} - {e}")
            raise ProviderUnavailableError(self.provider_name, f"Request failed: {e}")

        self._raise_for_status(response, reference)

        try:
            body = response.json()
        except ValueError as e:
            raise InvalidResponseError(self.provider_name, f"Invalid JSON: {e}")
        if not isinstance(body, dict):
            raise InvalidResponseError(
                self.provider_name, f"Expected a JSON object, got {type(body).__name__}"
            )
        return body

    def _raise_for_status(self, response: httpx.Response, reference: Optional[str]) -> None:
        code = response.status_code
        if code < 400:
            return
        if code in (401, 403):
            raise AuthenticationError(self.provider_name, f"Authentication failed ({code})")
        if code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                self.provider_name,
                int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if code == 404:
            raise PropertyNotFoundError(self.provider_name, reference)
        if code >= 500:
            raise ProviderUnavailableError(self.provider_name, f"Server error ({code})")
        raise FeedError(self.provider_name, f"HTTP error: {code}")

    # Response normalization

    def _normalize_search_results(
        self, response: dict[str, Any], params: dict[str, Any]
    ) -> NormalizedSearchResult:
        transaction = response.get("transaction") or {}
        if transaction.get("status") != "success":
            message = transaction.get("message") or "Search failed"
            raise InvalidResponseError(self.provider_name, f"API error: {message}")

        properties = []
        for item in _as_list(response.get("Property")):
            try:
                properties.append(self._normalize_property(item, params))
            except InvalidResponseError as e:
                self.log(logging.WARNING, f"Skipping listing: {e.message}")

        info = response.get("QueryInfo") or {}
        return NormalizedSearchResult(
            properties=properties,
            total_count=_to_int(info.get("PropertyCount")) or 0,
            page=_to_int(info.get("CurrentPage")) or params.get("page") or 1,
            per_page=_to_int(info.get("PropertiesPerPage"))
            or params.get("per_page")
            or self.default_per_page,
            provider=self.provider_name,
            query_params=params,
        )

    def _normalize_property(
        self, data: dict[str, Any], params: dict[str, Any]
    ) -> NormalizedProperty:
        """Build a NormalizedProperty from one upstream listing.

        Raises:
            InvalidResponseError: If the listing has no Reference or fails
                validation
        """
        if not isinstance(data, dict):
            raise InvalidResponseError(
                self.provider_name, f"Expected a listing object, got {type(data).__name__}"
            )
        reference = _to_str(data.get("Reference"))
        if reference is None or not reference.strip():
            raise InvalidResponseError(self.provider_name, "Listing without Reference")

        try:
            return self._build_property(reference, data, params)
        except ValidationError as e:
            raise InvalidResponseError(
                self.provider_name,
                f"Invalid listing {reference}: {e.error_count()} validation error(s)",
            )

    def _build_property(
        self, reference: str, data: dict[str, Any], params: dict[str, Any]
    ) -> NormalizedProperty:
        property_type = data.get("PropertyType") or {}
        geo = data.get("GeoData") or {}
        energy = data.get("EnergyRating") or {}
        original_price = data.get("OriginalPrice")

        return NormalizedProperty(
            reference=reference,
            provider=self.provider_name,
            title=self._build_title(data),
            description=data.get("Description"),
            property_type=self._normalize_type(data.get("Type")),
            property_type_raw=_to_str(property_type.get("SubtypeId1") or data.get("TypeId")),
            property_subtype=property_type.get("Subtype1") or data.get("Type"),
            country=data.get("Country"),
            region=data.get("Province"),
            area=data.get("Area"),
            city=data.get("Location"),
            latitude=_to_float(geo.get("Latitude") or data.get("Latitude")),
            longitude=_to_float(geo.get("Longitude") or data.get("Longitude")),
            listing_type=self._listing_type(params),
            status=STATUS_MAPPING.get(
                (data.get("Status") or {}).get("system"), PropertyStatus.AVAILABLE
            ),
            price=_to_cents(data.get("Price")),
            price_raw=str(data.get("Price")) if data.get("Price") is not None else None,
            currency=data.get("Currency") or "EUR",
            original_price=_to_cents(original_price) if original_price else None,
            bedrooms=_to_int(data.get("Bedrooms")),
            bathrooms=_to_float(data.get("Bathrooms")),
            built_area=_to_int(data.get("Built")),
            plot_area=_to_int(data.get("GardenPlot")),
            terrace_area=_to_int(data.get("Terrace")),
            features=self._extract_features(data),
            features_by_category=self._extract_features_by_category(data),
            energy_rating=_to_str(energy.get("EnergyRated")),
            energy_value=_to_float(energy.get("EnergyValue")),
            co2_rating=_to_str(energy.get("CO2Rated")),
            images=self._normalize_images(data),
            virtual_tour_url=data.get("VirtualTour") or None,
            community_fees=_to_cents(data.get("Community_Fees_Year")),
            ibi_tax=_to_cents(data.get("IBI_Fees_Year")),
            garbage_tax=_to_cents(data.get("Basura_Tax_Year")),
        )

    @staticmethod
    def _build_title(data: dict[str, Any]) -> str:
        parts = []
        bedrooms = _to_int(data.get("Bedrooms"))
        if bedrooms:
            parts.append(f"{bedrooms} Bedroom")
        parts.append(data.get("Type") or "Property")
        if data.get("Location"):
            parts.append(f"in {data['Location']}")
        return " ".join(parts)

    @staticmethod
    def _normalize_type(type_name: Optional[str]) -> str:
        if not type_name:
            return "other"
        lowered = type_name.lower()
        for patterns, normalized in TYPE_PATTERNS:
            if any(p in lowered for p in patterns):
                return normalized
        return "other"

    @staticmethod
    def _normalize_images(data: dict[str, Any]) -> list[PropertyImage]:
        pictures = _as_list((data.get("Pictures") or {}).get("Picture"))
        return [
            PropertyImage(url=pic["PictureURL"], position=index)
            for index, pic in enumerate(pictures)
            if pic.get("PictureURL")
        ]

    @staticmethod
    def _extract_features(data: dict[str, Any]) -> list[str]:
        categories = _as_list((data.get("PropertyFeatures") or {}).get("Category"))
        return [
            str(value)
            for category in categories
            for value in _as_list(category.get("Value"))
            if value
        ]

    @staticmethod
    def _extract_features_by_category(data: dict[str, Any]) -> dict[str, list[str]]:
        categories = _as_list((data.get("PropertyFeatures") or {}).get("Category"))
        result: dict[str, list[str]] = {}
        for category in categories:
            name = (category.get("@attributes") or {}).get("Type") or "Other"
            result[name] = [str(v) for v in _as_list(category.get("Value")) if v]
        return result
