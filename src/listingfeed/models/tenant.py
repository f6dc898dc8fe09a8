"""Tenant configuration models.

A tenant is one customer site. Its settings are stored by the host
application; this package only reads them through these models.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

from .property import ListingType

FilterType = Literal["property_type", "feature", "amenity", "location"]

# Default sale price presets (major units)
DEFAULT_SALE_PRESETS = [
    50_000, 100_000, 150_000, 200_000, 300_000, 400_000, 500_000,
    750_000, 1_000_000, 1_500_000, 2_000_000, 3_000_000, 5_000_000,
]

# Default rental price presets (major units per month)
DEFAULT_RENTAL_PRESETS = [
    250, 500, 750, 1_000, 1_250, 1_500, 2_000, 2_500, 3_000, 4_000, 5_000, 7_500, 10_000,
]

# Default area presets (sqm)
DEFAULT_AREA_PRESETS = [
    25, 50, 75, 100, 150, 200, 300, 400, 500, 750, 1_000, 1_500, 2_000,
]

DEFAULT_BEDROOM_OPTIONS: list[int | str] = ["Any", 1, 2, 3, 4, 5, "6+"]
DEFAULT_BATHROOM_OPTIONS: list[int | str] = ["Any", 1, 2, 3, 4, "5+"]


class SearchFilterOption(BaseModel):
    """A tenant-managed search filter entry (property type, feature...).

    ``global_key`` is the tenant's canonical key; ``external_code`` and
    ``external_mappings`` translate it into provider-specific codes.
    """

    filter_type: FilterType
    global_key: str = Field(..., pattern=r"^[a-z0-9_-]+$")
    external_code: str | None = None
    external_mappings: dict[str, str] = Field(default_factory=dict)
    label: str | None = None
    translations: dict[str, str] = Field(default_factory=dict)
    visible: bool = True
    show_in_search: bool = True
    sort_order: int = 0

    def external_mapping_for(self, provider: str | None) -> str | None:
        """Provider-specific code, falling back to the primary external code."""
        if provider:
            mapping = self.external_mappings.get(str(provider))
            if mapping:
                return mapping
        return self.external_code

    def display_label(self, locale: str | None = None) -> str:
        if self.label:
            return self.label
        if locale and self.translations.get(locale):
            return self.translations[locale]
        if self.translations.get("en"):
            return self.translations["en"]
        for value in self.translations.values():
            if value:
                return value
        return self.global_key.replace("_", " ").replace("-", " ").title()


class SearchConfig(BaseModel):
    """Search form defaults and display settings for a tenant."""

    sale_price_presets: list[int] = Field(default_factory=lambda: list(DEFAULT_SALE_PRESETS))
    rental_price_presets: list[int] = Field(
        default_factory=lambda: list(DEFAULT_RENTAL_PRESETS)
    )
    area_presets: list[int] = Field(default_factory=lambda: list(DEFAULT_AREA_PRESETS))
    area_unit: str = "sqm"
    bedroom_options: list[int | str] = Field(
        default_factory=lambda: list(DEFAULT_BEDROOM_OPTIONS)
    )
    bathroom_options: list[int | str] = Field(
        default_factory=lambda: list(DEFAULT_BATHROOM_OPTIONS)
    )
    default_min_bedrooms: int | None = None
    default_min_bathrooms: int | None = None

    sort_options: list[str] = Field(
        default_factory=lambda: ["price_asc", "price_desc", "newest", "updated"]
    )
    default_sort: str = "newest"
    results_per_page_options: list[int] = Field(default_factory=lambda: [12, 24, 48])
    default_results_per_page: int = Field(default=24, ge=1)

    enabled_listing_types: list[ListingType] = Field(
        default_factory=lambda: [ListingType.SALE, ListingType.RENTAL]
    )
    default_listing_type: ListingType = ListingType.SALE

    # Display flags
    show_results_map: bool = False
    map_default_expanded: bool = False
    show_save_search: bool = True
    show_favorites: bool = True
    show_active_filters: bool = True
    card_layout: Literal["grid", "list"] = "grid"

    def price_presets(self, listing_type: ListingType | str | None = None) -> list[int]:
        if listing_type in (ListingType.RENTAL, ListingType.RENTAL.value):
            return list(self.rental_price_presets)
        return list(self.sale_price_presets)


class Tenant(BaseModel):
    """External-feed settings of one tenant.

    ``external_feed_config`` holds provider-specific keys (credentials, IDs)
    together with the shared keys ``default_locale``, ``supported_locales``,
    ``results_per_page`` and ``cache_ttl_<operation>``.
    """

    id: str | int
    external_feed_enabled: bool = False
    external_feed_provider: str | None = None
    external_feed_config: dict[str, Any] = Field(default_factory=dict)
    default_locale: str | None = None
    search_config: SearchConfig = Field(default_factory=SearchConfig)
    filter_options: list[SearchFilterOption] = Field(default_factory=list)

    @property
    def external_feed_configured(self) -> bool:
        return self.external_feed_enabled and bool(
            self.external_feed_provider and self.external_feed_provider.strip()
        )

    def managed_options(self, filter_type: FilterType) -> list[SearchFilterOption]:
        """Visible, search-enabled options of one type in display order."""
        options = [
            o
            for o in self.filter_options
            if o.filter_type == filter_type and o.visible and o.show_in_search
        ]
        return sorted(options, key=lambda o: o.sort_order)
