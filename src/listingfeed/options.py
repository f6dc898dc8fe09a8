"""Search-form filter options and key translation.

Tenants can curate their own property types, features and locations
(SearchFilterOption). When they do, those lists are shown instead of the
provider's raw options, and their keys are translated to the provider's
external codes before a search is sent upstream.
"""

from typing import Any, Iterable, Optional

from .models.property import ListingType
from .models.search_result import FilterOption
from .models.tenant import FilterType, SearchConfig, Tenant

LISTING_TYPE_LABELS = {
    ListingType.SALE.value: "For Sale",
    ListingType.RENTAL.value: "For Rent",
}

SORT_LABELS = {
    "price_asc": "Price (Low to High)",
    "price_desc": "Price (High to Low)",
    "newest": "Newest First",
    "updated": "Recently Updated",
}


def external_key_map(
    tenant: Tenant, filter_type: FilterType, provider: Optional[str]
) -> dict[str, str]:
    """Map of ``global_key -> external code`` for one filter type.

    Options without a code for ``provider`` are left out. Hidden options are
    still included so saved searches keep translating.
    """
    mapping: dict[str, str] = {}
    for option in tenant.filter_options:
        if option.filter_type != filter_type:
            continue
        code = option.external_mapping_for(provider)
        if code:
            mapping[option.global_key] = code
    return mapping


def keys_to_external(mapping: dict[str, str], keys: Iterable[Any]) -> list[str]:
    """Translate keys through ``mapping``, keeping unmapped keys as-is."""
    return [mapping.get(str(key), str(key)) for key in keys]


def managed_filter_options(
    tenant: Tenant, filter_type: FilterType, locale: Optional[str] = None
) -> list[FilterOption]:
    return [
        FilterOption(value=option.global_key, label=option.display_label(locale))
        for option in tenant.managed_options(filter_type)
    ]


def listing_type_options(search_config: SearchConfig) -> list[dict[str, Any]]:
    return [
        {
            "value": listing_type.value,
            "label": LISTING_TYPE_LABELS.get(listing_type.value, listing_type.value.title()),
            "is_default": listing_type == search_config.default_listing_type,
        }
        for listing_type in search_config.enabled_listing_types
    ]


def sort_options(search_config: SearchConfig) -> list[FilterOption]:
    return [
        FilterOption(
            value=option,
            label=SORT_LABELS.get(option, option.replace("_", " ").title()),
        )
        for option in search_config.sort_options
    ]


def count_options(options: Iterable[Any]) -> list[FilterOption]:
    """Bedroom/bathroom dropdown entries from ``["Any", 1, 2, "6+"]`` style lists."""
    result = []
    for option in options:
        text = str(option)
        if text == "Any":
            result.append(FilterOption(value="", label="Any"))
        elif text.endswith("+"):
            result.append(FilterOption(value=text.rstrip("+"), label=text))
        else:
            result.append(FilterOption(value=text, label=f"{text}+"))
    return result


def build_filter_options(
    tenant: Tenant,
    provider_locations: list[FilterOption],
    provider_property_types: list[FilterOption],
    provider_features: list[FilterOption],
    listing_type: Optional[str] = None,
    locale: Optional[str] = None,
) -> dict[str, Any]:
    """Grouped filter options for a search form.

    Managed options win over the provider lists; the provider lists are only
    used for a filter type the tenant has not curated.
    """
    search_config = tenant.search_config
    listing_type = listing_type or search_config.default_listing_type.value

    return {
        "locations": managed_filter_options(tenant, "location", locale)
        or provider_locations,
        "property_types": managed_filter_options(tenant, "property_type", locale)
        or provider_property_types,
        "features": managed_filter_options(tenant, "feature", locale) or provider_features,
        "listing_types": listing_type_options(search_config),
        "sort_options": sort_options(search_config),
        "bedrooms": count_options(search_config.bedroom_options),
        "bathrooms": count_options(search_config.bathroom_options),
        "default_min_bedrooms": search_config.default_min_bedrooms,
        "default_min_bathrooms": search_config.default_min_bathrooms,
        "price_presets": search_config.price_presets(listing_type),
        "area_presets": list(search_config.area_presets),
        "area_unit": search_config.area_unit,
        "default_sort": search_config.default_sort,
        "results_per_page_options": list(search_config.results_per_page_options),
        "default_results_per_page": search_config.default_results_per_page,
        "display": {
            "show_results_map": search_config.show_results_map,
            "map_default_expanded": search_config.map_default_expanded,
            "show_save_search": search_config.show_save_search,
            "show_favorites": search_config.show_favorites,
            "show_active_filters": search_config.show_active_filters,
            "card_layout": search_config.card_layout,
        },
    }
