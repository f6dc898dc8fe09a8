"""Data models for listingfeed."""

from listingfeed.models.property import (
    ListingType,
    NormalizedProperty,
    PropertyImage,
    PropertyStatus,
    RentalPeriod,
)
from listingfeed.models.search_result import FilterOption, NormalizedSearchResult
from listingfeed.models.tenant import SearchConfig, SearchFilterOption, Tenant

__all__ = [
    "ListingType",
    "PropertyStatus",
    "RentalPeriod",
    "PropertyImage",
    "NormalizedProperty",
    "NormalizedSearchResult",
    "FilterOption",
    "SearchConfig",
    "SearchFilterOption",
    "Tenant",
]
