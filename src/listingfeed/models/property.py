"""Normalized listing data model.

Every provider converts its upstream payload into NormalizedProperty so that
callers can render search cards and detail pages without knowing which feed
the listing came from.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, computed_field


class ListingType(str, Enum):
    """Whether a listing is offered for sale or for rent."""

    SALE = "sale"
    RENTAL = "rental"


class PropertyStatus(str, Enum):
    """Market status of a listing."""

    AVAILABLE = "available"
    RESERVED = "reserved"
    SOLD = "sold"
    RENTED = "rented"
    UNAVAILABLE = "unavailable"


class RentalPeriod(str, Enum):
    """Billing period of a rental price."""

    MONTHLY = "monthly"
    WEEKLY = "weekly"
    DAILY = "daily"


class PropertyImage(BaseModel):
    """A single listing photo."""

    url: str
    caption: str | None = None
    position: int | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NormalizedProperty(BaseModel):
    """Provider-independent listing.

    Prices are stored in minor currency units (cents). Two instances with the
    same ``(provider, reference)`` pair are the same listing: equality and
    hashing ignore every other field so that results from repeated fetches
    deduplicate cleanly.
    """

    # Identification
    reference: str = Field(..., description="Provider's unique listing ID")
    provider: str | None = Field(default=None, description="Provider name")
    provider_url: str | None = Field(default=None, description="Original listing URL")

    # Basic info
    title: str | None = None
    description: str | None = Field(default=None, description="Full description (HTML allowed)")
    property_type: str | None = Field(default=None, description="Normalized type (apartment, villa...)")
    property_type_raw: str | None = Field(default=None, description="Provider's original type code")
    property_subtype: str | None = None

    # Location
    country: str | None = None
    region: str | None = None
    area: str | None = None
    city: str | None = None
    address: str | None = None
    postal_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    # Listing details
    listing_type: ListingType = ListingType.SALE
    status: PropertyStatus = PropertyStatus.AVAILABLE
    price: int | None = Field(default=None, ge=0, description="Price in minor units")
    price_raw: str | None = Field(default=None, description="Original price string")
    currency: str = Field(default="EUR", description="ISO currency code")
    price_qualifier: str | None = None
    original_price: int | None = Field(
        default=None, ge=0, description="Price before reduction, minor units"
    )

    # Rental-specific
    rental_period: RentalPeriod | None = None
    available_from: date | None = None
    minimum_stay: int | None = None

    # Physical attributes
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: float | None = Field(default=None, ge=0, description="Allows half baths")
    built_area: int | None = Field(default=None, ge=0, description="Square meters")
    plot_area: int | None = Field(default=None, ge=0, description="Square meters")
    terrace_area: int | None = Field(default=None, ge=0, description="Square meters")
    year_built: int | None = None
    floors: int | None = None
    floor_level: int | None = None
    orientation: str | None = None
    parking_spaces: int | None = None

    # Features
    features: list[str] = Field(default_factory=list)
    features_by_category: dict[str, list[str]] = Field(default_factory=dict)

    # Energy
    energy_rating: str | None = None
    energy_value: float | None = None
    co2_rating: str | None = None
    co2_value: float | None = None

    # Media
    images: list[PropertyImage] = Field(default_factory=list)
    virtual_tour_url: str | None = None
    video_url: str | None = None
    floor_plan_urls: list[str] = Field(default_factory=list)

    # Running costs (annual, minor units)
    community_fees: int | None = None
    ibi_tax: int | None = None
    garbage_tax: int | None = None

    # Metadata
    created_at: datetime | None = None
    updated_at: datetime | None = None
    fetched_at: datetime = Field(default_factory=_utcnow)

    model_config = {
        "str_strip_whitespace": True,
        "validate_assignment": True,
    }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NormalizedProperty):
            return NotImplemented
        return (self.provider, self.reference) == (other.provider, other.reference)

    def __hash__(self) -> int:
        return hash((self.provider, self.reference))

    # Pricing

    def price_in_units(
        self, area_type: Literal["built", "plot"] | None = None
    ) -> float | None:
        """Price in major currency units, optionally per square meter.

        Args:
            area_type: "built" or "plot" to divide by that area

        Returns:
            The price (or price per m2), or None when the price or the
            requested area is missing or zero
        """
        if self.price is None:
            return None

        major = self.price / 100
        if area_type == "built":
            if not self.built_area:
                return None
            return major / self.built_area
        if area_type == "plot":
            if not self.plot_area:
                return None
            return major / self.plot_area
        return major

    @computed_field  # type: ignore[prop-decorator]
    @property
    def formatted_price(self) -> str | None:
        """Price rendered as ``"EUR 500,000"``."""
        if self.price is None:
            return None
        return f"{self.currency or 'EUR'} {round(self.price / 100):,}"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def price_reduced(self) -> bool:
        return (
            self.price is not None
            and self.original_price is not None
            and self.price < self.original_price
        )

    @property
    def price_reduction_amount(self) -> int | None:
        """Reduction in minor units, or None when not reduced."""
        if not self.price_reduced:
            return None
        return self.original_price - self.price

    @property
    def price_reduction_percent(self) -> float | None:
        if not self.price_reduced:
            return None
        return round((self.original_price - self.price) / self.original_price * 100, 1)

    # Status

    @property
    def is_available(self) -> bool:
        return self.status == PropertyStatus.AVAILABLE

    @property
    def is_reserved(self) -> bool:
        return self.status == PropertyStatus.RESERVED

    @property
    def is_sold(self) -> bool:
        """True for both sold and rented listings."""
        return self.status in (PropertyStatus.SOLD, PropertyStatus.RENTED)

    @property
    def for_sale(self) -> bool:
        return self.listing_type == ListingType.SALE

    @property
    def for_rent(self) -> bool:
        return self.listing_type == ListingType.RENTAL

    # Location

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def full_location(self) -> str:
        return _join_location(self.city, self.area, self.region, self.country)

    @property
    def short_location(self) -> str:
        return _join_location(self.city, self.region)

    # Media

    @property
    def primary_image_url(self) -> str | None:
        if not self.images:
            return None
        return self.images[0].url

    def image_urls(self, limit: int | None = None) -> list[str]:
        urls = [image.url for image in self.images if image.url]
        return urls[:limit] if limit else urls

    @property
    def has_images(self) -> bool:
        return bool(self.images)

    @property
    def image_count(self) -> int:
        return len(self.images)

    # Features

    def has_feature(self, feature: str) -> bool:
        """Case-insensitive substring match against the feature list."""
        needle = feature.lower()
        return any(needle in f.lower() for f in self.features)

    def features_for(self, category: str) -> list[str]:
        return self.features_by_category.get(category, [])

    def summary(self) -> dict[str, Any]:
        """Compact representation for list views."""
        return {
            "reference": self.reference,
            "title": self.title,
            "property_type": self.property_type,
            "location": self.short_location,
            "price": self.formatted_price,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "built_area": self.built_area,
            "image_url": self.primary_image_url,
            "status": self.status.value,
        }


def _join_location(*parts: str | None) -> str:
    return ", ".join(p for p in parts if p and p.strip())
