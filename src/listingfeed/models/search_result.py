"""Paginated search result and filter-option models."""

import math
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, model_validator

from .property import NormalizedProperty


class FilterOption(BaseModel):
    """A ``{value, label}`` pair for search-form dropdowns and checkboxes."""

    value: str
    label: str
    subtypes: list["FilterOption"] | None = None


class NormalizedSearchResult(BaseModel):
    """One page of listings returned by a provider search.

    ``total_pages`` is derived from ``total_count`` and ``per_page`` once, when
    the result is built. Mutating ``total_count`` afterwards does not change
    it; build a new result instead.
    """

    properties: list[NormalizedProperty] = Field(default_factory=list)
    total_count: int = Field(default=0, ge=0)
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=24, ge=0)
    total_pages: int = Field(default=0, ge=0)
    query_params: dict[str, Any] = Field(default_factory=dict)
    provider: str | None = None
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    error: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _derive_counts(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        data = dict(data)
        if data.get("total_count") is None:
            data["total_count"] = len(data.get("properties") or [])
        if data.get("page") is None:
            data["page"] = 1
        if data.get("per_page") is None:
            data["per_page"] = 24
        if data.get("total_pages") is None:
            per_page = int(data["per_page"])
            total = int(data["total_count"])
            data["total_pages"] = math.ceil(total / per_page) if per_page > 0 else 0
        return data

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def has_error(self) -> bool:
        return self.error is not None

    @property
    def is_empty(self) -> bool:
        return not self.properties

    @property
    def size(self) -> int:
        """Number of listings on this page."""
        return len(self.properties)

    # Pagination

    @property
    def first_page(self) -> bool:
        return self.page <= 1

    @property
    def last_page(self) -> bool:
        return self.page >= self.total_pages

    @property
    def next_page(self) -> int | None:
        return None if self.last_page else self.page + 1

    @property
    def prev_page(self) -> int | None:
        return None if self.first_page else self.page - 1

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page

    def page_range(self, window: int = 2) -> list[int]:
        """Page numbers to show around the current page in a paginator."""
        start = max(1, self.page - window)
        end = min(self.total_pages, self.page + window)
        return list(range(start, end + 1))

    @property
    def results_range(self) -> str:
        """Human readable range such as ``"1-24 of 150"``."""
        if self.total_count == 0:
            return "0 of 0"
        last = min(self.offset + self.per_page, self.total_count)
        return f"{self.offset + 1}-{last} of {self.total_count}"
