"""Pydantic filter and response schemas."""

from listing_search.schemas.search import (
    CaptionResponse,
    CountResponse,
    FilterTerm,
    ListingItem,
    PriceSample,
    RangeValue,
    SearchFilter,
    SearchResponse,
    SortTerm,
)

__all__ = [
    "CaptionResponse",
    "CountResponse",
    "FilterTerm",
    "ListingItem",
    "PriceSample",
    "RangeValue",
    "SearchFilter",
    "SearchResponse",
    "SortTerm",
]
