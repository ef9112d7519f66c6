"""Listing search package: filter parsing, predicates, promotion, personalization, assembly."""

from .filter_parser import parse_filter, parse_id_list
from .predicate import ModelResolution, Predicate, build_predicate
from .promotion import resolve_for_filter, resolve_for_listing
from .rotation import PromotionRotationCache, rotation_cache
from .search import SearchService, search_service
from .search_logic import (
    count_listings,
    get_caption,
    get_listing,
    most_wanted,
    price_calculate,
    related_listings,
    run_search,
)
from .sorting import SortSpec, resolve_sort
from .tokens import normalize_general_search

__all__ = [
    "ModelResolution",
    "Predicate",
    "PromotionRotationCache",
    "SearchService",
    "SortSpec",
    "build_predicate",
    "count_listings",
    "get_caption",
    "get_listing",
    "most_wanted",
    "normalize_general_search",
    "parse_filter",
    "parse_id_list",
    "price_calculate",
    "related_listings",
    "resolve_for_filter",
    "resolve_for_listing",
    "resolve_sort",
    "rotation_cache",
    "run_search",
    "search_service",
]
