"""Core configuration, errors, and shared infrastructure."""

from listing_search.core.config import Settings, get_settings
from listing_search.core.constants import (
    DEFAULT_CATEGORY,
    DEFAULT_PAGE_SIZE,
    HOUSE_VENDOR_ID,
    MAX_GENERAL_SEARCH_LENGTH,
    MAX_SEARCH_TOKENS,
    MAX_VISITOR_ID_LENGTH,
    MOST_WANTED_LIMIT,
    PERSONALIZATION_TERM_LIMIT,
    PRICE_SAMPLE_LIMIT,
    PRICE_SAMPLE_REGISTRATION_BAND,
    PRICE_SAMPLE_WINDOW_DAYS,
    RELATED_LIMIT,
    RETRO_AGE_YEARS,
)
from listing_search.core.errors import NotFound, SearchError, Unavailable, ValidationError
from listing_search.core.limiter import limiter
from listing_search.core.timing import query_budget

__all__ = [
    "Settings",
    "get_settings",
    "DEFAULT_CATEGORY",
    "DEFAULT_PAGE_SIZE",
    "HOUSE_VENDOR_ID",
    "MAX_GENERAL_SEARCH_LENGTH",
    "MAX_SEARCH_TOKENS",
    "MAX_VISITOR_ID_LENGTH",
    "MOST_WANTED_LIMIT",
    "PERSONALIZATION_TERM_LIMIT",
    "PRICE_SAMPLE_LIMIT",
    "PRICE_SAMPLE_REGISTRATION_BAND",
    "PRICE_SAMPLE_WINDOW_DAYS",
    "RELATED_LIMIT",
    "RETRO_AGE_YEARS",
    "SearchError",
    "ValidationError",
    "NotFound",
    "Unavailable",
    "limiter",
    "query_budget",
]
