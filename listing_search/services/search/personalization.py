"""Per-visitor ordering for the browse experience.

Only plain browsing (default newest-first sort, no keyword, no free text) is personalized. The
blend is `0.7 * term match + 0.3 * recency`, with renewed time and id as final tie-breaks so the
order stays deterministic. Any failure falls back to the default order.
"""

import logging
import time
from typing import Any

from sqlalchemy import case

from listing_search.core import MAX_VISITOR_ID_LENGTH, PERSONALIZATION_TERM_LIMIT, get_settings
from listing_search.db.models import Listing
from listing_search.providers import InterestTerm, PersonalizationProvider
from listing_search.schemas.search import SearchFilter
from .predicate import to_str
from .sorting import SortSpec

logger = logging.getLogger(__name__)

TERM_COLUMNS = {
    "make": Listing.make,
    "model": Listing.model,
    "bodyType": Listing.body_type,
    "fuelType": Listing.fuel_type,
    "transmission": Listing.transmission,
    "type": Listing.category,
}
TERM_WEIGHT = 0.7
RECENCY_WEIGHT = 0.3


def is_personalization_disabled(value: Any) -> bool:
    if value is True or value == 1:
        return True
    return isinstance(value, str) and value.strip().lower() in ("1", "true", "yes")


def clean_visitor_id(visitor_id: Any) -> str | None:
    """Trimmed visitor id, or None when blank or too long to be a real id."""
    if not isinstance(visitor_id, str):
        return None
    visitor_id = visitor_id.strip()
    if not visitor_id or len(visitor_id) > MAX_VISITOR_ID_LENGTH:
        return None
    return visitor_id


def is_eligible(search_filter: SearchFilter, visitor_id: str | None, sort: SortSpec) -> bool:
    if not get_settings().personalization_enabled:
        return False
    if clean_visitor_id(visitor_id) is None:
        return False
    if is_personalization_disabled(search_filter.personalization_disabled):
        return False
    if not sort.is_default:
        return False
    return not to_str(search_filter.keyword) and not to_str(search_filter.general_search)


def eligible_terms(terms: list[InterestTerm]) -> list[InterestTerm]:
    return [t for t in terms if t.key in TERM_COLUMNS and t.score > 0 and t.value]


def build_personalized_order(terms: list[InterestTerm], now: int, window_seconds: int) -> list | None:
    """ORDER BY for the blended score; None when no usable term remains."""
    terms = eligible_terms(terms)
    if not terms:
        return None
    # Term scores are rescaled into [0, 1] by the largest score, the same range as the recency term
    max_score = max(t.score for t in terms)

    term_score = None
    for t in terms:
        expr = case((TERM_COLUMNS[t.key] == t.value, t.score / max_score), else_=0.0)
        term_score = expr if term_score is None else term_score + expr

    cutoff = now - window_seconds
    recency = case(
        (Listing.renewed_time >= cutoff, (Listing.renewed_time - cutoff) * (1.0 / window_seconds)),
        else_=0.0,
    )
    blended = TERM_WEIGHT * term_score + RECENCY_WEIGHT * recency
    return [blended.desc(), Listing.renewed_time.desc(), Listing.id.desc()]


async def personalized_order(
    provider: PersonalizationProvider | None,
    search_filter: SearchFilter,
    visitor_id: str | None,
    sort: SortSpec,
    now: int | None = None,
) -> list | None:
    """Blended ORDER BY for an eligible request, else None (default order)."""
    if provider is None or not is_eligible(search_filter, visitor_id, sort):
        return None
    try:
        terms = await provider.top_terms(clean_visitor_id(visitor_id), limit=PERSONALIZATION_TERM_LIMIT)
    except Exception as e:
        logger.warning("personalization: term lookup failed, using default order | error=%s", e)
        return None
    window_seconds = max(get_settings().personalization_recency_window_days, 1) * 86400
    order = build_personalized_order(terms, now if now is not None else int(time.time()), window_seconds)
    if order is None:
        logger.info("personalization: no eligible terms, using default order")
    return order
