"""Promoted-slot selection.

A single paid promotion is pinned above a result set. Candidates are ranked by how specifically
they match the request context (make/model/year/fuel down to body type alone); when nothing
matches, any live promotion is used. Promotion is optional: callers get None on no match and on
any storage failure.
"""

import logging
import time
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import and_, case, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_search.core import DEFAULT_CATEGORY, query_budget
from listing_search.db.models import Listing
from listing_search.schemas.search import RangeValue, SearchFilter
from .predicate import (
    ModelResolution,
    base_clauses,
    normalize_multi_values,
    strip_all_models_suffix,
    to_number,
    to_str,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromotionContext:
    category: str = DEFAULT_CATEGORY
    make: str | None = None
    model: str | None = None
    registration: int | None = None
    fuel_types: tuple[str, ...] = ()
    body_types: tuple[str, ...] = ()


def context_from_filter(
    search_filter: SearchFilter, model_resolution: ModelResolution | None = None
) -> PromotionContext:
    terms = search_filter.term_map()
    make = to_str(terms.get("make1"))
    model = strip_all_models_suffix(to_str(terms.get("model1")))
    if model_resolution:
        if make:
            make = model_resolution.make
        if model and not model_resolution.is_variant:
            model = strip_all_models_suffix(model_resolution.model)

    raw_registration = terms.get("registration")
    if isinstance(raw_registration, RangeValue):
        raw_registration = raw_registration.from_
    registration = to_number(raw_registration)

    return PromotionContext(
        category=to_str(search_filter.type) or DEFAULT_CATEGORY,
        make=make or None,
        model=model or None,
        registration=int(registration) if registration is not None else None,
        fuel_types=tuple(normalize_multi_values(terms.get("fuelType"))),
        body_types=tuple(normalize_multi_values(terms.get("bodyType"))),
    )


def context_from_listing(listing: Listing) -> PromotionContext:
    return PromotionContext(
        category=listing.category or DEFAULT_CATEGORY,
        make=listing.make or None,
        model=listing.model or None,
        registration=listing.registration,
        fuel_types=(listing.fuel_type,) if listing.fuel_type else (),
        body_types=(listing.body_type,) if listing.body_type else (),
    )


def _match(column, values: tuple[str, ...]):
    return column == values[0] if len(values) == 1 else column.in_(values)


def tier_clauses(context: PromotionContext) -> list[tuple[object, int]]:
    """(clause, rank) pairs, most specific first; tiers missing a field are left out."""
    tiers = []
    if context.make and context.model:
        make_model = [Listing.make == context.make, Listing.model == context.model]
        if context.registration is not None:
            with_year = make_model + [Listing.registration == context.registration]
            if context.fuel_types:
                tiers.append((with_year + [_match(Listing.fuel_type, context.fuel_types)], 4))
            tiers.append((with_year, 3))
        tiers.append((make_model, 2))
    if context.body_types:
        tiers.append(([_match(Listing.body_type, context.body_types)], 1))
    return [(and_(*clauses), rank) for clauses, rank in tiers]


def eligibility_clauses(context: PromotionContext, exclude_ids: Iterable[int], now: int) -> list:
    clauses = base_clauses(context.category) + [
        Listing.promotion_to.is_not(None),
        Listing.promotion_to >= now,
    ]
    excluded = list(exclude_ids)
    if excluded:
        clauses.append(Listing.id.not_in(excluded))
    return clauses


_RECENCY_ORDER = (Listing.promotion_to.desc(), Listing.renewed_time.desc(), Listing.id.desc())


async def resolve_promotion(
    session: AsyncSession,
    context: PromotionContext,
    exclude_ids: Iterable[int] = (),
    now: int | None = None,
) -> Listing | None:
    """Best tier match, else any live promotion, else None. Storage errors propagate."""
    if now is None:
        now = int(time.time())
    eligible = eligibility_clauses(context, exclude_ids, now)

    tiers = tier_clauses(context)
    if tiers:
        rank = case(*[(clause, value) for clause, value in tiers], else_=0)
        stmt = (
            select(Listing)
            .where(*eligible, or_(*[clause for clause, _ in tiers]))
            .order_by(rank.desc(), *_RECENCY_ORDER)
            .limit(1)
        )
        with query_budget("search.promotion"):
            row = (await session.execute(stmt)).scalars().first()
        if row is not None:
            return row

    stmt = select(Listing).where(*eligible).order_by(*_RECENCY_ORDER).limit(1)
    with query_budget("search.promotion"):
        return (await session.execute(stmt)).scalars().first()


async def _resolve_best_effort(
    session_factory: async_sessionmaker[AsyncSession],
    context: PromotionContext,
    exclude_ids: Iterable[int],
    now: int | None,
) -> Listing | None:
    try:
        async with session_factory() as session:
            return await resolve_promotion(session, context, exclude_ids, now)
    except Exception as e:
        logger.warning("promotion: lookup failed, continuing without promotion | error=%s", e)
        return None


async def resolve_for_filter(
    session_factory: async_sessionmaker[AsyncSession],
    search_filter: SearchFilter,
    exclude_ids: Iterable[int] = (),
    model_resolution: ModelResolution | None = None,
    now: int | None = None,
) -> Listing | None:
    context = context_from_filter(search_filter, model_resolution)
    return await _resolve_best_effort(session_factory, context, list(exclude_ids), now)


async def resolve_for_listing(
    session_factory: async_sessionmaker[AsyncSession],
    listing: Listing,
    exclude_ids: Iterable[int] = (),
    now: int | None = None,
) -> Listing | None:
    """Promotion for a related-listings block; the reference listing itself is never picked."""
    excluded = list(dict.fromkeys([*exclude_ids, listing.id]))
    return await _resolve_best_effort(session_factory, context_from_listing(listing), excluded, now)
