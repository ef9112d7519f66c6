"""Listing search pipeline.

run_search:
  filter -> make/model correction -> predicate + sort
  -> concurrently: promotion (rotated per visitor) | personalization terms -> listing page
  -> merge (promoted row first, deduplicated) -> SearchResponse

related_listings, count_listings, price_calculate, most_wanted, get_listing and get_caption
reuse the same predicate, promotion and assembly pieces. Storage failures on the primary path raise
Unavailable; promotion and personalization only ever degrade.
"""

import asyncio
import logging
import time
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_search.core import (
    MOST_WANTED_LIMIT,
    PRICE_SAMPLE_LIMIT,
    PRICE_SAMPLE_REGISTRATION_BAND,
    PRICE_SAMPLE_WINDOW_DAYS,
    RELATED_LIMIT,
    NotFound,
    Unavailable,
    ValidationError,
    get_settings,
    query_budget,
)
from listing_search.db.models import Listing
from listing_search.providers import PersonalizationProvider, get_personalization_provider
from listing_search.schemas.search import (
    CaptionResponse,
    ListingItem,
    PriceSample,
    RangeValue,
    SearchFilter,
    SearchResponse,
)
from .assembler import listing_to_item, merge_promoted, normalize_caption
from .filter_parser import parse_filter, parse_id_list
from .make_model import correct_make, resolve_model
from .personalization import clean_visitor_id, personalized_order
from .predicate import (
    ModelResolution,
    base_clauses,
    build_predicate,
    model_clause,
    strip_all_models_suffix,
    to_number,
    to_str,
)
from .promotion import resolve_for_filter, resolve_for_listing
from .rotation import PromotionRotationCache, rotation_cache
from .sorting import resolve_sort

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


def _require_filter(filter_raw: Any) -> SearchFilter:
    search_filter = parse_filter(filter_raw)
    if search_filter is None:
        raise ValidationError("Invalid search filter")
    return search_filter


async def _resolve_make_model(
    session_factory: SessionFactory, search_filter: SearchFilter
) -> ModelResolution | None:
    terms = search_filter.term_map()
    make = to_str(terms.get("make1"))
    model = to_str(terms.get("model1"))
    if not make:
        return None
    async with session_factory() as session:
        with query_budget("search.make_model"):
            if model:
                return await resolve_model(session, make, model)
            return ModelResolution(make=await correct_make(session, make), model="")


async def run_search(
    session_factory: SessionFactory,
    filter_raw: Any,
    visitor_id: str | None = None,
    provider: PersonalizationProvider | None = None,
    rotation: PromotionRotationCache | None = None,
    now: int | None = None,
) -> SearchResponse:
    """One page of listings with the promoted listing (if any) pinned first."""
    search_filter = _require_filter(filter_raw)
    visitor_id = clean_visitor_id(visitor_id) or clean_visitor_id(search_filter.visitor_id)
    rotation = rotation or rotation_cache
    if provider is None and get_settings().personalization_enabled:
        provider = get_personalization_provider(session_factory)
    sort = resolve_sort(search_filter)
    if now is None:
        now = int(time.time())

    try:
        resolution = await _resolve_make_model(session_factory, search_filter)
        predicate = build_predicate(search_filter, resolution)

        async def load_page() -> list[Listing]:
            order = await personalized_order(provider, search_filter, visitor_id, sort, now)
            stmt = (
                select(Listing)
                .where(predicate.where())
                .order_by(*(order or sort.order_by()))
                .limit(sort.limit)
                .offset(sort.offset)
            )
            async with session_factory() as session:
                with query_budget("search.listings"):
                    return list((await session.execute(stmt)).scalars().all())

        async with rotation.rotation(visitor_id) as handle:
            promoted, rows = await asyncio.gather(
                resolve_for_filter(session_factory, search_filter, handle.exclude_ids, resolution, now),
                load_page(),
            )
            handle.record(promoted.id if promoted is not None else None)
    except SQLAlchemyError as e:
        logger.error("search: storage failure | error=%s", e, exc_info=True)
        raise Unavailable("Search is temporarily unavailable", cause=e) from e

    logger.info(
        "search: done | rows=%d promoted_id=%s page=%d limit=%d personalized_candidate=%s",
        len(rows),
        promoted.id if promoted is not None else None,
        sort.page,
        sort.limit,
        bool(visitor_id),
    )
    return SearchResponse(
        items=merge_promoted(rows, promoted, now=now),
        promoted_id=str(promoted.id) if promoted is not None else None,
        page=sort.page,
        limit=sort.limit,
    )


async def count_listings(session_factory: SessionFactory, filter_raw: Any) -> int:
    search_filter = _require_filter(filter_raw)
    try:
        resolution = await _resolve_make_model(session_factory, search_filter)
        predicate = build_predicate(search_filter, resolution)
        async with session_factory() as session:
            with query_budget("search.count"):
                result = await session.execute(select(func.count()).select_from(Listing).where(predicate.where()))
                return int(result.scalar_one())
    except SQLAlchemyError as e:
        logger.error("count: storage failure | error=%s", e, exc_info=True)
        raise Unavailable("Search is temporarily unavailable", cause=e) from e


async def related_listings(
    session_factory: SessionFactory,
    reference_id: Any = None,
    filter_raw: Any = None,
    exclude_ids: Any = (),
    category: str | None = None,
    now: int | None = None,
) -> list[ListingItem]:
    """Up to four listings like a reference listing (by id) or like a filter's make/model."""
    excluded = parse_id_list(exclude_ids)
    if now is None:
        now = int(time.time())

    if reference_id is not None:
        ids = parse_id_list(str(reference_id))
        if len(ids) != 1:
            raise ValidationError("Invalid listing id")
        return await _related_by_listing(session_factory, ids[0], excluded, now)
    return await _related_by_filter(session_factory, _require_filter(filter_raw), category, excluded, now)


def _related_order() -> list:
    return [Listing.renewed_time.desc(), Listing.id.desc()]


async def _related_by_listing(
    session_factory: SessionFactory, reference_id: int, excluded: list[int], now: int
) -> list[ListingItem]:
    try:
        async with session_factory() as session:
            with query_budget("related.reference"):
                reference = await session.get(Listing, reference_id)
        if reference is None:
            raise NotFound(f"Listing {reference_id} not found")

        async def load_rows() -> list[Listing]:
            if not reference.make or not reference.model:
                return []
            stmt = (
                select(Listing)
                .where(
                    *base_clauses(reference.category),
                    Listing.make == reference.make,
                    Listing.model == reference.model,
                    Listing.id != reference.id,
                    *([Listing.id.not_in(excluded)] if excluded else []),
                )
                .order_by(*_related_order())
                .limit(RELATED_LIMIT)
            )
            async with session_factory() as session:
                with query_budget("related.listings"):
                    return list((await session.execute(stmt)).scalars().all())

        promoted, rows = await asyncio.gather(
            resolve_for_listing(session_factory, reference, excluded, now),
            load_rows(),
        )
    except SQLAlchemyError as e:
        logger.error("related: storage failure | reference_id=%s error=%s", reference_id, e, exc_info=True)
        raise Unavailable("Related listings are temporarily unavailable", cause=e) from e
    return merge_promoted(rows, promoted, limit=RELATED_LIMIT, now=now)


async def _related_by_filter(
    session_factory: SessionFactory,
    search_filter: SearchFilter,
    category: str | None,
    excluded: list[int],
    now: int,
) -> list[ListingItem]:
    terms = search_filter.term_map()
    make = to_str(terms.get("make1"))
    model = strip_all_models_suffix(to_str(terms.get("model1")))
    if category:
        search_filter = search_filter.model_copy(update={"type": category})

    clauses = base_clauses(search_filter.type)
    if make:
        clauses.append(Listing.make == make)
    if model:
        clauses.append(Listing.model == model)
    if excluded:
        clauses.append(Listing.id.not_in(excluded))

    async def load_rows() -> list[Listing]:
        stmt = select(Listing).where(*clauses).order_by(*_related_order()).limit(RELATED_LIMIT)
        async with session_factory() as session:
            with query_budget("related.listings"):
                return list((await session.execute(stmt)).scalars().all())

    try:
        promoted, rows = await asyncio.gather(
            resolve_for_filter(session_factory, search_filter, excluded, None, now),
            load_rows(),
        )
    except SQLAlchemyError as e:
        logger.error("related: storage failure | error=%s", e, exc_info=True)
        raise Unavailable("Related listings are temporarily unavailable", cause=e) from e
    return merge_promoted(rows, promoted, limit=RELATED_LIMIT, now=now)


async def most_wanted(
    session_factory: SessionFactory,
    exclude_ids: Any = None,
    excluded_accounts: Any = None,
    now: int | None = None,
) -> list[ListingItem]:
    """Listings in an active most-wanted window, newest window end first."""
    if now is None:
        now = int(time.time())
    excluded = parse_id_list(exclude_ids)
    accounts = _csv(excluded_accounts)

    clauses = [
        Listing.sold == False,  # noqa: E712
        Listing.deleted == "0",
        Listing.most_wanted_to.is_not(None),
        Listing.most_wanted_to > now,
    ]
    if excluded:
        clauses.append(Listing.id.not_in(excluded))
    if accounts:
        clauses.append(Listing.account_name.not_in(accounts))
    stmt = (
        select(Listing)
        .where(*clauses)
        .order_by(Listing.most_wanted_to.desc(), Listing.id.desc())
        .limit(MOST_WANTED_LIMIT)
    )
    try:
        async with session_factory() as session:
            with query_budget("most_wanted.listings"):
                rows = (await session.execute(stmt)).scalars().all()
    except SQLAlchemyError as e:
        logger.error("most_wanted: storage failure | error=%s", e, exc_info=True)
        raise Unavailable("Most wanted listings are temporarily unavailable", cause=e) from e
    return [listing_to_item(r, now=now) for r in rows]


def _csv(raw: Any) -> list[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, (list, tuple)):
        return []
    return list(dict.fromkeys(str(v).strip() for v in raw if str(v).strip()))


async def _load_listing(session_factory: SessionFactory, listing_id: Any) -> Listing:
    ids = parse_id_list(str(listing_id))
    if len(ids) != 1:
        raise ValidationError("Invalid listing id")
    try:
        async with session_factory() as session:
            with query_budget("listing.detail"):
                listing = await session.get(Listing, ids[0])
    except SQLAlchemyError as e:
        logger.error("listing: storage failure | listing_id=%s error=%s", listing_id, e, exc_info=True)
        raise Unavailable("Listing is temporarily unavailable", cause=e) from e
    if listing is None:
        raise NotFound(f"Listing {ids[0]} not found")
    return listing


async def get_listing(session_factory: SessionFactory, listing_id: Any) -> ListingItem:
    return listing_to_item(await _load_listing(session_factory, listing_id))


async def get_caption(session_factory: SessionFactory, listing_id: Any) -> CaptionResponse:
    listing = await _load_listing(session_factory, listing_id)
    return CaptionResponse(cleaned_caption=normalize_caption(listing.cleaned_caption))


def _registration_from(raw: Any) -> int | None:
    value = raw.from_ if isinstance(raw, RangeValue) else raw
    number = to_number(value)
    return int(number) if number is not None else None


async def price_calculate(
    session_factory: SessionFactory, filter_raw: Any, now: int | None = None
) -> list[PriceSample]:
    """Prices of comparable listings from the last year.

    Needs make1, model1, registration (its `from` when a range) and fuelType; any of them
    missing gives an empty list. Matches registration within two years either side, customs
    paid or unknown, and a positive price. transmission and bodyType narrow the match when set.
    """
    search_filter = _require_filter(filter_raw)
    terms = search_filter.term_map()
    make = to_str(terms.get("make1"))
    model = to_str(terms.get("model1"))
    registration = _registration_from(terms.get("registration"))
    fuel_type = to_str(terms.get("fuelType"))
    if not make or not model or registration is None or not fuel_type:
        return []
    if now is None:
        now = int(time.time())

    try:
        resolution = await _resolve_make_model(session_factory, search_filter)
        clauses = [
            Listing.created_time > now - PRICE_SAMPLE_WINDOW_DAYS * 86400,
            Listing.price > 0,
            Listing.make == resolution.make,
            or_(Listing.customs_paid == True, Listing.customs_paid.is_(None)),  # noqa: E712
            Listing.registration >= registration - PRICE_SAMPLE_REGISTRATION_BAND,
            Listing.registration <= registration + PRICE_SAMPLE_REGISTRATION_BAND,
            Listing.fuel_type == fuel_type,
            model_clause(model, resolution),
        ]
        transmission = to_str(terms.get("transmission"))
        if transmission:
            clauses.append(Listing.transmission == transmission)
        body_type = to_str(terms.get("bodyType"))
        if body_type:
            clauses.append(Listing.body_type == body_type)

        stmt = (
            select(Listing.id, Listing.price, Listing.make, Listing.model, Listing.variant, Listing.registration)
            .where(*clauses)
            .order_by(Listing.id.desc())
            .limit(PRICE_SAMPLE_LIMIT)
        )
        async with session_factory() as session:
            with query_budget("price.samples"):
                rows = (await session.execute(stmt)).all()
    except SQLAlchemyError as e:
        logger.error("price: storage failure | error=%s", e, exc_info=True)
        raise Unavailable("Price calculation is temporarily unavailable", cause=e) from e

    logger.info("price: samples loaded | make=%s model=%s rows=%d", resolution.make, resolution.model, len(rows))
    return [
        PriceSample(
            id=str(r.id),
            price=r.price,
            make=r.make,
            model=r.model,
            variant=r.variant,
            registration=r.registration,
        )
        for r in rows
    ]
