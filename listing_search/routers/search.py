from typing import Annotated

from fastapi import APIRouter, Depends, Form, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_search.core import get_settings, limiter
from listing_search.dependencies import get_session_factory
from listing_search.schemas import CaptionResponse, CountResponse, ListingItem, PriceSample, SearchResponse
from listing_search.services.search import search_service

router = APIRouter(prefix="/car-details", tags=["search"])

SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
FilterForm = Annotated[str | None, Form(alias="filter")]

SEARCH_RATE_LIMIT = get_settings().search_rate_limit


@router.post("/search", response_model=SearchResponse)
@limiter.limit(SEARCH_RATE_LIMIT)
async def search(
    request: Request,
    session_factory: SessionFactory,
    filter_raw: FilterForm = None,
    x_visitor_id: Annotated[str | None, Header()] = None,
):
    return await search_service.search(session_factory, filter_raw, x_visitor_id)


@router.post("/result-count", response_model=CountResponse)
@limiter.limit(SEARCH_RATE_LIMIT)
async def result_count(
    request: Request,
    session_factory: SessionFactory,
    filter_raw: FilterForm = None,
):
    return CountResponse(count=await search_service.count(session_factory, filter_raw))


@router.post("/price-calculate", response_model=list[PriceSample])
@limiter.limit(SEARCH_RATE_LIMIT)
async def price_calculate(
    request: Request,
    session_factory: SessionFactory,
    filter_raw: FilterForm = None,
):
    return await search_service.price_calculate(session_factory, filter_raw)


@router.get("/most-wanted", response_model=list[ListingItem])
async def most_wanted(
    session_factory: SessionFactory,
    exclude_ids: Annotated[str | None, Query(alias="excludeIds")] = None,
    excluded_accounts: Annotated[str | None, Query(alias="excludedAccounts")] = None,
):
    return await search_service.most_wanted(session_factory, exclude_ids, excluded_accounts)


@router.get("/post/caption/{listing_id}", response_model=CaptionResponse)
async def listing_caption(listing_id: str, session_factory: SessionFactory):
    return await search_service.caption(session_factory, listing_id)


@router.get("/post/{listing_id}", response_model=ListingItem)
async def listing_detail(listing_id: str, session_factory: SessionFactory):
    return await search_service.listing(session_factory, listing_id)


@router.get("/related-post/{listing_id}", response_model=list[ListingItem])
async def related_by_id(
    listing_id: str,
    session_factory: SessionFactory,
    excluded_ids: Annotated[str | None, Query(alias="excludedIds")] = None,
):
    return await search_service.related_by_id(session_factory, listing_id, excluded_ids)


@router.post("/related-post-filter", response_model=list[ListingItem])
@limiter.limit(SEARCH_RATE_LIMIT)
async def related_by_filter(
    request: Request,
    session_factory: SessionFactory,
    filter_raw: FilterForm = None,
    category: Annotated[str | None, Query(alias="type")] = None,
    excluded_ids: Annotated[str | None, Query(alias="excludedIds")] = None,
):
    return await search_service.related_by_filter(session_factory, filter_raw, category, excluded_ids)
