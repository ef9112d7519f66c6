"""Search service facade.

Business logic is split across:
- search pipeline: listing_search.services.search.search_logic
- filter -> predicate: listing_search.services.search.predicate
- promoted slot: listing_search.services.search.promotion / rotation
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_search.schemas import CaptionResponse, ListingItem, PriceSample, SearchResponse
from .search_logic import (
    count_listings,
    get_caption,
    get_listing,
    most_wanted,
    price_calculate,
    related_listings,
    run_search,
)


class SearchService:
    """Facade for search operations."""

    @staticmethod
    async def search(
        session_factory: async_sessionmaker[AsyncSession],
        filter_raw: Any,
        visitor_id: str | None = None,
    ) -> SearchResponse:
        return await run_search(session_factory, filter_raw, visitor_id)

    @staticmethod
    async def count(session_factory: async_sessionmaker[AsyncSession], filter_raw: Any) -> int:
        return await count_listings(session_factory, filter_raw)

    @staticmethod
    async def related_by_id(
        session_factory: async_sessionmaker[AsyncSession],
        listing_id: Any,
        exclude_ids: Any = None,
    ) -> list[ListingItem]:
        return await related_listings(session_factory, reference_id=listing_id, exclude_ids=exclude_ids)

    @staticmethod
    async def related_by_filter(
        session_factory: async_sessionmaker[AsyncSession],
        filter_raw: Any,
        category: str | None = None,
        exclude_ids: Any = None,
    ) -> list[ListingItem]:
        """Related listings for a filter's make/model; `category` overrides the filter's type."""
        return await related_listings(
            session_factory, filter_raw=filter_raw, exclude_ids=exclude_ids, category=category
        )

    @staticmethod
    async def price_calculate(
        session_factory: async_sessionmaker[AsyncSession], filter_raw: Any
    ) -> list[PriceSample]:
        return await price_calculate(session_factory, filter_raw)

    @staticmethod
    async def most_wanted(
        session_factory: async_sessionmaker[AsyncSession],
        exclude_ids: Any = None,
        excluded_accounts: Any = None,
    ) -> list[ListingItem]:
        return await most_wanted(session_factory, exclude_ids, excluded_accounts)

    @staticmethod
    async def listing(session_factory: async_sessionmaker[AsyncSession], listing_id: Any) -> ListingItem:
        return await get_listing(session_factory, listing_id)

    @staticmethod
    async def caption(session_factory: async_sessionmaker[AsyncSession], listing_id: Any) -> CaptionResponse:
        return await get_caption(session_factory, listing_id)


search_service = SearchService()
