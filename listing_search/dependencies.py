from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_search.db.session import async_session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Search fans out into several concurrent queries, so routes get the factory, not one session."""
    return async_session
