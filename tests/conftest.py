import asyncio
import time

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from listing_search.core import limiter
from listing_search.db import Base
from listing_search.db.models import Listing

NOW = int(time.time())
HOUR = 3600
DAY = 24 * HOUR


@pytest.fixture
def session_factory(tmp_path):
    """Async session factory over a throwaway SQLite file with the full schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'search.db'}", poolclass=NullPool)

    async def create_schema():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_schema())
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    asyncio.run(engine.dispose())


@pytest.fixture(autouse=True)
def no_rate_limit():
    limiter.enabled = False
    yield
    limiter.enabled = True


def make_listing(listing_id: int, **fields) -> Listing:
    values = {
        "category": "car",
        "make": "BMW",
        "model": "X5",
        "price": 20000,
        "registration": 2018,
        "fuel_type": "Diesel",
        "body_type": "SUV/Off-Road",
        "vendor_id": 500,
        "account_name": "dealer",
        "sold": False,
        "deleted": "0",
        "renewed_time": NOW - listing_id,
        "created_time": NOW - DAY,
    }
    values.update(fields)
    return Listing(id=listing_id, **values)


def seed(session_factory, *rows) -> None:
    async def insert():
        async with session_factory() as session:
            session.add_all(rows)
            await session.commit()

    asyncio.run(insert())
