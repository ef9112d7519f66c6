from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from listing_search.core import get_settings


def async_database_url(url: str) -> str:
    """Support both postgres:// and postgresql+asyncpg:// (Render, local)."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://") and "asyncpg" not in url:
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


database_url = async_database_url(get_settings().database_url)

engine = create_async_engine(
    database_url,
    echo=get_settings().sql_echo,
    poolclass=NullPool if "render.com" in database_url else None,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
)
Base = declarative_base()
