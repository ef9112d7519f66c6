import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_search.core import PERSONALIZATION_TERM_LIMIT, get_settings, query_budget
from listing_search.db.models import VisitorInterestTerm
from listing_search.db.session import async_session


class PersonalizationServiceError(Exception):
    """Raised when the interest-term store is unavailable or returns an unexpected payload."""


@dataclass(frozen=True)
class InterestTerm:
    key: str
    value: str
    score: float


def hash_visitor_id(visitor_id: str) -> str:
    return hashlib.sha256(visitor_id.encode("utf-8")).hexdigest()


class PersonalizationProvider(ABC):
    @abstractmethod
    async def top_terms(self, visitor_id: str, limit: int = PERSONALIZATION_TERM_LIMIT) -> list[InterestTerm]:
        """Interest terms ordered by score descending; empty when the visitor is unknown."""


class SqlPersonalizationProvider(PersonalizationProvider):
    """Reads decayed scores from the local `visitor_interest_terms` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def top_terms(self, visitor_id: str, limit: int = PERSONALIZATION_TERM_LIMIT) -> list[InterestTerm]:
        stmt = (
            select(VisitorInterestTerm)
            .where(
                VisitorInterestTerm.visitor_hash == hash_visitor_id(visitor_id),
                VisitorInterestTerm.score > 0,
            )
            .order_by(VisitorInterestTerm.score.desc(), VisitorInterestTerm.term_key, VisitorInterestTerm.term_value)
            .limit(limit)
        )
        async with self.session_factory() as session:
            with query_budget("personalization.top_terms"):
                rows = (await session.execute(stmt)).scalars().all()
        return [InterestTerm(key=r.term_key, value=r.term_value, score=float(r.score)) for r in rows]


class HttpPersonalizationProvider(PersonalizationProvider):
    """Remote store exposing GET {base}/visitors/{hash}/terms?limit=N -> {"terms": [...]}."""

    def __init__(self, base_url: str, api_key: str | None = None, timeout: float = 2.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    async def top_terms(self, visitor_id: str, limit: int = PERSONALIZATION_TERM_LIMIT) -> list[InterestTerm]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.get(
                    f"{self.base_url}/visitors/{hash_visitor_id(visitor_id)}/terms",
                    params={"limit": limit},
                    headers=headers,
                )
                if r.status_code == 404:
                    return []
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as e:
            raise PersonalizationServiceError(
                f"Personalization API returned {e.response.status_code}."
            ) from e
        except httpx.RequestError as e:
            raise PersonalizationServiceError(
                "Personalization service unavailable (timeout or connection error)."
            ) from e
        except ValueError as e:
            raise PersonalizationServiceError("Personalization API returned invalid JSON.") from e

        try:
            terms = [
                InterestTerm(key=str(t["termKey"]), value=str(t["termValue"]), score=float(t["score"]))
                for t in data.get("terms", [])
            ]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise PersonalizationServiceError(
                "Personalization API returned unexpected response format."
            ) from e
        terms.sort(key=lambda t: t.score, reverse=True)
        return terms[:limit]


def get_personalization_provider(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> PersonalizationProvider:
    s = get_settings()
    if s.personalization_api_base_url:
        return HttpPersonalizationProvider(
            base_url=s.personalization_api_base_url,
            api_key=s.personalization_api_key,
            timeout=s.personalization_timeout_seconds,
        )
    return SqlPersonalizationProvider(session_factory or async_session)
