"""Catalogue lookups that turn client make/model spellings into stored ones."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from listing_search.db.models import CarMakeModel
from .predicate import ModelResolution, strip_all_models_suffix


def _normalize(value: str | None) -> str:
    return strip_all_models_suffix(value or "").replace(" ", "-").lower()


def similarity(a: str, b: str) -> float:
    """Share of same-position characters, 0-100."""
    longest = max(len(a), len(b))
    if not longest:
        return 100.0
    matches = sum(1 for x, y in zip(a, b) if x == y)
    return matches / longest * 100


async def correct_make(session: AsyncSession, make: str) -> str:
    """Stored spelling of a hyphenated make ("rolls royce" -> "Rolls-Royce"); else hyphens become spaces."""
    rows = await session.execute(
        select(CarMakeModel.make).where(CarMakeModel.make.like("%-%")).distinct()
    )
    wanted = make.replace(" ", "-").lower()
    for db_make in rows.scalars():
        if db_make.replace(" ", "-").lower() == wanted:
            return db_make
    return make.replace("-", " ")


def match_model(candidates: list[tuple[str, bool]], model: str) -> tuple[str, bool] | None:
    """Exact normalized match first, else the most similar prefix match in either direction."""
    wanted = _normalize(model)
    best: tuple[str, bool] | None = None
    best_score = -1.0
    for db_model, is_variant in candidates:
        normalized = _normalize(db_model)
        if normalized == wanted:
            return db_model, bool(is_variant)
        if normalized.startswith(wanted) or wanted.startswith(normalized):
            score = similarity(normalized, wanted)
            if score > best_score:
                best, best_score = (db_model, bool(is_variant)), score
    return best


async def resolve_model(session: AsyncSession, make: str, model: str) -> ModelResolution:
    """Corrected make plus the catalogue model; unknown models pass through with hyphens as spaces."""
    corrected_make = await correct_make(session, make)
    rows = await session.execute(
        select(CarMakeModel.model, CarMakeModel.is_variant)
        .where(CarMakeModel.make == corrected_make)
        .order_by(CarMakeModel.id)
    )
    matched = match_model([(m, v) for m, v in rows.all()], model)
    if matched is None:
        return ModelResolution(make=corrected_make, model=model.replace("-", " "), is_variant=False)
    return ModelResolution(make=corrected_make, model=matched[0], is_variant=matched[1])
