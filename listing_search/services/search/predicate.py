"""Filter -> parameterized WHERE predicate.

Every user-supplied value reaches the database as a bound parameter: clauses are SQLAlchemy
expressions, never strings assembled from input. `Predicate.render()` compiles the clause list
to positional SQL plus the ordered bound values for logging and inspection.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import String, and_, bindparam, cast, or_
from sqlalchemy.dialects import sqlite
from sqlalchemy.engine import Dialect
from sqlalchemy.sql.elements import ColumnElement

from listing_search.core import (
    DEFAULT_CATEGORY,
    HOUSE_VENDOR_ID,
    MAX_GENERAL_SEARCH_LENGTH,
    MAX_SEARCH_TOKENS,
    RETRO_AGE_YEARS,
)
from listing_search.db.models import Listing
from listing_search.schemas.search import RangeValue, SearchFilter
from .tokens import normalize_general_search

logger = logging.getLogger(__name__)

ALL_MODELS_SUFFIX = " (all)"

RANGE_TERMS = {
    "registration": Listing.registration,
    "price": Listing.price,
    "mileage": Listing.mileage,
}

MULTI_VALUE_TERMS = {
    "transmission": Listing.transmission,
    "fuelType": Listing.fuel_type,
    "bodyType": Listing.body_type,
    "emissionGroup": Listing.emission_group,
}

BARGAIN_KEYWORDS = frozenset({"okazion", "oferte"})
# (price - min_price) / (max_price - price) below this is a bargain
BARGAIN_RATIO = 0.25


@dataclass(frozen=True)
class ModelResolution:
    """Catalogue-corrected make/model for the first make/model pair of a filter."""
    make: str
    model: str
    is_variant: bool = False


@dataclass
class Predicate:
    clauses: list[ColumnElement] = field(default_factory=list)

    def add(self, clause: ColumnElement) -> None:
        self.clauses.append(clause)

    def where(self) -> ColumnElement:
        return and_(*self.clauses)

    def render(self, dialect: Dialect | None = None) -> tuple[str, list[Any]]:
        """Compile to (sql_text, bound_values) with positional placeholders."""
        compiled = self.where().compile(dialect=dialect or sqlite.dialect())
        params = compiled.params
        return str(compiled), [params[name] for name in compiled.positiontup]


# -----------------------------------------------------------------------------
# Value coercion
# -----------------------------------------------------------------------------
def to_str(value: Any) -> str:
    """Strings are trimmed, numbers stringified, anything else is empty."""
    if isinstance(value, bool):
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    return ""


def to_number(value: Any) -> int | float | None:
    text = to_str(value)
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if number != number or number in (float("inf"), float("-inf")):
        return None
    return int(number) if number.is_integer() else number


def parse_csv_values(raw: str) -> list[str]:
    return [v.strip() for v in (raw or "").split(",") if v.strip()]


def strip_all_models_suffix(model: str) -> str:
    return model.replace(ALL_MODELS_SUFFIX, "")


def _in_clause(column, values: list[str]) -> ColumnElement:
    # One placeholder per value so the rendered statement stays positional
    return column.in_([bindparam(None, v, type_=column.type) for v in values])


# -----------------------------------------------------------------------------
# Term clauses
# -----------------------------------------------------------------------------
def _range_clauses(column, raw: Any) -> list[ColumnElement]:
    if not isinstance(raw, RangeValue):
        return []
    clauses = []
    low = to_number(raw.from_)
    high = to_number(raw.to)
    if low is not None:
        clauses.append(column > low)
    if high is not None:
        clauses.append(column < high)
    return clauses


def normalize_multi_values(raw: Any) -> list[str]:
    """Comma-split values; hyphens become spaces except in SUV/gas labels ("SUV/Off-Road")."""
    values = []
    for value in parse_csv_values(to_str(raw)):
        lowered = value.lower()
        if "suv" not in lowered and "gas" not in lowered:
            value = value.replace("-", " ")
        values.append(value)
    return values


def _customs_paid_clause(raw: Any) -> ColumnElement | None:
    value = to_str(raw)
    if not value:
        return None
    if value == "1" or value.lower() == "true":
        # Unknown customs status counts as paid for this filter
        return or_(Listing.customs_paid == True, Listing.customs_paid.is_(None))  # noqa: E712
    if value == "0" or value.lower() == "false":
        return Listing.customs_paid == False  # noqa: E712
    return cast(Listing.customs_paid, String(5)) == value


def model_clause(model: str, resolution: ModelResolution | None) -> ColumnElement:
    if resolution and resolution.is_variant and ALL_MODELS_SUFFIX not in model:
        variant = strip_all_models_suffix(resolution.model)
        return or_(
            Listing.variant.like(f"% {variant} %"),
            Listing.variant.like(f"{variant}%"),
            Listing.variant.like(f"%{variant}"),
        )
    target = resolution.model if resolution else model
    return Listing.model == strip_all_models_suffix(target)


def _caption_matches(options: list[str]) -> ColumnElement:
    return or_(*[Listing.cleaned_caption.like(f"%{option}%") for option in options])


def _house_account_excluded() -> ColumnElement:
    return or_(Listing.vendor_id != HOUSE_VENDOR_ID, Listing.vendor_id.is_(None))


def _keyword_clauses(keyword: str, is_vendor_search: bool, current_year: int) -> list[ColumnElement]:
    """Legacy keyword shortcuts; branches are mutually exclusive in this order."""
    if not keyword:
        return [] if is_vendor_search else [_house_account_excluded()]

    clauses: list[ColumnElement] = []
    if keyword == "encar":
        clauses.append(Listing.vendor_id == HOUSE_VENDOR_ID)
    else:
        clauses.append(_house_account_excluded())

    options = parse_csv_values(keyword)
    if any(option in BARGAIN_KEYWORDS for option in options):
        clauses.extend([
            Listing.price > 1,
            Listing.min_price > 1,
            Listing.max_price > 1,
            (Listing.price - Listing.min_price) * 1.0 / (Listing.max_price - Listing.price) < BARGAIN_RATIO,
        ])
        remaining = [option for option in options if option not in BARGAIN_KEYWORDS]
        if remaining:
            clauses.append(_caption_matches(remaining))
        return clauses

    if keyword == "retro":
        clauses.append(or_(
            Listing.cleaned_caption.like("%retro%"),
            Listing.registration < current_year - RETRO_AGE_YEARS,
        ))
        return clauses

    if keyword == "korea":
        clauses.append(or_(
            Listing.cleaned_caption.like("%korea%"),
            Listing.account_name.like("%korea%"),
        ))
        return clauses

    if keyword == "elektrike" or keyword == "encar":
        return clauses

    if options:
        clauses.append(_caption_matches(options))
    return clauses


def general_search_tokens(general_search: str | None) -> list[str]:
    """Tokens for the free-text clause; empty when absent or over the length cap."""
    normalized_input = (general_search or "").replace(",", " ").strip()
    if not normalized_input or len(normalized_input) > MAX_GENERAL_SEARCH_LENGTH:
        return []
    return normalize_general_search(normalized_input)[:MAX_SEARCH_TOKENS]


def _general_search_clauses(general_search: str | None) -> list[ColumnElement]:
    clauses = []
    for token in general_search_tokens(general_search):
        pattern = f"%{token}%"
        clauses.append(or_(
            Listing.cleaned_caption.like(pattern),
            Listing.make.like(pattern),
            Listing.model.like(pattern),
            Listing.variant.like(pattern),
            cast(Listing.registration, String).like(pattern),
            Listing.fuel_type.like(pattern),
        ))
    return clauses


# -----------------------------------------------------------------------------
# Builder
# -----------------------------------------------------------------------------
def base_clauses(category: str | None) -> list[ColumnElement]:
    """Clauses every ordinary search carries: live, unsold, one category."""
    return [
        Listing.sold == False,  # noqa: E712
        Listing.deleted == "0",
        Listing.category == (to_str(category) or DEFAULT_CATEGORY),
    ]


def build_predicate(
    search_filter: SearchFilter,
    model_resolution: ModelResolution | None = None,
    current_year: int | None = None,
) -> Predicate:
    """Translate a parsed filter into a clause list; all present terms are ANDed."""
    if current_year is None:
        current_year = datetime.now(timezone.utc).year
    terms = search_filter.term_map()
    predicate = Predicate(base_clauses(search_filter.type))

    make = to_str(terms.get("make1"))
    if make:
        predicate.add(Listing.make == (model_resolution.make if model_resolution else make))

    model = to_str(terms.get("model1"))
    if model:
        predicate.add(model_clause(model, model_resolution))

    for key, column in RANGE_TERMS.items():
        for clause in _range_clauses(column, terms.get(key)):
            predicate.add(clause)

    for key, column in MULTI_VALUE_TERMS.items():
        values = normalize_multi_values(terms.get(key))
        if values:
            predicate.add(_in_clause(column, values))

    customs_clause = _customs_paid_clause(terms.get("customsPaid"))
    if customs_clause is not None:
        predicate.add(customs_clause)

    vendor_account_name = to_str(terms.get("vendorAccountName"))
    if vendor_account_name:
        predicate.add(Listing.account_name == vendor_account_name)

    keyword = to_str(search_filter.keyword).lower()
    for clause in _keyword_clauses(keyword, bool(vendor_account_name), current_year):
        predicate.add(clause)

    for clause in _general_search_clauses(search_filter.general_search):
        predicate.add(clause)

    return predicate
