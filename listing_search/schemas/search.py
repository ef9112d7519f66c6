from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

Scalar = Union[str, int, float, bool]


def _list(d: dict, key: str) -> list:
    v = d.get(key)
    if v is None:
        return []
    return list(v) if isinstance(v, (list, tuple)) else []


def _scalar_or_none(v: Any) -> Optional[Scalar]:
    return v if isinstance(v, (str, int, float, bool)) else None


# ---------------------------------------------------------------------------
# Client filter shape (decoded from the legacy `filter` JSON string)
# ---------------------------------------------------------------------------

class RangeValue(BaseModel):
    """`{from, to}` payload of a range term; either side may be missing."""
    model_config = ConfigDict(populate_by_name=True)

    from_: Optional[Scalar] = Field(default=None, alias="from")
    to: Optional[Scalar] = None


class FilterTerm(BaseModel):
    key: str
    value: Union[RangeValue, Scalar, None] = None

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["FilterTerm"]:
        """Build a term from an untrusted `{key, value}` object; None when the key is unusable."""
        if not isinstance(raw, dict) or not isinstance(raw.get("key"), str):
            return None
        value = raw.get("value")
        if isinstance(value, dict):
            return cls(
                key=raw["key"],
                value=RangeValue(
                    from_=_scalar_or_none(value.get("from")),
                    to=_scalar_or_none(value.get("to")),
                ),
            )
        return cls(key=raw["key"], value=_scalar_or_none(value))


class SortTerm(BaseModel):
    key: Optional[str] = None
    order: Optional[str] = None


class SearchFilter(BaseModel):
    """One search request's filter. Unknown term keys are kept but never acted on."""
    model_config = ConfigDict(populate_by_name=True)

    type: Optional[str] = None
    keyword: Optional[str] = None
    general_search: Optional[str] = Field(default=None, alias="generalSearch")
    search_terms: list[FilterTerm] = Field(default_factory=list, alias="searchTerms")
    sort_terms: list[SortTerm] = Field(default_factory=list, alias="sortTerms")
    page: Optional[Scalar] = None
    max_results: Optional[Scalar] = Field(default=None, alias="maxResults")
    visitor_id: Optional[str] = Field(default=None, alias="visitorId")
    personalization_disabled: Optional[Scalar] = Field(default=None, alias="personalizationDisabled")

    @classmethod
    def from_raw_dict(cls, data: dict[str, Any]) -> "SearchFilter":
        """Normalize a decoded filter object, dropping fields of the wrong shape."""
        terms = [t for t in (FilterTerm.from_raw(raw) for raw in _list(data, "searchTerms")) if t]
        sort_terms = [
            SortTerm(
                key=s.get("key") if isinstance(s.get("key"), str) else None,
                order=s.get("order") if isinstance(s.get("order"), str) else None,
            )
            for s in _list(data, "sortTerms")
            if isinstance(s, dict)
        ]
        return cls(
            type=data.get("type") if isinstance(data.get("type"), str) else None,
            keyword=data.get("keyword") if isinstance(data.get("keyword"), str) else None,
            general_search=data.get("generalSearch") if isinstance(data.get("generalSearch"), str) else None,
            search_terms=terms,
            sort_terms=sort_terms,
            page=_scalar_or_none(data.get("page")),
            max_results=_scalar_or_none(data.get("maxResults")),
            visitor_id=data.get("visitorId") if isinstance(data.get("visitorId"), str) else None,
            personalization_disabled=_scalar_or_none(data.get("personalizationDisabled")),
        )

    def term_map(self) -> dict[str, Any]:
        """Term values by key; a repeated key keeps its last value."""
        return {term.key: term.value for term in self.search_terms}


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class ListingItem(BaseModel):
    id: str  # 64-bit ids always travel as decimal strings
    type: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None
    variant: Optional[str] = None
    registration: Optional[int] = None
    price: Optional[int] = None
    mileage: Optional[int] = None
    engine_size: Optional[float] = None
    transmission: Optional[str] = None
    fuel_type: Optional[str] = None
    body_type: Optional[str] = None
    emission_group: Optional[str] = None
    drivetrain: Optional[str] = None
    seats: Optional[int] = None
    number_of_doors: Optional[int] = None
    customs_paid: Optional[bool] = None
    can_exchange: bool = False
    caption: Optional[str] = None  # decoded from base64
    cleaned_caption: Optional[str] = None
    vendor_id: Optional[str] = None
    account_name: Optional[str] = None
    profile_picture: Optional[str] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    renewed_time: Optional[int] = None
    promoted: bool = False
    highlighted: bool = False


class SearchResponse(BaseModel):
    items: list[ListingItem]
    promoted_id: Optional[str] = None
    page: int = 0
    limit: int = 24


class CountResponse(BaseModel):
    count: int


class CaptionResponse(BaseModel):
    cleaned_caption: str


class PriceSample(BaseModel):
    """One comparable listing used to estimate a market price."""
    id: str
    price: int
    make: Optional[str] = None
    model: Optional[str] = None
    variant: Optional[str] = None
    registration: Optional[int] = None
