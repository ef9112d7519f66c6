from dataclasses import dataclass

from listing_search.core import DEFAULT_PAGE_SIZE
from listing_search.db.models import Listing
from listing_search.schemas.search import SearchFilter

SORT_COLUMNS = {
    "renewedTime": Listing.renewed_time,
    "price": Listing.price,
    "mileage": Listing.mileage,
    "registration": Listing.registration,
}
DEFAULT_SORT_KEY = "renewedTime"


def _positive_int(value) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
    return number if number > 0 else None


@dataclass(frozen=True)
class SortSpec:
    key: str = DEFAULT_SORT_KEY
    descending: bool = True
    limit: int = DEFAULT_PAGE_SIZE
    page: int = 0

    @property
    def offset(self) -> int:
        return self.page * self.limit

    @property
    def is_default(self) -> bool:
        """Personalized ordering only replaces the default newest-first order."""
        return self.key == DEFAULT_SORT_KEY and self.descending

    def order_by(self) -> list:
        column = SORT_COLUMNS[self.key]
        primary = column.desc() if self.descending else column.asc()
        return [primary, Listing.id.desc()]


def resolve_sort(search_filter: SearchFilter) -> SortSpec:
    """First sort term with an allow-listed key wins; anything else falls back to defaults."""
    key, descending = DEFAULT_SORT_KEY, True
    term = search_filter.sort_terms[0] if search_filter.sort_terms else None
    if term and term.key in SORT_COLUMNS:
        key = term.key
        descending = (term.order or "").upper() != "ASC"
    return SortSpec(
        key=key,
        descending=descending,
        limit=_positive_int(search_filter.max_results) or DEFAULT_PAGE_SIZE,
        page=_positive_int(search_filter.page) or 0,
    )
