import base64
import binascii
import re
import time

from listing_search.db.models import Listing
from listing_search.schemas.search import ListingItem

_CAPTION_REPLACEMENTS = (
    (" ,", ","),
    (" !", "!"),
    (" - ", "-"),
    (" : ", ":"),
    (": ", ":"),
    (" :", ":"),
)
_WHITESPACE_RE = re.compile(r"\s+")


def decode_caption(raw: str | None) -> str | None:
    """Captions are stored base64-armored; anything that does not decode is returned as-is."""
    if not raw:
        return raw
    try:
        return base64.b64decode(raw, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return raw


def normalize_caption(caption: str | None) -> str:
    text = caption or ""
    for old, new in _CAPTION_REPLACEMENTS:
        text = text.replace(old, new)
    return _WHITESPACE_RE.sub(" ", text).strip()


def _int_or_none(value) -> int | None:
    return int(value) if value is not None else None


def listing_to_item(listing: Listing, promoted_id: int | None = None, now: int | None = None) -> ListingItem:
    if now is None:
        now = int(time.time())
    return ListingItem(
        id=str(listing.id),
        type=listing.category,
        make=listing.make,
        model=listing.model,
        variant=listing.variant,
        registration=listing.registration,
        price=listing.price,
        mileage=listing.mileage,
        engine_size=float(listing.engine_size) if listing.engine_size is not None else None,
        transmission=listing.transmission,
        fuel_type=listing.fuel_type,
        body_type=listing.body_type,
        emission_group=listing.emission_group,
        drivetrain=listing.drivetrain,
        seats=listing.seats,
        number_of_doors=listing.number_of_doors,
        customs_paid=listing.customs_paid,
        can_exchange=bool(listing.can_exchange),
        caption=decode_caption(listing.caption),
        cleaned_caption=listing.cleaned_caption,
        vendor_id=str(listing.vendor_id) if listing.vendor_id is not None else None,
        account_name=listing.account_name,
        profile_picture=listing.profile_picture,
        min_price=listing.min_price,
        max_price=listing.max_price,
        renewed_time=_int_or_none(listing.renewed_time),
        promoted=promoted_id is not None and listing.id == promoted_id,
        highlighted=listing.highlighted_to is not None and listing.highlighted_to > now,
    )


def merge_promoted(
    rows: list[Listing],
    promoted: Listing | None,
    limit: int | None = None,
    now: int | None = None,
) -> list[ListingItem]:
    """Prepend the promoted row (removing its duplicate) and annotate every row."""
    if now is None:
        now = int(time.time())
    merged = list(rows)
    promoted_id = None
    if promoted is not None:
        promoted_id = promoted.id
        merged = [promoted] + [r for r in merged if r.id != promoted_id]
    if limit is not None:
        merged = merged[:limit]
    return [listing_to_item(r, promoted_id, now) for r in merged]
