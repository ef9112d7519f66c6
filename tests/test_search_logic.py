import asyncio
import base64
import json

import pytest
from conftest import DAY, HOUR, NOW, make_listing, seed
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from listing_search.core import NotFound, Unavailable, ValidationError
from listing_search.db.models import CarMakeModel
from listing_search.services.search.rotation import PromotionRotationCache
from listing_search.services.search.search_logic import (
    count_listings,
    get_caption,
    get_listing,
    most_wanted,
    price_calculate,
    related_listings,
    run_search,
)


def _search(session_factory, payload, visitor_id=None, rotation=None):
    return asyncio.run(run_search(
        session_factory,
        json.dumps(payload),
        visitor_id=visitor_id,
        rotation=rotation or PromotionRotationCache(),
        now=NOW,
    ))


def test_search_without_promotions(session_factory):
    seed(session_factory, make_listing(1), make_listing(2), make_listing(3, sold=True), make_listing(4, deleted="1"))
    response = _search(session_factory, {"type": "car"})
    assert [i.id for i in response.items] == ["1", "2"]
    assert response.promoted_id is None
    assert not any(i.promoted for i in response.items)
    assert (response.page, response.limit) == (0, 24)


def test_promoted_listing_is_pinned_once(session_factory):
    seed(
        session_factory,
        make_listing(1),
        make_listing(2),
        make_listing(3, promotion_to=NOW + HOUR),
    )
    response = _search(session_factory, {"type": "car"})
    assert [i.id for i in response.items] == ["3", "1", "2"]
    assert response.promoted_id == "3"
    assert [i.promoted for i in response.items] == [True, False, False]


def test_house_account_hidden_unless_requested(session_factory):
    seed(session_factory, make_listing(1, vendor_id=1), make_listing(2), make_listing(3, vendor_id=None))
    assert [i.id for i in _search(session_factory, {"type": "car"}).items] == ["2", "3"]
    assert [i.id for i in _search(session_factory, {"type": "car", "keyword": "encar"}).items] == ["1"]


def test_bmw_x5_all_end_to_end(session_factory):
    seed(
        session_factory,
        CarMakeModel(id=1, make="BMW", model="X5 (all)", is_variant=False),
        make_listing(1),
        make_listing(2, model="X3"),
        make_listing(3, make="Audi", model="Q7"),
    )
    payload = {"type": "car", "searchTerms": [{"key": "make1", "value": "BMW"}, {"key": "model1", "value": "X5 (all)"}]}
    assert [i.id for i in _search(session_factory, payload).items] == ["1"]


def test_variant_model_matches_variant_column(session_factory):
    seed(
        session_factory,
        CarMakeModel(id=1, make="Mercedes-Benz", model="C 220", is_variant=True),
        make_listing(1, make="Mercedes-Benz", model="C-Class", variant="C 220 AMG"),
        make_listing(2, make="Mercedes-Benz", model="C-Class", variant="C 180"),
    )
    payload = {"searchTerms": [{"key": "make1", "value": "mercedes benz"}, {"key": "model1", "value": "c-220"}]}
    assert [i.id for i in _search(session_factory, payload).items] == ["1"]


def test_pagination(session_factory):
    seed(session_factory, *[make_listing(i) for i in range(1, 8)])
    response = _search(session_factory, {"page": 1, "maxResults": 3})
    assert [i.id for i in response.items] == ["4", "5", "6"]
    assert (response.page, response.limit) == (1, 3)


def test_bargain_keyword(session_factory):
    seed(
        session_factory,
        make_listing(1, price=10500, min_price=10000, max_price=20000),
        make_listing(2, price=19000, min_price=10000, max_price=20000),
    )
    assert [i.id for i in _search(session_factory, {"keyword": "okazion"}).items] == ["1"]


def test_free_text(session_factory):
    seed(
        session_factory,
        make_listing(1, make="Mercedes-Benz", model="E-Class", cleaned_caption="benz e 220 full"),
        make_listing(2, make="Audi", model="A4", cleaned_caption="audi a4"),
    )
    assert [i.id for i in _search(session_factory, {"generalSearch": "Benc"}).items] == ["1"]


def test_promotion_rotates_for_returning_visitor(session_factory):
    seed(
        session_factory,
        make_listing(1, promotion_to=NOW + 2 * HOUR),
        make_listing(2, promotion_to=NOW + HOUR),
    )
    rotation = PromotionRotationCache(interval_seconds=120)
    first = _search(session_factory, {"type": "car"}, visitor_id="v1", rotation=rotation)
    second = _search(session_factory, {"type": "car"}, visitor_id="v1", rotation=rotation)
    assert first.promoted_id == "1"
    assert second.promoted_id == "2"


def test_invalid_filter_is_rejected(session_factory):
    with pytest.raises(ValidationError):
        asyncio.run(run_search(session_factory, "{broken"))
    with pytest.raises(ValidationError):
        asyncio.run(count_listings(session_factory, None))


def test_storage_failure_is_unavailable(tmp_path):
    # No schema: every listing query fails
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}", poolclass=NullPool)
    with pytest.raises(Unavailable):
        asyncio.run(run_search(async_sessionmaker(engine), json.dumps({"type": "car"}), rotation=PromotionRotationCache()))


def test_count(session_factory):
    seed(session_factory, make_listing(1), make_listing(2, make="Audi"), make_listing(3, sold=True))
    assert asyncio.run(count_listings(session_factory, json.dumps({}))) == 2
    payload = {"searchTerms": [{"key": "make1", "value": "Audi"}]}
    assert asyncio.run(count_listings(session_factory, json.dumps(payload))) == 1


def test_related_by_id_excludes_reference_and_excluded_ids(session_factory):
    seed(session_factory, *[make_listing(i) for i in range(1, 8)], make_listing(8, model="X3"))
    items = asyncio.run(related_listings(session_factory, reference_id="1", exclude_ids="2,3", now=NOW))
    ids = [i.id for i in items]
    assert len(ids) == 4
    assert not {"1", "2", "3", "8"} & set(ids)


def test_related_returned_ids_round_trip_as_exclusions(session_factory):
    seed(session_factory, *[make_listing(i) for i in range(1, 10)])
    first = asyncio.run(related_listings(session_factory, reference_id=1, now=NOW))
    shown = [i.id for i in first]
    second = asyncio.run(related_listings(session_factory, reference_id=1, exclude_ids=",".join(shown), now=NOW))
    assert not set(shown) & {i.id for i in second}


def test_related_includes_promotion_capped_at_four(session_factory):
    seed(
        session_factory,
        *[make_listing(i) for i in range(1, 7)],
        make_listing(9, make="Fiat", model="Panda", promotion_to=NOW + HOUR),
    )
    items = asyncio.run(related_listings(session_factory, reference_id=1, now=NOW))
    assert len(items) == 4
    assert items[0].id == "9" and items[0].promoted


def test_related_missing_reference(session_factory):
    with pytest.raises(NotFound):
        asyncio.run(related_listings(session_factory, reference_id=404, now=NOW))
    with pytest.raises(ValidationError):
        asyncio.run(related_listings(session_factory, reference_id="abc", now=NOW))


def test_related_by_filter(session_factory):
    seed(session_factory, make_listing(1), make_listing(2, make="Audi", model="A4"), make_listing(3))
    payload = {"searchTerms": [{"key": "make1", "value": "BMW"}, {"key": "model1", "value": "X5 (all)"}]}
    items = asyncio.run(related_listings(session_factory, filter_raw=json.dumps(payload), exclude_ids=[3], now=NOW))
    assert [i.id for i in items] == ["1"]


def test_most_wanted(session_factory):
    seed(
        session_factory,
        make_listing(1, most_wanted_to=NOW + HOUR),
        make_listing(2, most_wanted_to=NOW + 2 * HOUR, account_name="blocked"),
        make_listing(3, most_wanted_to=NOW + 3 * HOUR),
        make_listing(4, most_wanted_to=NOW - 1),
        make_listing(5, most_wanted_to=NOW + 4 * HOUR),
    )
    items = asyncio.run(most_wanted(session_factory, exclude_ids="5", excluded_accounts="blocked", now=NOW))
    assert [i.id for i in items] == ["3", "1"]


def test_listing_detail_and_caption(session_factory):
    caption = base64.b64encode("Shitet urgjent".encode("utf-8")).decode("ascii")
    seed(session_factory, make_listing(1, caption=caption, cleaned_caption="Shitet  urgjent , cmimi : 5000"))
    item = asyncio.run(get_listing(session_factory, "1"))
    assert item.id == "1"
    assert item.caption == "Shitet urgjent"
    assert asyncio.run(get_caption(session_factory, 1)).cleaned_caption == "Shitet urgjent, cmimi:5000"
    with pytest.raises(NotFound):
        asyncio.run(get_listing(session_factory, "2"))


def _price_terms(**extra):
    terms = [
        {"key": "make1", "value": "BMW"},
        {"key": "model1", "value": "X5"},
        {"key": "registration", "value": {"from": "2018", "to": ""}},
        {"key": "fuelType", "value": "Diesel"},
    ]
    terms += [{"key": k, "value": v} for k, v in extra.items()]
    return json.dumps({"type": "car", "searchTerms": terms})


def test_price_calculate_comparable_listings(session_factory):
    seed(
        session_factory,
        CarMakeModel(id=1, make="BMW", model="X5 (all)", is_variant=False),
        make_listing(1),
        make_listing(2, registration=2021),
        make_listing(3, customs_paid=False),
        make_listing(4, created_time=NOW - 400 * DAY),
        make_listing(5, price=0),
        make_listing(6, fuel_type="Petrol"),
        make_listing(7, customs_paid=True, registration=2016),
        make_listing(8, model="X3"),
    )
    samples = asyncio.run(price_calculate(session_factory, _price_terms(), now=NOW))
    assert [s.id for s in samples] == ["7", "1"]
    assert (samples[1].price, samples[1].registration) == (20000, 2018)


def test_price_calculate_optional_terms_narrow(session_factory):
    seed(session_factory, make_listing(1, transmission="Automatic"), make_listing(2, transmission="Manual"))
    samples = asyncio.run(price_calculate(session_factory, _price_terms(transmission="Manual"), now=NOW))
    assert [s.id for s in samples] == ["2"]
    samples = asyncio.run(price_calculate(session_factory, _price_terms(bodyType="Sedan"), now=NOW))
    assert samples == []


def test_price_calculate_requires_core_terms(session_factory):
    seed(session_factory, make_listing(1))
    payload = {"searchTerms": [{"key": "make1", "value": "BMW"}, {"key": "model1", "value": "X5"}]}
    assert asyncio.run(price_calculate(session_factory, json.dumps(payload), now=NOW)) == []
    with pytest.raises(ValidationError):
        asyncio.run(price_calculate(session_factory, "{broken", now=NOW))
