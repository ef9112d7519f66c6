import json

import pytest
from conftest import HOUR, NOW, make_listing, seed
from fastapi.testclient import TestClient

from listing_search.dependencies import get_session_factory
from listing_search.main import app


@pytest.fixture
def client(session_factory):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_search_route(client, session_factory):
    seed(session_factory, make_listing(1), make_listing(2, promotion_to=NOW + HOUR))
    r = client.post("/car-details/search", data={"filter": json.dumps({"type": "car"})})
    assert r.status_code == 200
    body = r.json()
    assert body["promoted_id"] == "2"
    assert [i["id"] for i in body["items"]] == ["2", "1"]
    assert body["items"][0]["promoted"] is True


def test_search_rejects_bad_filter(client):
    r = client.post("/car-details/search", data={"filter": "{nope"})
    assert r.status_code == 400
    assert client.post("/car-details/search").status_code == 400


def test_result_count(client, session_factory):
    seed(session_factory, make_listing(1), make_listing(2))
    r = client.post("/car-details/result-count", data={"filter": json.dumps({})})
    assert r.json() == {"count": 2}


def test_listing_detail_and_caption(client, session_factory):
    seed(session_factory, make_listing(1, cleaned_caption="Shitet , urgjent"))
    assert client.get("/car-details/post/1").json()["id"] == "1"
    assert client.get("/car-details/post/caption/1").json() == {"cleaned_caption": "Shitet, urgjent"}
    assert client.get("/car-details/post/2").status_code == 404
    assert client.get("/car-details/post/abc").status_code == 400


def test_related_routes(client, session_factory):
    seed(session_factory, *[make_listing(i) for i in range(1, 7)])
    r = client.get("/car-details/related-post/1", params={"excludedIds": "2"})
    ids = [i["id"] for i in r.json()]
    assert len(ids) == 4 and "1" not in ids and "2" not in ids

    payload = {"searchTerms": [{"key": "make1", "value": "BMW"}]}
    r = client.post(
        "/car-details/related-post-filter",
        data={"filter": json.dumps(payload)},
        params={"type": "car", "excludedIds": "1,2,3"},
    )
    assert [i["id"] for i in r.json()] == ["4", "5", "6"]

    assert client.get("/car-details/related-post/999").status_code == 404


def test_most_wanted_route(client, session_factory):
    seed(session_factory, make_listing(1, most_wanted_to=NOW + HOUR), make_listing(2))
    r = client.get("/car-details/most-wanted", params={"excludedAccounts": "someone-else"})
    assert [i["id"] for i in r.json()] == ["1"]


def test_price_calculate_route(client, session_factory):
    seed(session_factory, make_listing(1), make_listing(2, fuel_type="Petrol"))
    terms = [
        {"key": "make1", "value": "BMW"},
        {"key": "model1", "value": "X5"},
        {"key": "registration", "value": {"from": "2019"}},
        {"key": "fuelType", "value": "Diesel"},
    ]
    r = client.post("/car-details/price-calculate", data={"filter": json.dumps({"type": "car", "searchTerms": terms})})
    assert r.status_code == 200
    assert [(s["id"], s["price"]) for s in r.json()] == [("1", 20000)]
