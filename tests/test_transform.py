import pytest

from rentmap.etl import transform
from rentmap.models import LatLng


def test_to_latlng_accepts_common_shapes():
    assert transform.to_latlng({"lat": 1, "lng": 2}) == LatLng(1.0, 2.0)
    assert transform.to_latlng({"lat": "1.5", "lon": "2.5"}) == LatLng(1.5, 2.5)
    assert transform.to_latlng({"latitude": 3, "longitude": 4}) == LatLng(3.0, 4.0)
    assert transform.to_latlng({"lat": "x", "lng": 2}) is None
    assert transform.to_latlng(None) is None


def test_to_place_candidates_skips_incomplete_results():
    results = [
        {
            "name": "Iron Works",
            "place_id": "p1",
            "geometry": {"location": {"lat": 40.7148, "lng": -74.004}},
            "vicinity": "10 Main St",
            "rating": "4.5",
        },
        {"name": "No Geometry", "place_id": "p2"},
        {"name": "  ", "geometry": {"location": {"lat": 1, "lng": 1}}},
    ]

    candidates = transform.to_place_candidates(results, "gym")

    assert len(candidates) == 1
    candidate = candidates[0]
    assert candidate.name == "Iron Works"
    assert candidate.location == LatLng(40.7148, -74.004)
    assert candidate.address == "10 Main St"
    assert candidate.rating == 4.5
    assert candidate.category == "gym"


def test_serp_to_place_candidates_uses_gps_coordinates():
    items = [
        {"title": "Corner Cafe", "gps_coordinates": {"latitude": 40.1, "longitude": -73.9}, "data_id": 42},
        {"title": "Missing coords"},
        "not-a-dict",
    ]

    candidates = transform.serp_to_place_candidates(items, "cafe")

    assert [c.name for c in candidates] == ["Corner Cafe"]
    assert candidates[0].place_id == "42"


def test_first_leg_and_leg_texts():
    payload = {"routes": [{"legs": [{"distance": {"text": "0.2 mi"}, "duration": {"text": "4 mins"}}]}]}

    leg = transform.first_leg(payload)

    assert transform.leg_texts(leg) == {"distance": "0.2 mi", "duration": "4 mins"}
    assert transform.first_leg({"routes": []}) == {}
    assert transform.leg_texts({}) == {"distance": "Unknown", "duration": "Unknown"}


def test_to_listing_maps_row_aliases():
    listing = transform.to_listing(
        {"id": "7", "address": "5 Elm", "lat": "40.7", "lng": "-74.0", "price": "2100", "beds": 2, "sqft": "800"}
    )

    assert listing.id == 7
    assert listing.location == LatLng(40.7, -74.0)
    assert listing.price == 2100
    assert listing.bedrooms == 2
    assert listing.square_feet == 800


def test_to_listing_requires_id():
    with pytest.raises(ValueError):
        transform.to_listing({"address": "nowhere"})
