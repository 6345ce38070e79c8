import threading

import pytest

from rentmap.core import route_cache
from rentmap.core.route_cache import RouteCache, route_key, route_midpoint
from rentmap.models import LatLng, TravelMode

ORIGIN = LatLng(40.7128, -74.006)
DEST = LatLng(40.7148, -74.004)


def _directions_payload(steps=None):
    return {
        "status": "OK",
        "routes": [
            {
                "legs": [
                    {
                        "distance": {"text": "0.2 mi", "value": 320},
                        "duration": {"text": "4 mins", "value": 240},
                        "start_location": {"lat": 40.7128, "lng": -74.006},
                        "end_location": {"lat": 40.7148, "lng": -74.004},
                        "steps": steps if steps is not None else [],
                    }
                ]
            }
        ],
    }


@pytest.fixture
def directions_calls(monkeypatch):
    calls = []

    def fake_directions(origin, destination, mode, api_key, timeout=10):
        calls.append((origin, destination, mode))
        return _directions_payload()

    monkeypatch.setattr(route_cache.google_directions, "directions", fake_directions)
    return calls


def test_route_key_uses_exact_coordinates():
    assert route_key(ORIGIN, DEST) == "40.7128,-74.006-40.7148,-74.004"
    assert route_key(ORIGIN, LatLng(40.71480001, -74.004)) != route_key(ORIGIN, DEST)


def test_repeated_lookup_issues_one_request(directions_calls):
    cache = RouteCache("key")

    first = cache.get_route(ORIGIN, DEST)
    second = cache.get_route(ORIGIN, DEST)

    assert len(directions_calls) == 1
    assert cache.requests_made == 1
    assert first.from_cache is False
    assert second.from_cache is True
    assert second.entry is first.entry
    assert first.entry.distance_text == "0.2 mi"
    assert first.entry.duration_text == "4 mins"


def test_nearly_equal_coordinates_are_distinct_entries(directions_calls):
    cache = RouteCache("key")

    cache.get_route(ORIGIN, DEST)
    cache.get_route(ORIGIN, LatLng(40.714800001, -74.004))

    assert len(directions_calls) == 2
    assert len(cache) == 2


def test_cache_uses_its_travel_mode(directions_calls):
    RouteCache("key", mode=TravelMode.DRIVING).get_route(ORIGIN, DEST)

    assert directions_calls[0][2] == TravelMode.DRIVING


def test_place_id_destination_is_forwarded(directions_calls):
    lookup = RouteCache("key").get_route(ORIGIN, DEST, destination_place_id="abc")

    assert directions_calls[0][1] == "place_id:abc"
    assert lookup.key == route_key(ORIGIN, DEST)


def test_least_recently_used_entry_is_evicted(directions_calls):
    cache = RouteCache("key", max_entries=2)
    a, b, c = LatLng(1.0, 1.0), LatLng(2.0, 2.0), LatLng(3.0, 3.0)

    cache.get_route(ORIGIN, a)
    cache.get_route(ORIGIN, b)
    cache.get_route(ORIGIN, a)
    cache.get_route(ORIGIN, c)

    assert route_key(ORIGIN, a) in cache
    assert route_key(ORIGIN, b) not in cache
    assert route_key(ORIGIN, c) in cache


def test_failure_is_not_cached(monkeypatch):
    calls = []

    def failing_directions(origin, destination, mode, api_key, timeout=10):
        calls.append(destination)
        raise route_cache.google_directions.GoogleDirectionsError("ZERO_RESULTS")

    monkeypatch.setattr(route_cache.google_directions, "directions", failing_directions)
    cache = RouteCache("key")

    first = cache.get_route(ORIGIN, DEST)
    second = cache.get_route(ORIGIN, DEST)

    assert first.ok is False
    assert first.error == "Unable to calculate route"
    assert second.from_cache is False
    assert len(calls) == 2
    assert len(cache) == 0


def test_invalid_configuration_is_rejected():
    with pytest.raises(ValueError):
        RouteCache("key", mode="FLYING")
    with pytest.raises(ValueError):
        RouteCache("key", max_entries=0)


def test_midpoint_walks_half_the_distance():
    steps = [
        {"distance": {"value": 100}, "end_location": {"lat": 1.0, "lng": 1.0}},
        {"distance": {"value": 100}, "end_location": {"lat": 2.0, "lng": 2.0}},
        {"distance": {"value": 300}, "end_location": {"lat": 3.0, "lng": 3.0}},
    ]

    assert route_midpoint({"steps": steps}, ORIGIN, DEST) == LatLng(3.0, 3.0)


def test_midpoint_with_no_steps_uses_leg_endpoints():
    leg = {"start_location": {"lat": 0.0, "lng": 0.0}, "end_location": {"lat": 2.0, "lng": 4.0}}

    assert route_midpoint(leg, ORIGIN, DEST) == LatLng(1.0, 2.0)


def test_midpoint_with_no_steps_or_leg_uses_origin_and_destination():
    midpoint = route_midpoint({}, LatLng(0.0, 0.0), LatLng(2.0, 2.0))

    assert midpoint == LatLng(1.0, 1.0)


def test_midpoint_with_malformed_steps_uses_middle_step():
    steps = [
        {"end_location": {"lat": 1.0, "lng": 1.0}},
        {"end_location": {"lat": 2.0, "lng": 2.0}},
        {"end_location": {"lat": 3.0, "lng": 3.0}},
    ]

    assert route_midpoint({"steps": steps}, ORIGIN, DEST) == LatLng(2.0, 2.0)


def test_path_falls_back_to_straight_line(directions_calls):
    lookup = RouteCache("key").get_route(ORIGIN, DEST)

    assert lookup.entry.path == [ORIGIN, DEST]
    assert lookup.entry.midpoint == LatLng((40.7128 + 40.7148) / 2, (-74.006 + -74.004) / 2)


def test_request_count_is_exact_across_threads(directions_calls):
    cache = RouteCache("key", max_entries=64)
    destinations = [LatLng(40.71 + i / 1000, -74.0) for i in range(16)]

    workers = [threading.Thread(target=cache.get_route, args=(ORIGIN, dest)) for dest in destinations]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert cache.requests_made == len(directions_calls) == 16
    assert len(cache) == 16
