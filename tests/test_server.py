import pytest

from rentmap.core import resolver, route_cache
from rentmap.core.config import Settings
from rentmap.jobs import server

LISTINGS = [
    {"id": 1, "address": "100 Broadway", "latitude": 40.7128, "longitude": -74.006, "rent": 3100},
    {"id": 2, "address": "No coords"},
]

GYMS = [
    {"name": "Far Gym", "place_id": "b", "geometry": {"location": {"lat": 40.7228, "lng": -74.016}}},
    {"name": "Near Gym", "place_id": "a", "geometry": {"location": {"lat": 40.7148, "lng": -74.004}}},
]


@pytest.fixture(autouse=True)
def isolated_server(monkeypatch):
    settings = Settings(google_api_key="test-key", database_url="")
    monkeypatch.setattr(server, "get_settings", lambda: settings)
    monkeypatch.setattr(server, "_sessions", server.OrderedDict())
    monkeypatch.setattr(server, "_route_caches", {})
    monkeypatch.setattr(server, "_recent_searches", None)
    return settings


@pytest.fixture
def route_calls(monkeypatch):
    calls = []

    def fake_directions(origin, destination, mode, api_key, timeout=10):
        calls.append(mode)
        return {
            "status": "OK",
            "routes": [{"legs": [{"distance": {"text": "0.2 mi"}, "duration": {"text": "4 mins"}, "steps": []}]}],
        }

    monkeypatch.setattr(route_cache.google_directions, "directions", fake_directions)
    return calls


@pytest.fixture
def gyms(monkeypatch):
    monkeypatch.setattr(
        resolver.google_places,
        "nearby_search",
        lambda lat, lng, radius, api_key, place_type=None, timeout=10: {"status": "OK", "results": GYMS},
    )


def test_health_endpoint():
    client = server.app.test_client()
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_maps_key_endpoint():
    response = server.app.test_client().get("/api/maps-key")
    assert response.get_json() == {"key": "test-key"}


def test_nearby_places_validates_params():
    client = server.app.test_client()
    assert client.get("/api/nearby-places?lat=x&lng=1&type=gym").status_code == 400
    assert client.get("/api/nearby-places?lat=1&lng=1").status_code == 400


def test_nearby_places_sorted_by_distance(gyms):
    response = server.app.test_client().get("/api/nearby-places?lat=40.7128&lng=-74.006&type=gym")

    assert response.status_code == 200
    names = [place["name"] for place in response.get_json()["places"]]
    assert names == ["Near Gym", "Far Gym"]
    assert response.get_json()["places"][0]["distance"] == "0.17 mi"


def test_nearby_places_upstream_failure(monkeypatch):
    def boom(*args, **kwargs):
        raise resolver.google_places.GooglePlacesError("REQUEST_DENIED")

    monkeypatch.setattr(resolver.google_places, "nearby_search", boom)

    response = server.app.test_client().get("/api/nearby-places?lat=1&lng=1&type=gym")
    assert response.status_code == 502


def test_routes_endpoint_caches(route_calls):
    client = server.app.test_client()
    body = {"origin": {"lat": 40.7128, "lng": -74.006}, "destination": {"lat": 40.7148, "lng": -74.004}}

    first = client.post("/api/routes", json=body)
    second = client.post("/api/routes", json=body)

    assert first.status_code == 200
    assert first.get_json()["cached"] is False
    assert second.get_json()["cached"] is True
    assert first.get_json()["duration"] == "4 mins"
    assert route_calls == ["WALKING"]


def test_routes_endpoint_validation(route_calls):
    client = server.app.test_client()
    assert client.post("/api/routes", json={"origin": {"lat": 1}}).status_code == 400
    bad_mode = {"origin": {"lat": 1, "lng": 1}, "destination": {"lat": 2, "lng": 2}, "mode": "flying"}
    assert client.post("/api/routes", json=bad_mode).status_code == 400
    assert route_calls == []


def test_routes_endpoint_failure(monkeypatch):
    def failing(*args, **kwargs):
        raise route_cache.google_directions.GoogleDirectionsError("NOT_FOUND")

    monkeypatch.setattr(route_cache.google_directions, "directions", failing)
    body = {"origin": {"lat": 1, "lng": 1}, "destination": {"lat": 2, "lng": 2}}

    response = server.app.test_client().post("/api/routes", json=body)

    assert response.status_code == 502
    assert response.get_json()["error"] == "Unable to calculate route"


def test_compare_session_lifecycle(gyms, route_calls):
    client = server.app.test_client()

    created = client.post("/api/compare", json={"listings": LISTINGS})
    assert created.status_code == 201
    data = created.get_json()["data"]
    assert data["mode"] == "map"
    session_id = data["session_id"]

    event = {"type": "category", "listing_id": 1, "category": "Gym"}
    response = client.post(f"/api/compare/{session_id}/events", json=event)
    assert response.status_code == 200
    listing = response.get_json()["data"]["listings"][0]
    assert listing["categories"]["gym"]["nearest"]["name"] == "Near Gym"
    assert listing["state"] == "routed"

    assert client.get(f"/api/compare/{session_id}").status_code == 200
    assert client.delete(f"/api/compare/{session_id}").status_code == 204
    assert client.get(f"/api/compare/{session_id}").status_code == 404


def test_compare_event_errors():
    client = server.app.test_client()
    session_id = client.post("/api/compare", json={"listings": LISTINGS}).get_json()["data"]["session_id"]

    assert client.post("/api/compare/missing/events", json={"type": "close_info_window"}).status_code == 404
    assert client.post(f"/api/compare/{session_id}/events", json={"type": "warp"}).status_code == 400
    assert client.post(
        f"/api/compare/{session_id}/events", json={"type": "listing_click", "listing_id": 42}
    ).status_code == 404


def test_compare_requires_listings():
    client = server.app.test_client()
    assert client.post("/api/compare", json={}).status_code == 400
    assert client.post("/api/compare", json={"listings": [{"address": "no id"}]}).status_code == 400


def test_compare_loads_ids_from_store(monkeypatch):
    monkeypatch.setattr(server, "fetch_listings", lambda ids: [])
    assert server.app.test_client().post("/api/compare", json={"ids": [5]}).status_code == 404

    def unavailable(ids):
        raise RuntimeError("DATABASE_URL is required for database connections")

    monkeypatch.setattr(server, "fetch_listings", unavailable)
    assert server.app.test_client().post("/api/compare", json={"ids": [5]}).status_code == 503


def test_recent_searches_are_shared_across_sessions(monkeypatch, route_calls):
    monkeypatch.setattr(
        resolver.google_places,
        "text_search",
        lambda query, api_key, lat=None, lng=None, radius=None, timeout=10: {
            "status": "OK",
            "results": GYMS,
        },
    )
    client = server.app.test_client()
    first = client.post("/api/compare", json={"listings": LISTINGS}).get_json()["data"]["session_id"]
    second = client.post("/api/compare", json={"listings": LISTINGS}).get_json()["data"]["session_id"]

    client.post(f"/api/compare/{first}/events", json={"type": "search", "listing_id": 1, "term": "bouldering"})
    view = client.get(f"/api/compare/{second}").get_json()["data"]

    assert [item["term"] for item in view["recent_searches"]] == ["bouldering"]
    assert client.get("/api/recent-searches").get_json()["data"][0]["count"] == 1
    assert route_calls == ["DRIVING"]


def test_session_store_is_bounded(monkeypatch):
    monkeypatch.setattr(server, "MAX_SESSIONS", 2)
    client = server.app.test_client()
    ids = [client.post("/api/compare", json={"listings": LISTINGS}).get_json()["data"]["session_id"] for _ in range(3)]

    assert client.get(f"/api/compare/{ids[0]}").status_code == 404
    assert client.get(f"/api/compare/{ids[2]}").status_code == 200


def test_nearby_places_keyword_uses_text_search(monkeypatch):
    searches = []

    def fake_text_search(query, api_key, lat=None, lng=None, radius=None, timeout=10):
        searches.append((query, radius))
        return {"status": "OK", "results": GYMS}

    def no_nearby(*args, **kwargs):
        raise AssertionError("nearby search must not run for a keyword")

    monkeypatch.setattr(resolver.google_places, "text_search", fake_text_search)
    monkeypatch.setattr(resolver.google_places, "nearby_search", no_nearby)

    response = server.app.test_client().get("/api/nearby-places?lat=40.7128&lng=-74.006&keyword=gym")

    assert response.status_code == 200
    assert [place["name"] for place in response.get_json()["places"]] == ["Near Gym", "Far Gym"]
    assert searches == [("gym", 5000)]


def test_nearby_places_rejects_ambiguous_or_unknown_type():
    client = server.app.test_client()
    assert client.get("/api/nearby-places?lat=1&lng=1&type=gym&keyword=gym").status_code == 400
    assert client.get("/api/nearby-places?lat=1&lng=1&type=laundromat").status_code == 400


def test_compare_event_rejects_unknown_category():
    client = server.app.test_client()
    session_id = client.post("/api/compare", json={"listings": LISTINGS}).get_json()["data"]["session_id"]

    event = {"type": "category", "listing_id": 1, "category": "laundromat"}
    assert client.post(f"/api/compare/{session_id}/events", json=event).status_code == 400


def test_route_cache_is_created_once_per_mode():
    assert server._route_cache("WALKING") is server._route_cache("WALKING")
    assert server._route_cache("DRIVING") is not server._route_cache("WALKING")
