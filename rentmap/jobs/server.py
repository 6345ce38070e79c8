"""HTTP entrypoint serving nearby-place, route and map comparison endpoints."""

from __future__ import annotations

import logging
import os
import threading
from collections import OrderedDict
from typing import Any, Dict, Optional

import psycopg2
from flask import Flask, jsonify, request

from rentmap.core.comparison import MapComparison, build_resolver
from rentmap.core.config import get_settings
from rentmap.core.db import fetch_listings
from rentmap.core.events import event_from_payload
from rentmap.core.geo import format_miles
from rentmap.core.recent_searches import RecentSearchStore
from rentmap.core.resolver import ResolveStatus, rank_candidates
from rentmap.core.route_cache import RouteCache
from rentmap.etl.transform import to_latlng, to_listing
from rentmap.models import Listing, TravelMode, is_category

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & shared state ----------
app = Flask(__name__)
MAX_SESSIONS = 200

_sessions: "OrderedDict[str, MapComparison]" = OrderedDict()
_sessions_lock = threading.Lock()
_route_caches: Dict[str, RouteCache] = {}
_route_caches_lock = threading.Lock()
_recent_searches: Optional[RecentSearchStore] = None
_recent_searches_lock = threading.Lock()


def _recent_store() -> RecentSearchStore:
    global _recent_searches
    with _recent_searches_lock:
        if _recent_searches is None:
            _recent_searches = RecentSearchStore(get_settings().recent_searches_max)
        return _recent_searches


def _route_cache(mode: str) -> RouteCache:
    with _route_caches_lock:
        cache = _route_caches.get(mode)
        if cache is None:
            settings = get_settings()
            cache = RouteCache(
                settings.google_api_key,
                mode=mode,
                max_entries=settings.route_cache_size,
                timeout=settings.http_timeout,
            )
            _route_caches[mode] = cache
        return cache


def _store_session(session: MapComparison) -> None:
    with _sessions_lock:
        _sessions[session.session_id] = session
        while len(_sessions) > MAX_SESSIONS:
            evicted, _ = _sessions.popitem(last=False)
            logger.info("Evicted comparison session %s", evicted)


def _get_session(session_id: str) -> Optional[MapComparison]:
    with _sessions_lock:
        return _sessions.get(session_id)


# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    """Simple root to avoid 404 on GET /"""
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": getattr(settings, "worker_port", None),
                "places_provider": getattr(settings, "places_provider", None),
                "sessions": len(_sessions),
            }
        ),
        200,
    )


@app.get("/api/maps-key")
def maps_key() -> Any:
    return jsonify({"key": get_settings().google_api_key or None}), 200


@app.get("/api/nearby-places")
def nearby_places() -> Any:
    """
    Nearest places around a point, closest first.
    Required query params: lat, lng and one of type / keyword.
    """
    origin = to_latlng(request.args)
    if origin is None:
        return jsonify({"error": "lat and lng must be numeric"}), 400

    keyword = (request.args.get("keyword") or "").strip()
    place_type = (request.args.get("type") or "").strip()
    if keyword and place_type:
        return jsonify({"error": "pass either type or keyword, not both"}), 400
    if not keyword and not place_type:
        return jsonify({"error": "type or keyword is required"}), 400
    if place_type and not is_category(place_type):
        return jsonify({"error": f"unknown type: {place_type}"}), 400

    listing = Listing(id=0, address="", latitude=origin.lat, longitude=origin.lng)
    outcome = build_resolver(get_settings()).resolve(listing, keyword or place_type, free_text=bool(keyword))
    if outcome.status == ResolveStatus.ERROR:
        return jsonify({"error": outcome.message}), 502

    places = []
    if outcome.found:
        for candidate, miles in rank_candidates(origin, outcome.candidates):
            entry = candidate.to_dict()
            entry["distance_miles"] = miles
            entry["distance"] = format_miles(miles)
            places.append(entry)
    return jsonify({"places": places, "message": outcome.message}), 200


@app.post("/api/routes")
def routes() -> Any:
    """
    Route between two points.
    Required JSON fields: origin {lat, lng}, destination {lat, lng}
    Optional: mode (WALKING | DRIVING, default WALKING)
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    origin = to_latlng(payload.get("origin"))
    destination = to_latlng(payload.get("destination"))
    if origin is None or destination is None:
        return jsonify({"error": "origin and destination need numeric lat/lng"}), 400

    mode = str(payload.get("mode") or TravelMode.WALKING).upper()
    if mode not in TravelMode.ALL:
        return jsonify({"error": f"mode must be one of {', '.join(TravelMode.ALL)}"}), 400

    lookup = _route_cache(mode).get_route(origin, destination)
    if not lookup.ok:
        return jsonify({"error": lookup.error}), 502

    body = lookup.entry.to_dict()
    body["cached"] = lookup.from_cache
    return jsonify(body), 200


@app.post("/api/compare")
def create_comparison() -> Any:
    """
    Mount a comparison view.
    JSON body: either listings (inline list) or ids (loaded from the property store).
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    raw_listings = payload.get("listings")
    ids = payload.get("ids")

    try:
        if isinstance(raw_listings, list) and raw_listings:
            listings = [to_listing(item) for item in raw_listings if isinstance(item, dict)]
        elif isinstance(ids, list) and ids:
            listings = fetch_listings(ids)
        else:
            return jsonify({"error": "listings or ids are required"}), 400
    except (TypeError, ValueError) as exc:
        return jsonify({"error": str(exc)}), 400
    except (RuntimeError, psycopg2.Error) as exc:
        logger.error("Unable to load listings: %s", exc)
        return jsonify({"error": "listing store unavailable"}), 503

    if not listings:
        return jsonify({"error": "no listings found"}), 404

    session = MapComparison(listings, get_settings(), recent_searches=_recent_store())
    session.mount()
    _store_session(session)
    logger.info("Created comparison %s with %d listings (mode=%s)", session.session_id, len(listings), session.mode)
    return jsonify({"data": session.render()}), 201


@app.get("/api/compare/<session_id>")
def get_comparison(session_id: str) -> Any:
    session = _get_session(session_id)
    if session is None:
        return jsonify({"error": "unknown comparison"}), 404
    return jsonify({"data": session.render()}), 200


@app.post("/api/compare/<session_id>/events")
def comparison_event(session_id: str) -> Any:
    """Apply a typed UI event, e.g. {"type": "category", "listing_id": 1, "category": "gym"}."""
    session = _get_session(session_id)
    if session is None:
        return jsonify({"error": "unknown comparison"}), 404

    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    try:
        event = event_from_payload(payload)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    try:
        view = session.handle(event)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    except KeyError as exc:
        return jsonify({"error": str(exc.args[0]) if exc.args else "unknown listing"}), 404
    return jsonify({"data": view}), 200


@app.delete("/api/compare/<session_id>")
def delete_comparison(session_id: str) -> Any:
    with _sessions_lock:
        session = _sessions.pop(session_id, None)
    if session is None:
        return jsonify({"error": "unknown comparison"}), 404
    return "", 204


@app.get("/api/recent-searches")
def recent_searches() -> Any:
    return jsonify({"data": [item.to_dict() for item in _recent_store().recent()]}), 200


def main() -> None:
    """Bind on 0.0.0.0 using PORT (or WORKER_PORT) from the environment."""
    env_port = os.getenv("PORT")
    logger.info("[BOOT] ENV PORT=%s", env_port)

    port = int(env_port or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
