"""Utilities for transforming places, directions and property payloads into models."""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from rentmap.models import LatLng, Listing, PlaceCandidate

logger = logging.getLogger(__name__)


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _safe_int(value: Any) -> Optional[int]:
    try:
        if value is None:
            return None
        return int(value)
    except (TypeError, ValueError):
        return None


def to_latlng(raw: Optional[Mapping[str, Any]]) -> Optional[LatLng]:
    """Accept ``{lat, lng}``, ``{lat, lon}`` and ``{latitude, longitude}`` shapes."""
    if not raw:
        return None
    lat = _safe_float(raw.get("lat", raw.get("latitude")))
    lng = _safe_float(raw.get("lng", raw.get("lon", raw.get("longitude"))))
    if lat is None or lng is None:
        return None
    return LatLng(lat, lng)


def to_place_candidate(result: Dict[str, Any], category: str) -> Optional[PlaceCandidate]:
    """Convert one Google Places search result into a candidate."""
    location = to_latlng(result.get("geometry", {}).get("location"))
    name = (result.get("name") or "").strip()
    if location is None or not name:
        logger.debug("Skipping place result without name or location: %s", result.get("place_id"))
        return None
    return PlaceCandidate(
        name=name,
        location=location,
        place_id=result.get("place_id") or "",
        category=category,
        address=result.get("vicinity") or result.get("formatted_address"),
        rating=_safe_float(result.get("rating")),
        raw=result,
    )


def to_place_candidates(results: Iterable[Dict[str, Any]], category: str) -> List[PlaceCandidate]:
    candidates = []
    for result in results or []:
        candidate = to_place_candidate(result, category)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def serp_to_place_candidates(items: Iterable[Any], category: str) -> List[PlaceCandidate]:
    """Convert SerpAPI local results into candidates."""
    candidates: List[PlaceCandidate] = []
    for raw in items or []:
        if not isinstance(raw, dict):
            continue
        name = (raw.get("title") or raw.get("name") or "").strip()
        location = to_latlng(raw.get("gps_coordinates"))
        if not name or location is None:
            continue
        candidates.append(
            PlaceCandidate(
                name=name,
                location=location,
                place_id=str(raw.get("place_id") or raw.get("data_id") or ""),
                category=category,
                address=raw.get("address"),
                rating=_safe_float(raw.get("rating")),
                raw=raw,
            )
        )
    return candidates


def first_leg(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Return the first leg of the first route of a directions payload."""
    routes = payload.get("routes") or []
    if not routes:
        return {}
    legs = routes[0].get("legs") or []
    return legs[0] if legs else {}


def leg_texts(leg: Dict[str, Any]) -> Dict[str, str]:
    return {
        "distance": (leg.get("distance") or {}).get("text") or "Unknown",
        "duration": (leg.get("duration") or {}).get("text") or "Unknown",
    }


def to_listing(row: Mapping[str, Any]) -> Listing:
    """Build a Listing from a ``properties`` row or a JSON listing payload."""
    listing_id = _safe_int(row.get("id"))
    if listing_id is None:
        raise ValueError("listing id is required")
    return Listing(
        id=listing_id,
        address=str(row.get("address") or ""),
        latitude=_safe_float(row.get("latitude", row.get("lat"))),
        longitude=_safe_float(row.get("longitude", row.get("lng", row.get("lon")))),
        price=_safe_int(row.get("rent", row.get("price"))),
        bedrooms=_safe_int(row.get("bedrooms", row.get("beds"))),
        bathrooms=_safe_float(row.get("bathrooms", row.get("baths"))),
        square_feet=_safe_int(row.get("square_feet", row.get("sqft"))),
        title=row.get("title"),
        neighborhood=row.get("neighborhood"),
    )
