"""Client utilities for the Google Places API."""

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://maps.googleapis.com/maps/api/place"
_OK_STATUSES = {"OK", "ZERO_RESULTS"}


class GooglePlacesError(RuntimeError):
    """Raised when the Places API returns a non-successful response."""


def _get(endpoint: str, params: Dict[str, Any], timeout: float) -> Dict[str, Any]:
    response = _SESSION.get(f"{_BASE_URL}/{endpoint}/json", params=params, timeout=timeout)
    response.raise_for_status()
    payload = response.json()
    status = payload.get("status")
    if status not in _OK_STATUSES:
        logger.error("%s failed: status=%s, error_message=%s", endpoint, status, payload.get("error_message"))
        raise GooglePlacesError(payload.get("error_message") or status)
    return payload


def nearby_search(
    lat: float,
    lng: float,
    radius: int,
    api_key: str,
    place_type: Optional[str] = None,
    timeout: float = 10,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {"location": f"{lat},{lng}", "radius": radius, "key": api_key}
    if place_type:
        params["type"] = place_type
    return _get("nearbysearch", params, timeout)


def text_search(
    query: str,
    api_key: str,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radius: Optional[int] = None,
    timeout: float = 10,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {"query": query, "key": api_key}
    if lat is not None and lng is not None:
        params["location"] = f"{lat},{lng}"
    if radius:
        params["radius"] = radius
    return _get("textsearch", params, timeout)
