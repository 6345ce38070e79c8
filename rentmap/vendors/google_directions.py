"""Client utilities for the Google Directions API."""

import logging
from typing import Any, Dict, Union

import requests

from rentmap.models import LatLng, TravelMode

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://maps.googleapis.com/maps/api/directions/json"


class GoogleDirectionsError(RuntimeError):
    """Raised when the Directions API cannot produce a route."""


def _as_waypoint(value: Union[LatLng, str]) -> str:
    if isinstance(value, LatLng):
        return value.as_param()
    return value


def directions(
    origin: Union[LatLng, str],
    destination: Union[LatLng, str],
    mode: str,
    api_key: str,
    timeout: float = 10,
) -> Dict[str, Any]:
    """Request a single route. ``destination`` may be a ``place_id:<id>`` string."""
    if mode not in TravelMode.ALL:
        raise ValueError(f"Unsupported travel mode: {mode}")

    params = {
        "origin": _as_waypoint(origin),
        "destination": _as_waypoint(destination),
        "mode": mode.lower(),
        "key": api_key,
    }
    response = _SESSION.get(_BASE_URL, params=params, timeout=timeout)
    response.raise_for_status()
    payload = response.json()
    status = payload.get("status")
    if status != "OK" or not payload.get("routes"):
        logger.error("directions failed: status=%s, error_message=%s", status, payload.get("error_message"))
        raise GoogleDirectionsError(payload.get("error_message") or status or "no routes")
    return payload
