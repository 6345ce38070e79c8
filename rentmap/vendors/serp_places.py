"""SerpAPI Google Maps helpers used as an alternative places provider."""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Dict, List, Optional

from serpapi import GoogleSearch

logger = logging.getLogger(__name__)

RETRY_LIMIT = 2
RETRY_DELAY_SECONDS = 1.2
DEFAULT_ZOOM = 15


class SerpPlacesError(RuntimeError):
    """Raised when SerpAPI cannot answer a local search."""


def build_serpapi_params(query: str, lat: float, lng: float, api_key: str, zoom: int = DEFAULT_ZOOM) -> Dict[str, Any]:
    """Construct SerpAPI request parameters for the Google Maps engine around a point."""
    if not query or not query.strip():
        raise ValueError("Query must be provided for SerpAPI lookups.")
    if not api_key:
        raise SerpPlacesError("SERPAPI_API_KEY is required for the serpapi places provider.")

    return {
        "engine": "google_maps",
        "q": query.strip(),
        "ll": f"@{lat},{lng},{zoom}z",
        "api_key": api_key,
        "type": "search",
    }


def local_search(query: str, lat: float, lng: float, api_key: str, zoom: int = DEFAULT_ZOOM) -> Dict[str, Any]:
    """Call SerpAPI Google Maps and return the raw JSON response with retry logic."""
    params = build_serpapi_params(query, lat, lng, api_key, zoom)

    attempt = 0
    while True:
        attempt += 1
        try:
            logger.info("Calling SerpAPI (attempt %s) for query=%s ll=%s", attempt, query, params["ll"])
            data = GoogleSearch(params).get_dict()
            if not data:
                raise SerpPlacesError("SerpAPI returned an empty payload.")
            if "error" in data:
                # "no results" is reported as an error string by SerpAPI
                if "hasn't returned any results" in str(data.get("error")):
                    return {"local_results": []}
                raise SerpPlacesError(f"SerpAPI returned an error response: {data.get('error')}")
            return data
        except Exception as exc:  # noqa: BLE001
            logger.warning("SerpAPI request failed (attempt %s/%s): %s", attempt, RETRY_LIMIT + 1, exc)
            if attempt > RETRY_LIMIT:
                logger.error("SerpAPI request exhausted retries for query=%s", query)
                raise SerpPlacesError(str(exc)) from exc
            time.sleep(RETRY_DELAY_SECONDS + random.uniform(0, 0.8))


def extract_items(data: Optional[Dict[str, Any]]) -> List[Any]:
    """Pull place entries out of a Maps payload.

    ``local_results`` arrives as a list, or as a dict wrapping ``places`` /
    ``results``; a single-place answer comes back under ``place_results``.
    """
    data = data or {}
    local = data.get("local_results")
    if isinstance(local, dict):
        local = local.get("places") or local.get("results")
    if isinstance(local, list):
        return local

    single = data.get("place_results")
    if isinstance(single, dict):
        return [single]
    return single if isinstance(single, list) else []
