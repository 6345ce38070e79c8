"""Directions lookups cached per origin/destination pair for a session."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from rentmap.etl.transform import first_leg, leg_texts, to_latlng
from rentmap.models import LatLng, RouteCacheEntry, TravelMode
from rentmap.vendors import google_directions

logger = logging.getLogger(__name__)

ROUTE_FAILED_MESSAGE = "Unable to calculate route"
DEFAULT_MAX_ENTRIES = 256


def route_key(origin: LatLng, destination: LatLng) -> str:
    """Build the cache key from exact, unrounded coordinates."""
    return f"{origin.lat},{origin.lng}-{destination.lat},{destination.lng}"


def _midpoint(a: LatLng, b: LatLng) -> LatLng:
    return LatLng((a.lat + b.lat) / 2, (a.lng + b.lng) / 2)


def route_midpoint(leg: Dict[str, Any], origin: LatLng, destination: LatLng) -> LatLng:
    """
    Find where the travel-time label goes.

    Walks the cumulative step distance until half of the total is covered and
    returns that step's end location. Malformed step data falls back to the
    middle step; an empty step list falls back to the midpoint of the leg's
    endpoints.
    """
    steps = leg.get("steps") or []
    if not steps:
        start = to_latlng(leg.get("start_location")) or origin
        end = to_latlng(leg.get("end_location")) or destination
        return _midpoint(start, end)

    try:
        total = sum(float(step["distance"]["value"]) for step in steps)
        covered = 0.0
        for step in steps:
            covered += float(step["distance"]["value"])
            if covered >= total / 2:
                point = to_latlng(step.get("end_location"))
                if point is not None:
                    return point
                break
    except (KeyError, TypeError, ValueError):
        logger.debug("Malformed route steps; using middle step for label position")

    middle = steps[len(steps) // 2]
    point = to_latlng(middle.get("end_location")) if isinstance(middle, dict) else None
    return point or _midpoint(origin, destination)


def route_path(leg: Dict[str, Any], origin: LatLng, destination: LatLng) -> List[LatLng]:
    path: List[LatLng] = []
    for step in leg.get("steps") or []:
        if not isinstance(step, dict):
            continue
        if not path:
            start = to_latlng(step.get("start_location"))
            if start is not None:
                path.append(start)
        end = to_latlng(step.get("end_location"))
        if end is not None:
            path.append(end)
    if len(path) < 2:
        return [origin, destination]
    return path


@dataclass
class RouteLookup:
    key: str
    entry: Optional[RouteCacheEntry] = None
    from_cache: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.entry is not None


class RouteCache:
    """LRU-bounded map from coordinate-pair key to a fetched route.

    Entries have no TTL; a cached route is served until it is evicted.
    Failures are never cached.
    """

    def __init__(
        self,
        api_key: str,
        mode: str = TravelMode.WALKING,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        timeout: float = 10,
    ) -> None:
        if mode not in TravelMode.ALL:
            raise ValueError(f"Unsupported travel mode: {mode}")
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.api_key = api_key
        self.mode = mode
        self.max_entries = max_entries
        self.timeout = timeout
        self._entries: "OrderedDict[str, RouteCacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.requests_made = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_route(
        self,
        origin: LatLng,
        destination: LatLng,
        destination_place_id: Optional[str] = None,
    ) -> RouteLookup:
        key = route_key(origin, destination)
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                self._entries.move_to_end(key)
                logger.debug("Route cache hit %s (%s)", key, self.mode)
                return RouteLookup(key=key, entry=cached, from_cache=True)
            self.requests_made += 1

        target = f"place_id:{destination_place_id}" if destination_place_id else destination
        try:
            payload = google_directions.directions(origin, target, self.mode, self.api_key, timeout=self.timeout)
        except (google_directions.GoogleDirectionsError, requests.RequestException, ValueError) as exc:
            logger.warning("Directions request failed for %s (%s): %s", key, self.mode, exc)
            return RouteLookup(key=key, error=ROUTE_FAILED_MESSAGE)

        leg = first_leg(payload)
        texts = leg_texts(leg)
        entry = RouteCacheEntry(
            key=key,
            mode=self.mode,
            response=payload,
            distance_text=texts["distance"],
            duration_text=texts["duration"],
            path=route_path(leg, origin, destination),
            midpoint=route_midpoint(leg, origin, destination),
        )
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted route %s from %s cache", evicted, self.mode)
        logger.info("Cached route %s (%s): %s, %s", key, self.mode, entry.distance_text, entry.duration_text)
        return RouteLookup(key=key, entry=entry)
