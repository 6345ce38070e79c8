"""Nearest-place resolution for listings.

A places query is issued around a listing and the candidates are re-ranked by
haversine distance; the relevance order of the upstream service is discarded.
The closest candidate becomes the stored result for ``(listing, category)``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import requests

from rentmap.core.geo import distance_between
from rentmap.etl.transform import serp_to_place_candidates, to_place_candidates
from rentmap.models import (
    CATEGORY_PLACE_TYPES,
    LatLng,
    Listing,
    NearestPlaceResult,
    PlaceCandidate,
    category_label,
    is_category,
)
from rentmap.vendors import google_places, serp_places

logger = logging.getLogger(__name__)

CATEGORY_RADIUS_M = 2000
KEYWORD_RADIUS_M = 5000
MAX_ALTERNATIVES = 3

SEARCH_FAILED_MESSAGE = "Unable to search nearby places"
MISSING_LOCATION_MESSAGE = "Location information is missing"


class ResolveStatus:
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"
    MISSING_LOCATION = "missing_location"


@dataclass
class ResolveOutcome:
    status: str
    category: str
    result: Optional[NearestPlaceResult] = None
    message: Optional[str] = None
    candidates: List[PlaceCandidate] = field(default_factory=list, repr=False)
    free_text: bool = False

    @property
    def found(self) -> bool:
        return self.status == ResolveStatus.FOUND

    @property
    def key(self) -> str:
        return result_key(self.category, self.free_text)


def result_key(query: str, free_text: bool = False) -> str:
    """Storage key for a search; free-text terms never share a key with a category."""
    term = query.strip().lower()
    return f"search:{term}" if free_text else term


def rank_candidates(origin: LatLng, candidates: Sequence[PlaceCandidate]) -> List[Tuple[PlaceCandidate, float]]:
    """Return ``(candidate, miles)`` pairs sorted nearest first."""
    ranked = [(candidate, distance_between(origin, candidate.location)) for candidate in candidates]
    ranked.sort(key=lambda pair: pair[1])
    return ranked


def not_found_message(query: str, free_text: bool = False) -> str:
    if free_text:
        return f'No "{query.strip()}" found nearby'
    return f"No {category_label(query.strip().lower())} found nearby"


class NearestPlaceResolver:
    """Find the closest place of a category (nearby search) or a free-text term (text search)."""

    def __init__(
        self,
        api_key: str,
        provider: str = "google",
        serp_api_key: Optional[str] = None,
        category_radius_m: int = CATEGORY_RADIUS_M,
        keyword_radius_m: int = KEYWORD_RADIUS_M,
        timeout: float = 10,
    ) -> None:
        self.api_key = api_key
        self.provider = provider
        self.serp_api_key = serp_api_key
        self.category_radius_m = category_radius_m
        self.keyword_radius_m = keyword_radius_m
        self.timeout = timeout
        self._results: Dict[Tuple[int, str], NearestPlaceResult] = {}

    def search_candidates(self, origin: LatLng, query: str, *, free_text: bool = False) -> List[PlaceCandidate]:
        """Run the places query. Raises on service failure."""
        term = query.strip()
        category = term.lower()
        if self.provider == "serpapi":
            data = serp_places.local_search(term, origin.lat, origin.lng, self.serp_api_key or "")
            return serp_to_place_candidates(serp_places.extract_items(data), category)

        if free_text:
            payload = google_places.text_search(
                term,
                self.api_key,
                lat=origin.lat,
                lng=origin.lng,
                radius=self.keyword_radius_m,
                timeout=self.timeout,
            )
        else:
            payload = google_places.nearby_search(
                origin.lat,
                origin.lng,
                self.category_radius_m,
                self.api_key,
                place_type=CATEGORY_PLACE_TYPES[category],
                timeout=self.timeout,
            )
        return to_place_candidates(payload.get("results", []), category)

    def resolve(
        self, listing: Listing, query: str, *, free_text: bool = False, keep_previous: bool = False
    ) -> ResolveOutcome:
        """
        Resolve the nearest place for ``query`` around ``listing``.

        Category searches require a known category and raise ``ValueError``
        otherwise. Service failures are reported in the outcome, not raised.
        """
        term = query.strip()
        category = term.lower()
        if not term:
            raise ValueError("A category or search term is required")
        if not free_text and not is_category(category):
            raise ValueError(f"Unknown category: {term!r}")

        key = result_key(term, free_text)
        origin = listing.location
        if origin is None:
            logger.warning("Listing %s has no coordinates; skipping %s search", listing.id, key)
            return ResolveOutcome(
                ResolveStatus.MISSING_LOCATION, category, message=MISSING_LOCATION_MESSAGE, free_text=free_text
            )

        try:
            candidates = self.search_candidates(origin, term, free_text=free_text)
        except (
            google_places.GooglePlacesError,
            serp_places.SerpPlacesError,
            requests.RequestException,
            ValueError,
        ) as exc:
            logger.warning("Places search failed for listing=%s query=%s: %s", listing.id, key, exc)
            return ResolveOutcome(ResolveStatus.ERROR, category, message=SEARCH_FAILED_MESSAGE, free_text=free_text)

        if not candidates:
            logger.info("No %s found near listing %s (%s)", key, listing.id, listing.address)
            if not keep_previous:
                self._results.pop((listing.id, key), None)
            return ResolveOutcome(
                ResolveStatus.NOT_FOUND, category, message=not_found_message(term, free_text), free_text=free_text
            )

        ranked = rank_candidates(origin, candidates)
        nearest, miles = ranked[0]
        result = NearestPlaceResult(
            place=nearest,
            distance_miles=miles,
            alternatives=[candidate for candidate, _ in ranked[:MAX_ALTERNATIVES]],
        )
        self._results[(listing.id, key)] = result
        logger.info(
            "Closest %s for listing %s: %s (%s)", key, listing.id, nearest.name, result.distance_text
        )
        return ResolveOutcome(
            ResolveStatus.FOUND,
            category,
            result=result,
            candidates=[candidate for candidate, _ in ranked],
            free_text=free_text,
        )

    def result_for(self, listing_id: int, query: str, free_text: bool = False) -> Optional[NearestPlaceResult]:
        return self._results.get((listing_id, result_key(query, free_text)))

    def results_for(self, listing_id: int) -> Dict[str, NearestPlaceResult]:
        return {key: result for (owner, key), result in self._results.items() if owner == listing_id}

    def discard_listing(self, listing_id: int) -> None:
        for key in [key for key in self._results if key[0] == listing_id]:
            del self._results[key]
