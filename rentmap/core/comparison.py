"""Map comparison sessions: listing markers, nearby-place searches and routes.

A session keeps the overlays on its canvas consistent with the searches made
for each listing. Re-searching a category for a listing replaces that
listing's markers and routes for the category only, so several place types can
coexist on the map. Only one info window is open at a time.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from rentmap.core.canvas import MapCanvas, Overlay, OverlayKind, marker_color, route_color
from rentmap.core.config import Settings, get_settings
from rentmap.core.events import (
    CategorySelected,
    EventDispatcher,
    InfoWindowClosed,
    KeywordSearched,
    ListingClicked,
    ListingRemoved,
)
from rentmap.core.map_loader import MapLoader
from rentmap.core.recent_searches import RecentSearchStore
from rentmap.core.resolver import (
    MISSING_LOCATION_MESSAGE,
    NearestPlaceResolver,
    ResolveOutcome,
    ResolveStatus,
    result_key,
)
from rentmap.core.route_cache import RouteCache, route_key
from rentmap.models import Listing, NearestPlaceResult, PlaceCandidate, TravelMode, is_category
from rentmap.vendors.backend_api import fetch_maps_key

logger = logging.getLogger(__name__)

MAP_UNAVAILABLE_MESSAGE = "Map is unavailable"


class ListingState:
    IDLE = "idle"
    SEARCHING = "searching"
    FOUND = "found"
    ROUTED = "routed"
    NOT_FOUND = "not_found"
    FAILED = "failed"


class ViewMode:
    LOADING = "loading"
    MAP = "map"
    STATIC = "static"


@dataclass
class CategoryView:
    category: str
    mode: str
    result: Optional[NearestPlaceResult] = None
    message: Optional[str] = None
    distance_text: Optional[str] = None
    duration_text: Optional[str] = None
    route_error: Optional[str] = None
    from_cache: bool = False
    free_text: bool = False

    @property
    def key(self) -> str:
        return result_key(self.category, self.free_text)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "category": self.category,
            "free_text": self.free_text,
            "mode": self.mode,
            "message": self.message,
        }
        if self.result is not None:
            payload["nearest"] = self.result.to_dict()
            payload["alternatives"] = [place.to_dict() for place in self.result.alternatives]
        if self.route_error:
            payload["route"] = {"error": self.route_error}
        elif self.distance_text is not None:
            payload["route"] = {
                "distance": self.distance_text,
                "duration": self.duration_text,
                "cached": self.from_cache,
            }
        return payload


@dataclass
class ListingPanel:
    listing: Listing
    color: Optional[str] = None
    state: str = ListingState.IDLE
    message: Optional[str] = None
    categories: Dict[str, CategoryView] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload = self.listing.summary()
        payload.update(
            {
                "color": self.color,
                "state": self.state,
                "message": self.message,
                "categories": {name: view.to_dict() for name, view in self.categories.items()},
            }
        )
        return payload


@dataclass
class DrawnRoute:
    listing_id: int
    category: str
    destination_id: str
    key: str
    route: Overlay
    label: Overlay


def default_key_provider(settings: Settings) -> Callable[[], Optional[str]]:
    def provide() -> Optional[str]:
        if settings.backend_api_url:
            return fetch_maps_key(settings.backend_api_url, timeout=settings.http_timeout)
        return settings.google_api_key or None

    return provide


def build_route_caches(settings: Settings) -> Dict[str, RouteCache]:
    return {
        mode: RouteCache(
            settings.google_api_key,
            mode=mode,
            max_entries=settings.route_cache_size,
            timeout=settings.http_timeout,
        )
        for mode in TravelMode.ALL
    }


def build_resolver(settings: Settings) -> NearestPlaceResolver:
    return NearestPlaceResolver(
        settings.google_api_key,
        provider=settings.places_provider,
        serp_api_key=settings.serpapi_api_key,
        category_radius_m=settings.category_radius_m,
        keyword_radius_m=settings.keyword_radius_m,
        timeout=settings.http_timeout,
    )


class MapComparison:
    def __init__(
        self,
        listings: Sequence[Listing],
        settings: Optional[Settings] = None,
        *,
        resolver: Optional[NearestPlaceResolver] = None,
        caches: Optional[Dict[str, RouteCache]] = None,
        canvas: Optional[MapCanvas] = None,
        recent_searches: Optional[RecentSearchStore] = None,
        loader: Optional[MapLoader] = None,
        session_id: Optional[str] = None,
    ) -> None:
        if settings is None:
            settings = get_settings()
        self.session_id = session_id or uuid.uuid4().hex
        self.resolver = resolver if resolver is not None else build_resolver(settings)
        self.caches = caches if caches is not None else build_route_caches(settings)
        self.canvas = canvas if canvas is not None else MapCanvas()
        if recent_searches is None:
            recent_searches = RecentSearchStore(settings.recent_searches_max)
        self.recent_searches = recent_searches
        self.loader = loader if loader is not None else MapLoader(default_key_provider(settings))
        self.loader.on_failure(self._on_map_failure)

        self.panels: Dict[int, ListingPanel] = {listing.id: ListingPanel(listing) for listing in listings}
        self.mode = ViewMode.LOADING
        self._listing_markers: Dict[int, Overlay] = {}
        self._place_markers: Dict[tuple, List[Overlay]] = {}
        self._routes: List[DrawnRoute] = []
        self._lock = threading.RLock()

        self.dispatcher = EventDispatcher()
        self.dispatcher.subscribe(ListingClicked, lambda event: self.click_listing(event.listing_id))
        self.dispatcher.subscribe(CategorySelected, lambda event: self.select_category(event.listing_id, event.category))
        self.dispatcher.subscribe(KeywordSearched, lambda event: self.search_keyword(event.listing_id, event.term))
        self.dispatcher.subscribe(ListingRemoved, lambda event: self.remove_listing(event.listing_id))
        self.dispatcher.subscribe(InfoWindowClosed, lambda event: self.close_info_window())

    # ---------- Mounting ----------

    def mount(self) -> str:
        """Draw listing markers once the map is ready; fall back to the static view otherwise."""
        with self._lock:
            if self.mode != ViewMode.LOADING:
                return self.mode
            if not self.loader.when_ready(self._mount_map):
                self.mode = ViewMode.STATIC
            return self.mode

    def _mount_map(self, api_key: str) -> None:
        if self.mode == ViewMode.MAP:
            return
        self.mode = ViewMode.MAP
        for index, panel in enumerate(self.panels.values()):
            listing = panel.listing
            location = listing.location
            if location is None:
                logger.warning("Listing %s lacks coordinates; no marker created", listing.id)
                panel.message = MISSING_LOCATION_MESSAGE
                continue
            panel.color = marker_color(index)
            self._listing_markers[listing.id] = self.canvas.add_marker(
                location, listing.address, OverlayKind.LISTING, owner=(listing.id,), color=panel.color
            )
        logger.info("Mounted map with %d listing markers", len(self._listing_markers))

    def _on_map_failure(self, error: str) -> None:
        logger.warning("Falling back to static comparison view: %s", error)
        self.mode = ViewMode.STATIC

    def _when_mapped(self, listing_id: int, action: Callable[[str], None]) -> None:
        self.mount()
        if not self.loader.when_ready(action):
            self.panels[listing_id].message = MAP_UNAVAILABLE_MESSAGE

    def _panel(self, listing_id: int) -> ListingPanel:
        try:
            return self.panels[listing_id]
        except KeyError:
            raise KeyError(f"listing {listing_id} is not part of this comparison") from None

    # ---------- Interactions ----------

    def click_listing(self, listing_id: int) -> ListingPanel:
        with self._lock:
            panel = self._panel(listing_id)

            def open_window(_key: str) -> None:
                marker = self._listing_markers.get(listing_id)
                if marker is None:
                    panel.message = MISSING_LOCATION_MESSAGE
                    return
                self.canvas.open_info_window(marker, _listing_info(panel.listing))

            self._when_mapped(listing_id, open_window)
            return panel

    def close_info_window(self) -> None:
        with self._lock:
            self.canvas.close_info_window()

    def select_category(self, listing_id: int, category: str) -> ListingPanel:
        """Category button: find the nearest place of ``category`` and walk to it."""
        if not is_category(category):
            raise ValueError(f"Unknown category: {category!r}")
        return self._search(listing_id, category.strip().lower(), TravelMode.WALKING, free_text=False)

    def search_keyword(self, listing_id: int, term: str) -> ListingPanel:
        """Free-text search: find the nearest match for ``term`` and drive to it."""
        if not (term or "").strip():
            raise ValueError("A search term is required")
        with self._lock:
            self._panel(listing_id)
            self.recent_searches.record(term)
            return self._search(listing_id, term.strip(), TravelMode.DRIVING, free_text=True)

    def _search(self, listing_id: int, query: str, mode: str, *, free_text: bool) -> ListingPanel:
        with self._lock:
            panel = self._panel(listing_id)
            self._when_mapped(listing_id, lambda _key: self._run_search(panel, query, mode, free_text))
            return panel

    def _run_search(self, panel: ListingPanel, query: str, mode: str, free_text: bool) -> None:
        listing = panel.listing
        view = CategoryView(category=query.lower(), mode=mode, free_text=free_text)

        self.canvas.close_info_window()
        self._clear_category(listing.id, view.key)

        panel.categories[view.key] = view
        panel.state = ListingState.SEARCHING
        panel.message = None

        outcome = self.resolver.resolve(listing, query, free_text=free_text)
        if not outcome.found:
            self._apply_miss(panel, view, outcome)
            return

        result = outcome.result
        view.result = result
        self._place_markers[(listing.id, view.key)] = [
            self.canvas.add_marker(
                place.location,
                place.name,
                OverlayKind.PLACE,
                owner=(listing.id, view.key, place.place_id),
                color=None if free_text else route_color(view.key),
            )
            for place in result.alternatives
        ]
        panel.state = ListingState.FOUND
        self._draw_route(panel, view, result.place)

    def _apply_miss(self, panel: ListingPanel, view: CategoryView, outcome: ResolveOutcome) -> None:
        view.message = outcome.message
        panel.message = outcome.message
        if outcome.status == ResolveStatus.NOT_FOUND:
            panel.state = ListingState.NOT_FOUND
        else:
            panel.state = ListingState.FAILED

    def _draw_route(self, panel: ListingPanel, view: CategoryView, place: PlaceCandidate) -> None:
        listing = panel.listing
        origin = listing.location
        cache = self.caches[view.mode]
        lookup = cache.get_route(origin, place.location)
        nearest_marker = self._nearest_marker(listing.id, view.key)

        if not lookup.ok:
            view.route_error = lookup.error
            if nearest_marker is not None:
                self.canvas.open_info_window(nearest_marker, _place_info(place, None, None, lookup.error))
            return

        key = route_key(origin, place.location)
        same = [d for d in self._routes if d.listing_id == listing.id and d.category == view.key and d.key == key]
        for drawn in same:
            self._remove_route(drawn)

        entry = lookup.entry
        route = self.canvas.add_route(entry.path, owner=(listing.id, view.key, place.place_id), color=route_color(view.key))
        label = self.canvas.add_label(entry.midpoint, entry.duration_text, owner=(listing.id, view.key, place.place_id))
        self._routes.append(DrawnRoute(listing.id, view.key, place.place_id, key, route, label))

        view.distance_text = entry.distance_text
        view.duration_text = entry.duration_text
        view.from_cache = lookup.from_cache
        panel.state = ListingState.ROUTED
        if nearest_marker is not None:
            self.canvas.open_info_window(
                nearest_marker, _place_info(place, entry.distance_text, entry.duration_text, None)
            )

    def _nearest_marker(self, listing_id: int, category: str) -> Optional[Overlay]:
        markers = self._place_markers.get((listing_id, category)) or []
        return markers[0] if markers else None

    def _remove_route(self, drawn: DrawnRoute) -> None:
        self.canvas.remove(drawn.route)
        self.canvas.remove(drawn.label)
        self._routes.remove(drawn)

    def _clear_category(self, listing_id: int, category: str) -> None:
        markers = self._place_markers.pop((listing_id, category), [])
        for marker in markers:
            self.canvas.remove(marker)
        for drawn in [d for d in self._routes if d.listing_id == listing_id and d.category == category]:
            self._remove_route(drawn)

    def remove_listing(self, listing_id: int) -> None:
        with self._lock:
            self._panel(listing_id)
            for category in [cat for owner, cat in list(self._place_markers) if owner == listing_id]:
                self._clear_category(listing_id, category)
            for drawn in [d for d in self._routes if d.listing_id == listing_id]:
                self._remove_route(drawn)
            self.canvas.remove(self._listing_markers.pop(listing_id, None))
            self.resolver.discard_listing(listing_id)
            del self.panels[listing_id]
            logger.info("Removed listing %s from comparison %s", listing_id, self.session_id)

    def handle(self, event: Any) -> Dict[str, Any]:
        self.dispatcher.dispatch(event)
        return self.render()

    # ---------- Rendering ----------

    def render(self) -> Dict[str, Any]:
        with self._lock:
            payload: Dict[str, Any] = {
                "session_id": self.session_id,
                "mode": self.mode,
                "recent_searches": [item.to_dict() for item in self.recent_searches.recent()],
            }
            if self.mode == ViewMode.STATIC:
                payload["error"] = self.loader.error
                payload["listings"] = [_static_card(panel.listing) for panel in self.panels.values()]
                return payload
            payload["map"] = self.canvas.to_view()
            payload["listings"] = [panel.to_dict() for panel in self.panels.values()]
            return payload


def _listing_info(listing: Listing) -> str:
    parts = [listing.address]
    if listing.price is not None:
        parts.append(f"${listing.price:,}/mo")
    if listing.bedrooms is not None:
        parts.append(f"{listing.bedrooms} bd")
    if listing.bathrooms is not None:
        parts.append(f"{listing.bathrooms:g} ba")
    return " · ".join(parts)


def _place_info(
    place: PlaceCandidate, distance: Optional[str], duration: Optional[str], error: Optional[str]
) -> str:
    lines = [place.name]
    if place.address:
        lines.append(place.address)
    if error:
        lines.append(error)
    else:
        lines.append(f"Distance: {distance}")
        lines.append(f"Travel time: {duration}")
    return "\n".join(lines)


def _static_card(listing: Listing) -> Dict[str, Any]:
    card = listing.summary()
    if listing.location is None:
        card["message"] = "No location data available"
    return card


def render_comparison(listings: Sequence[Listing], settings: Optional[Settings] = None, **kwargs: Any) -> Dict[str, Any]:
    """Mount a comparison for ``listings`` and return its view (map or static fallback)."""
    session = MapComparison(listings, settings, **kwargs)
    session.mount()
    return session.render()
