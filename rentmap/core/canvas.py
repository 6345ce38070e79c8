"""In-process map canvas that owns every overlay drawn for a comparison view.

Overlays are created through the canvas and must be removed through it;
dropping a handle without ``remove()`` leaves the overlay live in the view.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from rentmap.models import LatLng

logger = logging.getLogger(__name__)

MARKER_COLORS = ("red", "blue", "green", "purple", "orange", "pink", "yellow", "cyan")
DEFAULT_ROUTE_COLOR = "#4285F4"
ROUTE_COLORS = {
    "restaurant": "#e53935",
    "grocery": "#43a047",
    "gym": "#fb8c00",
    "school": "#8e24aa",
    "park": "#fdd835",
}
DEFAULT_CENTER = LatLng(40.7128, -74.0060)


def marker_color(index: int) -> str:
    return MARKER_COLORS[index % len(MARKER_COLORS)]


def route_color(category: str) -> str:
    return ROUTE_COLORS.get(category, DEFAULT_ROUTE_COLOR)


class OverlayKind:
    LISTING = "listing"
    PLACE = "place"
    ROUTE = "route"
    LABEL = "label"
    INFO_WINDOW = "info_window"


@dataclass(eq=False)
class Overlay:
    id: int
    kind: str
    owner: Tuple[Any, ...]
    position: Optional[LatLng] = None
    path: List[LatLng] = field(default_factory=list)
    title: Optional[str] = None
    color: Optional[str] = None
    content: Optional[str] = None
    anchor: Optional[int] = None
    removed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id, "kind": self.kind}
        if self.position is not None:
            payload["position"] = self.position.to_dict()
        if self.path:
            payload["path"] = [point.to_dict() for point in self.path]
        for name in ("title", "color", "content", "anchor"):
            value = getattr(self, name)
            if value is not None:
                payload[name] = value
        return payload


class MapCanvas:
    def __init__(self, center: LatLng = DEFAULT_CENTER, zoom: int = 12) -> None:
        self.center = center
        self.zoom = zoom
        self._ids = itertools.count(1)
        self._live: Dict[int, Overlay] = {}
        self.active_info_window: Optional[Overlay] = None

    def _add(self, overlay: Overlay) -> Overlay:
        self._live[overlay.id] = overlay
        return overlay

    def add_marker(
        self, position: LatLng, title: str, kind: str, owner: Tuple[Any, ...], color: Optional[str] = None
    ) -> Overlay:
        return self._add(Overlay(next(self._ids), kind, owner, position=position, title=title, color=color))

    def add_route(self, path: Iterable[LatLng], owner: Tuple[Any, ...], color: str = DEFAULT_ROUTE_COLOR) -> Overlay:
        return self._add(Overlay(next(self._ids), OverlayKind.ROUTE, owner, path=list(path), color=color))

    def add_label(self, position: LatLng, text: str, owner: Tuple[Any, ...]) -> Overlay:
        return self._add(Overlay(next(self._ids), OverlayKind.LABEL, owner, position=position, content=text))

    def open_info_window(self, anchor: Overlay, content: str) -> Overlay:
        """Open an info window on ``anchor``; the previously active one is closed first."""
        self.close_info_window()
        window = self._add(
            Overlay(
                next(self._ids),
                OverlayKind.INFO_WINDOW,
                anchor.owner,
                position=anchor.position,
                content=content,
                anchor=anchor.id,
            )
        )
        self.active_info_window = window
        return window

    def close_info_window(self) -> None:
        if self.active_info_window is not None:
            self.remove(self.active_info_window)
            self.active_info_window = None

    def remove(self, overlay: Optional[Overlay]) -> None:
        if overlay is None or overlay.removed:
            return
        overlay.removed = True
        self._live.pop(overlay.id, None)
        if self.active_info_window is overlay:
            self.active_info_window = None
        elif self.active_info_window is not None and self.active_info_window.anchor == overlay.id:
            self.remove(self.active_info_window)

    def overlays(self, kind: Optional[str] = None) -> List[Overlay]:
        return [overlay for overlay in self._live.values() if kind is None or overlay.kind == kind]

    def bounds(self) -> Optional[Dict[str, float]]:
        points = [o.position for o in self._live.values() if o.kind == OverlayKind.LISTING and o.position]
        if not points:
            return None
        return {
            "north": max(p.lat for p in points),
            "south": min(p.lat for p in points),
            "east": max(p.lng for p in points),
            "west": min(p.lng for p in points),
        }

    def to_view(self) -> Dict[str, Any]:
        listing_markers = self.overlays(OverlayKind.LISTING)
        zoom = 15 if len(listing_markers) == 1 else self.zoom
        return {
            "center": self.center.to_dict(),
            "zoom": zoom,
            "bounds": self.bounds(),
            "markers": [o.to_dict() for o in self.overlays() if o.kind in (OverlayKind.LISTING, OverlayKind.PLACE)],
            "routes": [o.to_dict() for o in self.overlays(OverlayKind.ROUTE)],
            "labels": [o.to_dict() for o in self.overlays(OverlayKind.LABEL)],
            "info_window": self.active_info_window.to_dict() if self.active_info_window else None,
        }
