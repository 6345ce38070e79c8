"""Core data models shared by the resolver, the route cache and the map views."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from rentmap.core.geo import format_miles

CATEGORY_PLACE_TYPES: Dict[str, str] = {
    "grocery": "supermarket",
    "gym": "gym",
    "restaurant": "restaurant",
    "school": "school",
    "park": "park",
    "cafe": "cafe",
}


def is_category(value: str) -> bool:
    return value.strip().lower() in CATEGORY_PLACE_TYPES


def category_label(category: str) -> str:
    return category.replace("_", " ")


class TravelMode:
    WALKING = "WALKING"
    DRIVING = "DRIVING"

    ALL = (WALKING, DRIVING)


@dataclass(frozen=True, slots=True)
class LatLng:
    lat: float
    lng: float

    def as_param(self) -> str:
        return f"{self.lat},{self.lng}"

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(slots=True)
class Listing:
    """A rental property as fetched for one page view."""

    id: int
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    price: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    square_feet: Optional[int] = None
    title: Optional[str] = None
    neighborhood: Optional[str] = None

    @property
    def location(self) -> Optional[LatLng]:
        if self.latitude is None or self.longitude is None:
            return None
        return LatLng(self.latitude, self.longitude)

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "address": self.address,
            "title": self.title,
            "neighborhood": self.neighborhood,
            "price": self.price,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "square_feet": self.square_feet,
            "location": self.location.to_dict() if self.location else None,
        }


@dataclass(slots=True)
class PlaceCandidate:
    """A point of interest returned by a places query. Never persisted."""

    name: str
    location: LatLng
    place_id: str
    category: str
    address: Optional[str] = None
    rating: Optional[float] = None
    raw: Optional[Dict[str, Any]] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "lat": self.location.lat,
            "lng": self.location.lng,
            "place_id": self.place_id,
            "category": self.category,
            "address": self.address,
            "rating": self.rating,
        }


@dataclass(slots=True)
class NearestPlaceResult:
    place: PlaceCandidate
    distance_miles: float
    alternatives: List[PlaceCandidate] = field(default_factory=list)

    @property
    def distance_text(self) -> str:
        return format_miles(self.distance_miles)

    def to_dict(self) -> Dict[str, Any]:
        payload = self.place.to_dict()
        payload["distance_miles"] = self.distance_miles
        payload["distance"] = self.distance_text
        return payload


@dataclass(slots=True)
class RouteCacheEntry:
    key: str
    mode: str
    response: Dict[str, Any] = field(repr=False)
    distance_text: str
    duration_text: str
    path: List[LatLng] = field(default_factory=list, repr=False)
    midpoint: Optional[LatLng] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "mode": self.mode,
            "distance": self.distance_text,
            "duration": self.duration_text,
            "route": [point.to_dict() for point in self.path],
            "midpoint": self.midpoint.to_dict() if self.midpoint else None,
        }
