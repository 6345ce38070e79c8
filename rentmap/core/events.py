"""Typed UI events and a small dispatcher."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Type

from rentmap.models import is_category

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ListingClicked:
    listing_id: int


@dataclass(frozen=True)
class CategorySelected:
    listing_id: int
    category: str


@dataclass(frozen=True)
class KeywordSearched:
    listing_id: int
    term: str


@dataclass(frozen=True)
class ListingRemoved:
    listing_id: int


@dataclass(frozen=True)
class InfoWindowClosed:
    pass


_EVENT_TYPES: Dict[str, Type[Any]] = {
    "listing_click": ListingClicked,
    "category": CategorySelected,
    "search": KeywordSearched,
    "remove_listing": ListingRemoved,
    "close_info_window": InfoWindowClosed,
}


def _listing_id(payload: Mapping[str, Any]) -> int:
    raw = payload.get("listing_id")
    if isinstance(raw, bool):
        raise ValueError("listing_id must be an integer")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError("listing_id must be an integer") from exc


def _text(payload: Mapping[str, Any], field_name: str) -> str:
    value = str(payload.get(field_name) or "").strip()
    if not value:
        raise ValueError(f"{field_name} is required")
    return value


def event_from_payload(payload: Mapping[str, Any]) -> Any:
    """Parse a JSON action such as ``{"type": "category", "listing_id": 1, "category": "gym"}``."""
    kind = payload.get("type")
    if kind not in _EVENT_TYPES:
        raise ValueError(f"unknown event type: {kind!r}")
    if kind == "close_info_window":
        return InfoWindowClosed()
    listing_id = _listing_id(payload)
    if kind == "category":
        category = _text(payload, "category").lower()
        if not is_category(category):
            raise ValueError(f"unknown category: {category!r}")
        return CategorySelected(listing_id, category)
    if kind == "search":
        return KeywordSearched(listing_id, _text(payload, "term"))
    return _EVENT_TYPES[kind](listing_id)


class EventDispatcher:
    def __init__(self) -> None:
        self._handlers: Dict[Type[Any], List[Callable[[Any], Any]]] = defaultdict(list)

    def subscribe(self, event_type: Type[Any], handler: Callable[[Any], Any]) -> None:
        self._handlers[event_type].append(handler)

    def dispatch(self, event: Any) -> List[Any]:
        handlers = self._handlers.get(type(event), [])
        if not handlers:
            logger.debug("No handlers for %s", type(event).__name__)
        return [handler(event) for handler in handlers]
