"""CLI job to resolve the nearest place for a listing and fetch the route to it."""

import argparse
import logging
from typing import Optional

from rentmap.core.comparison import build_resolver
from rentmap.core.config import ConfigError, get_settings
from rentmap.core.db import fetch_listings
from rentmap.core.route_cache import RouteCache
from rentmap.models import CATEGORY_PLACE_TYPES, Listing, TravelMode, is_category

logger = logging.getLogger(__name__)


def run_nearest_place_job(
    *,
    query: str,
    free_text: bool = False,
    listing_id: Optional[int] = None,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    mode: Optional[str] = None,
) -> dict:
    settings = get_settings()
    if not settings.google_api_key:
        raise ConfigError("GOOGLE_API_KEY is required")

    if not query or not query.strip():
        raise ValueError("A category or keyword is required")

    if listing_id is not None:
        listings = fetch_listings([listing_id])
        if not listings:
            raise ValueError(f"Listing {listing_id} not found")
        listing = listings[0]
    elif lat is not None and lng is not None:
        listing = Listing(id=0, address=f"{lat},{lng}", latitude=lat, longitude=lng)
    else:
        raise ValueError("Either --listing-id or both --lat and --lng are required")

    if not free_text and not is_category(query):
        raise ValueError(f"Unknown category: {query}")

    travel_mode = (mode or (TravelMode.DRIVING if free_text else TravelMode.WALKING)).upper()
    logger.info("Resolving nearest %s for listing %s (%s)", query, listing.id, travel_mode)

    outcome = build_resolver(settings).resolve(listing, query, free_text=free_text)
    summary = {
        "listing_id": listing.id,
        "query": query,
        "free_text": free_text,
        "status": outcome.status,
        "message": outcome.message,
    }
    if not outcome.found:
        logger.info("No route requested: %s", outcome.message)
        return summary

    summary["nearest"] = outcome.result.to_dict()
    cache = RouteCache(settings.google_api_key, mode=travel_mode, timeout=settings.http_timeout)
    lookup = cache.get_route(listing.location, outcome.result.place.location)
    if lookup.ok:
        summary["route"] = lookup.entry.to_dict()
    else:
        summary["route"] = {"error": lookup.error}
    logger.info("Completed nearest place lookup: %s", summary.get("route"))
    return summary


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find the nearest place of a category or keyword for a listing")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--category", dest="category", choices=sorted(CATEGORY_PLACE_TYPES), help="Place category")
    target.add_argument("--keyword", dest="keyword", help="Free-text search term")
    parser.add_argument("--listing-id", dest="listing_id", type=int, help="Listing id in the property store")
    parser.add_argument("--lat", dest="lat", type=float, help="Latitude when no listing id is given")
    parser.add_argument("--lng", dest="lng", type=float, help="Longitude when no listing id is given")
    parser.add_argument("--mode", dest="mode", choices=[m.lower() for m in TravelMode.ALL], help="Travel mode")
    return parser


def _print_summary(summary: dict) -> None:
    nearest = summary.get("nearest")
    if not nearest:
        print(summary.get("message") or "No place found")
        return
    print(f"{nearest['name']} ({nearest['distance']})")
    route = summary.get("route") or {}
    if route.get("error"):
        print(route["error"])
    else:
        print(f"{route.get('distance')} / {route.get('duration')}")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    try:
        summary = run_nearest_place_job(
            query=args.keyword or args.category,
            free_text=args.keyword is not None,
            listing_id=args.listing_id,
            lat=args.lat,
            lng=args.lng,
            mode=args.mode,
        )
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc
    except ValueError as exc:
        parser.error(str(exc))
    _print_summary(summary)


if __name__ == "__main__":
    main()
