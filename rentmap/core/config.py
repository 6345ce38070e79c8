"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when a configuration value cannot be parsed."""


@dataclass(frozen=True)
class Settings:
    google_api_key: str
    database_url: str
    worker_port: int = 9000
    places_provider: str = "google"
    serpapi_api_key: Optional[str] = None
    backend_api_url: Optional[str] = None
    route_cache_size: int = 256
    recent_searches_max: int = 10
    category_radius_m: int = 2000
    keyword_radius_m: int = 5000
    http_timeout: float = 10.0


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    google_api_key = os.getenv("GOOGLE_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    places_provider = os.getenv("PLACES_PROVIDER", "google").strip().lower() or "google"
    serpapi_api_key = os.getenv("SERPAPI_API_KEY") or None
    backend_api_url_raw = os.getenv("BACKEND_API_URL")
    backend_api_url = backend_api_url_raw.strip().rstrip("/") if backend_api_url_raw else None

    if places_provider not in {"google", "serpapi"}:
        raise ConfigError(f"PLACES_PROVIDER must be 'google' or 'serpapi', got {places_provider!r}")

    if not google_api_key:
        logger.warning("GOOGLE_API_KEY is not configured; map views will fall back to the static list.")
    if not database_url:
        logger.warning("DATABASE_URL is not set; listings can only be supplied inline.")
    if places_provider == "serpapi" and not serpapi_api_key:
        logger.warning("PLACES_PROVIDER=serpapi but SERPAPI_API_KEY is missing; place searches will fail.")

    return Settings(
        google_api_key=google_api_key,
        database_url=database_url,
        worker_port=_int_env("WORKER_PORT", 9000),
        places_provider=places_provider,
        serpapi_api_key=serpapi_api_key,
        backend_api_url=backend_api_url,
        route_cache_size=_int_env("ROUTE_CACHE_SIZE", 256),
        recent_searches_max=_int_env("RECENT_SEARCHES_MAX", 10),
        category_radius_m=_int_env("CATEGORY_RADIUS_M", 2000),
        keyword_radius_m=_int_env("KEYWORD_RADIUS_M", 5000),
        http_timeout=_float_env("HTTP_TIMEOUT", 10.0),
    )
