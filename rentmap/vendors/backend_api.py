"""Client for the rental backend's map key endpoint."""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()


def fetch_maps_key(base_url: str, timeout: float = 10) -> Optional[str]:
    """Return the browser maps key served by ``GET {base_url}/api/maps-key``, or None."""
    response = _SESSION.get(f"{base_url.rstrip('/')}/api/maps-key", timeout=timeout)
    response.raise_for_status()
    key = (response.json() or {}).get("key")
    if not key:
        logger.warning("Backend at %s returned no maps key", base_url)
        return None
    return key
