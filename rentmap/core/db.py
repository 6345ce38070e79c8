"""Database helpers for reading listings from the property store."""

import logging
from contextlib import contextmanager
from typing import Iterable, List, Optional

from psycopg2 import extras, pool

from rentmap.core.config import get_settings
from rentmap.etl.transform import to_listing
from rentmap.models import Listing

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


_SELECT_LISTINGS = """
SELECT
    id,
    title,
    address,
    neighborhood,
    rent,
    bedrooms,
    bathrooms,
    square_feet,
    latitude,
    longitude
FROM properties
WHERE id = ANY(%(ids)s)
  AND is_published
ORDER BY id;
"""


def fetch_listings(ids: Iterable[int]) -> List[Listing]:
    """Load published listings by id, preserving the requested order."""
    wanted = [int(listing_id) for listing_id in ids]
    if not wanted:
        return []

    with get_connection() as conn:
        with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
            cur.execute(_SELECT_LISTINGS, {"ids": wanted})
            rows = cur.fetchall()

    by_id = {}
    for row in rows:
        listing = to_listing(row)
        by_id[listing.id] = listing

    missing = [listing_id for listing_id in wanted if listing_id not in by_id]
    if missing:
        logger.warning("Listings not found or unpublished: %s", missing)
    logger.debug("Fetched %d listings", len(by_id))
    return [by_id[listing_id] for listing_id in wanted if listing_id in by_id]
