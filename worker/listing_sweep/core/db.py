"""Database helpers for persisting extracted listings."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

from psycopg2 import extras, pool

from listing_sweep.core.config import get_settings

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


def _prepare_params(row: Dict[str, Any]) -> Dict[str, Any]:
    run_id = row.get("run_id")
    if run_id is not None:
        run_id = str(run_id)

    return {
        "zpid": row.get("zpid"),
        "address": row.get("address"),
        "city": row.get("city"),
        "price": row.get("price"),
        "zestimate": row.get("zestimate"),
        "bedrooms": row.get("bedrooms"),
        "bathrooms": row.get("bathrooms"),
        "living_area": row.get("living_area"),
        "home_type": row.get("home_type"),
        "home_status": row.get("home_status"),
        "detail_url": row.get("detail_url"),
        "lng": row.get("lng"),
        "lat": row.get("lat"),
        "raw": extras.Json(row.get("raw") or {}),
        "run_id": run_id,
        "scraped_at": row.get("scraped_at"),
    }


_UPSERT_LISTING = """
INSERT INTO listings (
    zpid,
    address,
    city,
    price,
    zestimate,
    bedrooms,
    bathrooms,
    living_area,
    home_type,
    home_status,
    detail_url,
    location,
    raw,
    run_id,
    scraped_at,
    updated_at
) VALUES (
    %(zpid)s,
    %(address)s,
    %(city)s,
    %(price)s,
    %(zestimate)s,
    %(bedrooms)s,
    %(bathrooms)s,
    %(living_area)s,
    %(home_type)s,
    %(home_status)s,
    %(detail_url)s,
    CASE WHEN %(lng)s IS NOT NULL AND %(lat)s IS NOT NULL THEN
        ST_SetSRID(ST_MakePoint(%(lng)s, %(lat)s), 4326)::geography
    ELSE NULL END,
    %(raw)s,
    %(run_id)s,
    %(scraped_at)s,
    NOW()
)
ON CONFLICT (zpid) DO UPDATE SET
    address = EXCLUDED.address,
    city = EXCLUDED.city,
    price = EXCLUDED.price,
    zestimate = EXCLUDED.zestimate,
    bedrooms = EXCLUDED.bedrooms,
    bathrooms = EXCLUDED.bathrooms,
    living_area = EXCLUDED.living_area,
    home_type = EXCLUDED.home_type,
    home_status = EXCLUDED.home_status,
    detail_url = EXCLUDED.detail_url,
    location = EXCLUDED.location,
    raw = EXCLUDED.raw,
    run_id = COALESCE(EXCLUDED.run_id, listings.run_id),
    scraped_at = COALESCE(EXCLUDED.scraped_at, listings.scraped_at),
    updated_at = NOW();
"""


def upsert_listing(row: Dict[str, Any]) -> None:
    """Persist a listing dictionary, performing an idempotent upsert on zpid."""
    params = _prepare_params(row)
    if not params["zpid"]:
        raise ValueError("zpid is required for upsert")

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_UPSERT_LISTING, params)
        conn.commit()
        logger.debug("Upserted listing %s", params["zpid"])
