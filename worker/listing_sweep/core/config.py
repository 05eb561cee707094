"""Application configuration helpers.

Everything is read from the environment (optionally via a local `.env`). Query
credentials are billable-ish secrets scraped from the upstream site, so they are
never hardcoded either.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

RESULTS_LIMIT = 500
PAGES_LIMIT = 20


class ConfigError(RuntimeError):
    """Raised when a configuration value cannot be parsed."""


@dataclass(frozen=True)
class Settings:
    listing_base_url: str = "https://www.zillow.com"
    query_id: str = ""
    client_version: str = ""
    database_url: str = ""
    report_api_url: str = ""
    output_path: str = "data/listings.jsonl"
    state_path: str = "data/state.json"
    max_items: Optional[int] = None
    max_level: int = 5
    split_threshold: int = RESULTS_LIMIT
    pages_limit: int = PAGES_LIMIT
    max_retries: int = 5
    worker_concurrency: int = 10
    worker_port: int = 9000


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    listing_base_url = os.getenv("LISTING_BASE_URL", "https://www.zillow.com").rstrip("/")
    query_id = os.getenv("LISTING_QUERY_ID", "")
    client_version = os.getenv("LISTING_CLIENT_VERSION", "")
    database_url = os.getenv("DATABASE_URL", "")
    report_api_url = os.getenv("REPORT_API_URL", "")
    max_items = _get_int_env("MAX_ITEMS", 0)

    if not database_url:
        logger.warning("DATABASE_URL is not set; listings will be written to %s.", os.getenv("OUTPUT_PATH", "data/listings.jsonl"))
    if not report_api_url:
        logger.warning("REPORT_API_URL is not configured; address match reports will be skipped.")
    if not query_id or not client_version:
        logger.warning("LISTING_QUERY_ID/LISTING_CLIENT_VERSION missing; entity queries will fail over to detail pages.")

    return Settings(
        listing_base_url=listing_base_url,
        query_id=query_id,
        client_version=client_version,
        database_url=database_url,
        report_api_url=report_api_url,
        output_path=os.getenv("OUTPUT_PATH", "data/listings.jsonl"),
        state_path=os.getenv("STATE_PATH", "data/state.json"),
        max_items=max_items if max_items > 0 else None,
        max_level=_get_int_env("MAX_LEVEL", 5),
        split_threshold=_get_int_env("SPLIT_THRESHOLD", RESULTS_LIMIT),
        pages_limit=_get_int_env("PAGES_LIMIT", PAGES_LIMIT),
        max_retries=_get_int_env("MAX_RETRIES", 5),
        worker_concurrency=_get_int_env("WORKER_CONCURRENCY", 10),
        worker_port=_get_int_env("WORKER_PORT", 9000),
    )
