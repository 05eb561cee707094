"""HTTP client for the upstream listing site: page fetches and per-entity queries."""

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_SESSION.headers.update(
    {
        "User-Agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36",
        "Accept-Language": "en-US,en;q=0.9",
    }
)
REQUEST_TIMEOUT = 30
OPERATION_NAME = "ForSaleDoubleScrollFullRenderQuery"


class ListingApiError(RuntimeError):
    """Raised when the upstream returns an unusable response."""


class PageLoadError(ListingApiError):
    """Raised when a page cannot be fetched at all."""


def fetch_page(url: str) -> str:
    """Return the HTML of `url`; network and HTTP failures raise PageLoadError."""
    try:
        response = _SESSION.get(url, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.warning("Failed to load %s: %s", url, exc)
        raise PageLoadError(f"Failed to load {url}: {exc}") from exc
    return response.text


def query_entity(
    entity_id: str,
    query_id: str,
    client_version: str,
    base_url: str = "https://www.zillow.com",
) -> Dict[str, Any]:
    """Run the per-entity GraphQL query and return its `property` payload."""
    if not query_id or not client_version:
        raise ListingApiError("query credentials are not configured")

    params = {"zpid": entity_id}
    body = {
        "operationName": OPERATION_NAME,
        "variables": {"zpid": int(entity_id), "contactFormRenderParameter": {"zpid": int(entity_id), "platform": "desktop", "isDoubleScroll": True}},
        "clientVersion": client_version,
        "queryId": query_id,
    }
    response = _SESSION.post(f"{base_url.rstrip('/')}/graphql/", params=params, json=body, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    try:
        payload = response.json()
    except ValueError as exc:
        raise ListingApiError(f"Entity query for {entity_id} returned non-JSON body") from exc

    prop: Optional[Dict[str, Any]] = ((payload or {}).get("data") or {}).get("property")
    if not prop:
        logger.error("query_entity failed for %s: errors=%s", entity_id, (payload or {}).get("errors"))
        raise ListingApiError(f"No property data returned for {entity_id}")
    return prop
