"""Utilities for transforming extracted listing payloads into database rows."""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


def format_address(address: Any) -> Optional[str]:
    if isinstance(address, str):
        return address.strip() or None
    if not isinstance(address, dict):
        return None
    street = address.get("streetAddress")
    city = address.get("city")
    state = address.get("state")
    zipcode = address.get("zipcode")
    tail = " ".join(filter(None, [state, zipcode]))
    parts = [p for p in (street, city, tail) if p]
    return ", ".join(parts) or None


def _to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        digits = "".join(ch for ch in value if ch.isdigit() or ch == ".")
        if digits:
            try:
                return float(digits)
            except ValueError:
                return None
    return None


def to_listing_row(payload: Dict[str, Any], entity_id: str, detail_url: Optional[str] = None) -> Dict[str, Any]:
    zpid = payload.get("zpid") or entity_id
    url = payload.get("hdpUrl") or payload.get("url") or detail_url

    return {
        "zpid": str(zpid) if zpid is not None else None,
        "address": format_address(payload.get("address")),
        "city": (payload.get("address") or {}).get("city") if isinstance(payload.get("address"), dict) else payload.get("city"),
        "price": _to_number(payload.get("price")),
        "zestimate": _to_number(payload.get("zestimate")),
        "bedrooms": _to_number(payload.get("bedrooms")),
        "bathrooms": _to_number(payload.get("bathrooms")),
        "living_area": _to_number(payload.get("livingArea")),
        "home_type": payload.get("homeType"),
        "home_status": payload.get("homeStatus"),
        "detail_url": url,
        "lng": payload.get("longitude"),
        "lat": payload.get("latitude"),
        "raw": payload,
    }
