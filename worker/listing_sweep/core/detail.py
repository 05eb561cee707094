"""Handler for single-entity detail pages (the extraction fallback path)."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from listing_sweep.core.dedup import RunContext, is_valid_entity_id
from listing_sweep.core.errors import EntityNotFoundError, MissingPageDataError
from listing_sweep.core.extraction import OutputSink
from listing_sweep.core.models import JobDescriptor
from listing_sweep.core.planners import Enqueue, detail_job, detail_url
from listing_sweep.core.session import Session

logger = logging.getLogger(__name__)


def _next_data(soup: BeautifulSoup) -> Dict[str, Any]:
    script = soup.find("script", id="__NEXT_DATA__")
    if script is None or not (script.string or "").strip():
        raise MissingPageDataError("Missing __NEXT_DATA__ document")
    try:
        return json.loads(script.string)
    except ValueError as exc:
        raise MissingPageDataError(f"__NEXT_DATA__ is not valid JSON: {exc}") from exc


def _render_query_properties(soup: BeautifulSoup) -> Iterator[Optional[Dict[str, Any]]]:
    """Yield the `property` of the first RenderQuery entry in each apiCache script.

    Yields None for a script that could not be decoded, so callers can tell
    "no scripts" from "no usable scripts".
    """
    for script in soup.find_all("script"):
        text = script.string or ""
        if "RenderQuery" not in text or "apiCache" not in text:
            continue
        try:
            api_cache = json.loads(json.loads(text)["apiCache"])
        except (KeyError, TypeError, ValueError) as exc:
            logger.debug("Unreadable apiCache script: %s", exc)
            yield None
            continue
        found = None
        for key, value in api_cache.items():
            if "RenderQuery" in key and isinstance(value, dict) and value.get("property"):
                found = value["property"]
                break
        yield found


class DetailPageHandler:
    def __init__(self, context: RunContext, session: Session, output_sink: OutputSink, enqueue: Enqueue) -> None:
        self.context = context
        self.session = session
        self.output_sink = output_sink
        self.enqueue = enqueue

    def handle_detail_page(self, html: str, job: JobDescriptor, url: Optional[str] = None) -> bool:
        """Extract the entity on a detail page; returns True when it reached the output sink."""
        if self.context.is_over_items():
            return False

        url = url or job.target
        entity_id = job.payload.get("entity_id")
        soup = BeautifulSoup(html or "", "html.parser")

        if urlparse(url).path.startswith("/b/") or not is_valid_entity_id(entity_id):
            return self._reroute_building_page(soup, url)

        seen_script = False
        for prop in _render_query_properties(soup):
            seen_script = True
            if prop is None:
                continue
            return self._output(prop, str(entity_id), url)

        if not seen_script:
            self.session.retire()
            raise MissingPageDataError("Failed to load preloaded data scripts")
        raise MissingPageDataError("Failed to load preloaded data from page")

    def _output(self, prop: Dict[str, Any], entity_id: str, url: str) -> bool:
        dedup = self.context.dedup
        if not dedup.check_and_insert(entity_id):
            logger.debug("Entity %s already extracted or item cap reached", entity_id)
            return False
        try:
            self.output_sink(prop, {"entity_id": entity_id, "detail_url": url})
        except Exception:
            dedup.release(entity_id)
            raise
        logger.info("Extracted data from %s", url)
        return True

    def _reroute_building_page(self, soup: BeautifulSoup, url: str) -> bool:
        data = _next_data(soup)
        building = ((data.get("props") or {}).get("initialData") or {}).get("building") or {}
        entity_id = building.get("zpid")
        if not is_valid_entity_id(entity_id):
            raise EntityNotFoundError(f"Entity id not found in page {url}")

        canonical = detail_url(self.context.base_url, str(entity_id))
        already_present = self.enqueue(detail_job(str(entity_id), canonical, priority=True))
        if not already_present:
            logger.info("Re-enqueueing %s", canonical)
        return False
