"""Extract result records and total counts from a search page's embedded store."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Union

from bs4 import BeautifulSoup

from listing_sweep.core.dedup import RunContext
from listing_sweep.core.errors import MissingPageDataError
from listing_sweep.core.models import CategoryExtract, QueryState, ResultRecord

logger = logging.getLogger(__name__)

CATEGORY_KEYS = ("cat1", "cat2")
SEARCH_STORE_KEY = "mobileSearchPageStore"


def load_page_store(html: str) -> Dict[str, Any]:
    """Return the JSON search store embedded in a search page.

    The store sits in a `<script data-zrr-shared-data-key=...>` tag, wrapped in
    an HTML comment (`<!--{...}-->`).
    """
    soup = BeautifulSoup(html or "", "html.parser")
    script = soup.find("script", attrs={"data-zrr-shared-data-key": SEARCH_STORE_KEY})
    if script is None:
        raise MissingPageDataError("Search page store script not found")

    text = (script.string or script.get_text() or "").strip()
    if text.startswith("<!--"):
        text = text[4:]
    if text.endswith("-->"):
        text = text[:-3]
    if not text:
        raise MissingPageDataError("Search page store script is empty")

    try:
        store = json.loads(text)
    except ValueError as exc:
        raise MissingPageDataError(f"Search page store is not valid JSON: {exc}") from exc
    if not isinstance(store, dict):
        raise MissingPageDataError("Search page store is not an object")
    return store


def _records(items: Any) -> List[ResultRecord]:
    if not isinstance(items, list):
        return []
    return [ResultRecord.from_raw(item) for item in items if isinstance(item, dict)]


def _total_count(category: Dict[str, Any]) -> int:
    for container in (category.get("searchList"), category.get("searchResults")):
        if isinstance(container, dict) and container.get("totalResultCount") is not None:
            try:
                return max(int(container["totalResultCount"]), 0)
            except (TypeError, ValueError):
                logger.debug("Unparseable totalResultCount: %r", container["totalResultCount"])
    return 0


def _page_query_state(store: Dict[str, Any], page_number: int) -> QueryState:
    raw = store.get("queryState") or store.get("searchQueryState")
    if not isinstance(raw, dict):
        raise MissingPageDataError("Search page store has no queryState")
    try:
        state = QueryState.from_search_query_state(raw)
    except (KeyError, TypeError, ValueError) as exc:
        raise MissingPageDataError(f"Search page queryState is malformed: {exc}") from exc
    return state.with_page(page_number) if page_number > 1 else state


def extract_query_states(
    store: Union[str, Dict[str, Any]],
    page_number: int,
    split_level: int,
    context: RunContext,
) -> Dict[str, CategoryExtract]:
    """Build one `CategoryExtract` per category that carries a result set.

    The summed total of an un-split first page feeds the run's
    `MaxObservedCount`.
    """
    if isinstance(store, str):
        store = load_page_store(store)

    state = _page_query_state(store, page_number)
    extracts: Dict[str, CategoryExtract] = {}

    for key in CATEGORY_KEYS:
        category = store.get(key)
        if not isinstance(category, dict):
            continue
        search_results = category.get("searchResults")
        if not isinstance(search_results, dict):
            continue
        records = _records(search_results.get("mapResults")) + _records(search_results.get("listResults"))
        extracts[key] = CategoryExtract(state=state, total_count=_total_count(category), results=records)

    total = sum_total_count(extracts)
    if page_number == 1 and split_level == 0:
        context.max_observed.observe(total)
    if total > 0:
        logger.info("Found %s results on page %s.", total, page_number)

    return extracts


def sum_total_count(extracts: Dict[str, CategoryExtract]) -> int:
    return sum(extract.total_count for extract in extracts.values())


def merge_results(extracts: Dict[str, CategoryExtract]) -> List[ResultRecord]:
    """Records in category order: primary map, primary list, secondary map, secondary list."""
    merged: List[ResultRecord] = []
    for key in CATEGORY_KEYS:
        extract = extracts.get(key)
        if extract is not None:
            merged.extend(extract.results)
    return merged
