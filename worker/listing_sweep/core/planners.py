"""Follow-up planning for capped search pages: map splits and pagination."""

from __future__ import annotations

import hashlib
import json
import logging
import math
from typing import Any, Callable, List
from urllib.parse import urlencode

from listing_sweep.core.dedup import RunContext
from listing_sweep.core.models import LABEL_DETAIL, LABEL_QUERY, JobDescriptor, QueryState

logger = logging.getLogger(__name__)

LISTINGS_PER_PAGE = 40

Enqueue = Callable[[JobDescriptor], bool]


def quick_hash(data: Any) -> str:
    """Deterministic identity for a JSON-serializable value."""
    serialized = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha1(serialized.encode("utf-8")).hexdigest()[:20]


def search_url(base_url: str, state: QueryState) -> str:
    query = {"searchQueryState": json.dumps(state.to_search_query_state(), separators=(",", ":"))}
    if state.pagination_page is None:
        query["pagination"] = "{}"
    return f"{base_url.rstrip('/')}/homes/?{urlencode(query)}"


def detail_url(base_url: str, entity_id: str) -> str:
    return f"{base_url.rstrip('/')}/homedetails/{entity_id}_zpid/"


def query_job(state: QueryState, split_level: int, base_url: str, priority: bool = False) -> JobDescriptor:
    """A QUERY job whose identity covers the full state, page number included."""
    serialized = state.to_search_query_state()
    return JobDescriptor(
        label=LABEL_QUERY,
        target=search_url(base_url, state),
        identity=quick_hash(serialized),
        payload={
            "search_query_state": serialized,
            "split_level": split_level,
            "page_number": state.page_number,
        },
        priority=priority,
    )


def detail_job(entity_id: str, url: str, priority: bool = True) -> JobDescriptor:
    return JobDescriptor(
        label=LABEL_DETAIL,
        target=url,
        identity=str(entity_id) if entity_id else url,
        payload={"entity_id": str(entity_id) if entity_id else None},
        priority=priority,
    )


def plan_map_splits(state: QueryState, total_count: int, split_level: int, context: RunContext) -> List[JobDescriptor]:
    """Quarter the viewport when the page is at or over the split threshold.

    Returns an empty list below the threshold or at `max_level`; in the latter
    case the capped result set is accepted as is.
    """
    if total_count < context.split_threshold:
        return []
    if split_level >= context.max_level:
        logger.info("Over max level (%s), keeping %s capped results", context.max_level, total_count)
        return []

    next_level = split_level + 1
    jobs = [
        query_job(state.with_viewport(viewport), next_level, context.base_url, priority=True)
        for viewport in state.viewport.quadrants()
    ]
    logger.info("Splitting map into %s squares and zooming in (level %s)", len(jobs), next_level)
    return jobs


def pages_count(total_count: int, pages_limit: int) -> int:
    return min(math.ceil(total_count / LISTINGS_PER_PAGE) + 1, pages_limit)


def plan_pagination(state: QueryState, total_count: int, split_level: int, context: RunContext) -> List[JobDescriptor]:
    """Jobs for pages 2..N of the same viewport.

    The map view under-reports relative to its own total, so list pages are
    walked as well. Page 1 is the page already in hand.
    """
    if total_count <= 0:
        return []
    if context.is_covered():
        return []

    count = pages_count(total_count, context.pages_limit)
    if count >= 2:
        logger.info("Found %s results, %s pagination pages will be enqueued.", total_count, count - 1)
    return [query_job(state.with_page(page), split_level, context.base_url) for page in range(2, count + 1)]


def enqueue_all(jobs: List[JobDescriptor], enqueue: Enqueue, context: RunContext) -> int:
    """Submit jobs until the run-level cap is hit; returns the number newly queued."""
    added = 0
    for job in jobs:
        if context.is_over_items():
            break
        already_present = enqueue(job)
        if not already_present:
            added += 1
        logger.debug("Enqueued %s job %s (already_present=%s)", job.label, job.identity, already_present)
    return added

