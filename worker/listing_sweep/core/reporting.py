"""Fire-and-forget delivery of address match reports."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

import requests

from listing_sweep.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10

ReportSink = Callable[[List[Dict[str, Any]]], None]


def post_match_report(records: List[Dict[str, Any]], settings: Optional[Settings] = None) -> None:
    """POST match report records to the reporting endpoint."""

    settings = settings or get_settings()
    if not settings.report_api_url:
        logger.debug("REPORT_API_URL missing; skipping %d report records", len(records))
        return

    try:
        response = requests.post(settings.report_api_url, json={"data": records}, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as exc:  # noqa: BLE001
        logger.warning("Failed to POST match report (%d records): %s", len(records), exc)


class ReportDispatcher:
    """Runs a report sink on a background executor so page handling never waits on it."""

    def __init__(self, sink: Optional[ReportSink] = None, executor: Optional[ThreadPoolExecutor] = None) -> None:
        self._sink = sink or post_match_report
        self._executor = executor or ThreadPoolExecutor(max_workers=2, thread_name_prefix="report")

    def dispatch(self, records: List[Dict[str, Any]]) -> Optional[Future]:
        if not records:
            return None
        try:
            return self._executor.submit(self._deliver, records)
        except RuntimeError as exc:
            # executor already shut down at the end of a run
            logger.warning("Dropping %d report records: %s", len(records), exc)
            return None

    def _deliver(self, records: List[Dict[str, Any]]) -> None:
        try:
            self._sink(records)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Report sink failed: %s", exc)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
