"""Per-entity extraction with dedup gating, pacing and a detail-page fallback."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, Optional

from listing_sweep.core.dedup import RunContext, is_valid_entity_id
from listing_sweep.core.errors import SessionUnusableError
from listing_sweep.core.models import ResultRecord
from listing_sweep.core.planners import Enqueue, detail_job, detail_url
from listing_sweep.core.session import Session

logger = logging.getLogger(__name__)

PACING_DELAY_SECONDS = 0.1
PROGRESS_INTERVAL_SECONDS = 10.0

QueryEntity = Callable[[str], Dict[str, Any]]
OutputSink = Callable[[Dict[str, Any], Dict[str, Any]], None]
ProgressSink = Callable[[int], None]


def log_progress(count: int) -> None:
    logger.info("Extracted total %s", count)


class ExtractionOrchestrator:
    """Extracts entities one at a time for a single page-handling pass.

    Instances are per pass; the `RunContext` they share is run-wide. Any
    failed query turns into a priority DETAIL job and flags the pass via
    `found_any_errors()`.
    """

    def __init__(
        self,
        context: RunContext,
        session: Session,
        query_entity: QueryEntity,
        output_sink: OutputSink,
        enqueue: Enqueue,
        progress_sink: Optional[ProgressSink] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.context = context
        self.session = session
        self.query_entity = query_entity
        self.output_sink = output_sink
        self.enqueue = enqueue
        self.progress_sink = progress_sink or log_progress
        self._sleep = sleep
        self._clock = clock
        self.any_errors = False

    def found_any_errors(self) -> bool:
        return self.any_errors

    def extract(self, entity_id: Optional[str], fallback_url: str = "") -> bool:
        """Extract one entity; returns True when its payload reached the output sink."""
        dedup = self.context.dedup

        if self.context.is_over_items():
            return False
        if not entity_id:
            logger.debug("Skipping result without entity id")
            return False
        entity_id = str(entity_id)
        if not is_valid_entity_id(entity_id):
            logger.debug("Skipping invalid non-numeric entity id %r", entity_id)
            return False
        if entity_id in dedup:
            logger.debug("Entity %s already extracted", entity_id)
            return False

        if not self.session.is_usable():
            self._sleep(PACING_DELAY_SECONDS)
            raise SessionUnusableError("Not trying to retrieve data, session is not usable anymore")

        if not dedup.check_and_insert(entity_id):
            # lost the race to another pass, or the cap filled meanwhile
            return False

        try:
            logger.debug("Extracting %s", entity_id)
            payload = self.query_entity(entity_id)
            self.output_sink(payload, {"entity_id": entity_id, "detail_url": fallback_url})
            return True
        except Exception as exc:  # noqa: BLE001
            dedup.release(entity_id)
            self.any_errors = True
            self.session.mark_bad()
            if self.context.is_over_items():
                logger.debug("Extraction of %s failed after the item cap was reached: %s", entity_id, exc)
                return False
            logger.debug("Extraction of %s failed, falling back to detail page: %s", entity_id, exc)
            self._enqueue_fallback(entity_id, fallback_url)
            return False
        finally:
            self._sleep(PACING_DELAY_SECONDS)

    def _enqueue_fallback(self, entity_id: str, fallback_url: str) -> None:
        if fallback_url:
            url = fallback_url if "://" in fallback_url else self.context.base_url.rstrip("/") + "/" + fallback_url.lstrip("/")
        else:
            url = detail_url(self.context.base_url, entity_id)
        already_present = self.enqueue(detail_job(entity_id, url, priority=True))
        if not already_present:
            logger.info("Enqueued detail fallback for %s", entity_id)

    def extract_batch(
        self,
        records: Iterable[ResultRecord],
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> int:
        """Extract records in order, stopping at the item cap or when `should_stop()` holds."""
        return self._run_batch(((r.entity_id, r.detail_url) for r in records), should_stop)

    def extract_ids(self, entity_ids: Iterable[Any]) -> int:
        return self._run_batch(((None if i is None else str(i), "") for i in entity_ids), None)

    def _run_batch(self, items, should_stop: Optional[Callable[[], bool]]) -> int:
        dedup = self.context.dedup
        last_count = 0
        last_signal = self._clock()
        extracted = 0

        def signal() -> None:
            nonlocal last_count
            size = dedup.size
            if size != last_count:
                last_count = size
                self.progress_sink(size)

        try:
            for entity_id, url in items:
                if self.context.is_over_items() or (should_stop is not None and should_stop()):
                    break
                if not entity_id:
                    continue
                if self.extract(entity_id, url):
                    extracted += 1
                if self._clock() - last_signal >= PROGRESS_INTERVAL_SECONDS:
                    last_signal = self._clock()
                    signal()
        finally:
            if not self.any_errors:
                signal()
        return extracted
