"""Drives the handling of one fetched search page."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Union

from listing_sweep.core import address_matcher
from listing_sweep.core.dedup import RunContext
from listing_sweep.core.errors import AnomalousZeroResultsError, MissingPageDataError
from listing_sweep.core.extraction import ExtractionOrchestrator
from listing_sweep.core.models import JobDescriptor, QueryState
from listing_sweep.core.planners import Enqueue, enqueue_all, plan_map_splits, plan_pagination
from listing_sweep.core.query_state import extract_query_states, merge_results, sum_total_count
from listing_sweep.core.reporting import ReportDispatcher
from listing_sweep.core.session import Session

logger = logging.getLogger(__name__)


class SearchPageController:
    """Composes extraction, matching, planning and per-entity extraction for a page.

    Page 1 of a viewport lineage plans map splits and pagination; pagination
    pages (and deeper ones) only extract.
    """

    def __init__(
        self,
        context: RunContext,
        session: Session,
        orchestrator: ExtractionOrchestrator,
        enqueue: Enqueue,
        targets: Optional[Sequence[str]] = None,
        reporter: Optional[ReportDispatcher] = None,
    ) -> None:
        self.context = context
        self.session = session
        self.orchestrator = orchestrator
        self.enqueue = enqueue
        self.targets = list(targets or [])
        self.reporter = reporter

    def handle_search_page(self, page: Union[str, Dict[str, Any]], job: JobDescriptor) -> int:
        """Handle one search page; returns the number of entities extracted."""
        page_number = job.page_number
        split_level = job.split_level

        try:
            extracts = extract_query_states(page, page_number, split_level, self.context)
        except MissingPageDataError:
            self.session.retire()
            raise

        results = merge_results(extracts)
        total_count = sum_total_count(extracts)

        self._report_matches(results)

        if not results:
            if total_count > 0:
                logger.debug("No results, retiring session.")
                self.session.retire()
                raise AnomalousZeroResultsError(total_count)
            logger.debug("Really zero results")
            return 0

        if not self.targets:
            logger.debug("No target addresses supplied; stopping branch %s", job.identity)
            return 0

        if self.context.is_covered():
            logger.debug("All %s results already extracted, skipping page", self.context.max_observed.value)
            return 0

        if page_number == 1:
            states: List[QueryState] = []
            for extract in extracts.values():
                if extract.state not in states:
                    states.append(extract.state)
            for state in states:
                self._plan_follow_ups(state, total_count, split_level)

        return self.orchestrator.extract_batch(results, should_stop=self.context.is_covered)

    def _plan_follow_ups(self, state: QueryState, total_count: int, split_level: int) -> None:
        logger.info("Searching homes at %s", state.viewport.to_map_bounds())
        jobs: List[JobDescriptor] = plan_map_splits(state, total_count, split_level, self.context)
        enqueue_all(jobs, self.enqueue, self.context)
        jobs = plan_pagination(state, total_count, split_level, self.context)
        enqueue_all(jobs, self.enqueue, self.context)

    def _report_matches(self, results) -> None:
        if not self.targets or self.reporter is None:
            return
        match = address_matcher.best_match(results, self.targets)
        if match is not None:
            logger.info("Matched %s to target %r (score=%.3f)", match.result.address, match.candidate_address, match.score)
        self.reporter.dispatch(address_matcher.build_match_reports(match, self.targets))
