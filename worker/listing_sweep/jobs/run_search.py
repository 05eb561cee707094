"""CLI job that sweeps a geographic search and extracts every listing in it."""

from __future__ import annotations

import argparse
import json
import logging
import threading
import uuid
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Set
from urllib.parse import parse_qs, urlparse

from listing_sweep.core import state as run_state
from listing_sweep.core.address_matcher import target_from_url
from listing_sweep.core.config import Settings, get_settings
from listing_sweep.core.db import init_pool, upsert_listing
from listing_sweep.core.dedup import RunContext
from listing_sweep.core.detail import DetailPageHandler
from listing_sweep.core.errors import EntityNotFoundError, SessionRetiredError
from listing_sweep.core.extraction import ExtractionOrchestrator, OutputSink, QueryEntity
from listing_sweep.core.models import LABEL_DETAIL, LABEL_IDS, LABEL_QUERY, JobDescriptor, QueryState
from listing_sweep.core.page_controller import SearchPageController
from listing_sweep.core.planners import query_job, quick_hash
from listing_sweep.core.reporting import ReportDispatcher, post_match_report
from listing_sweep.core.session import Session
from listing_sweep.etl.transform import to_listing_row
from listing_sweep.vendors import listing_api

logger = logging.getLogger(__name__)


class WorkQueue:
    """In-memory job queue keyed by job identity.

    Priority jobs go to the front. A job whose identity was ever added is
    reported as already present and not queued again.
    """

    def __init__(self) -> None:
        self._jobs: Deque[JobDescriptor] = deque()
        self._known: Set[str] = set()
        self._in_flight = 0
        self._closed = False
        self._cond = threading.Condition()

    def add(self, job: JobDescriptor) -> bool:
        with self._cond:
            if job.identity in self._known:
                return True
            self._known.add(job.identity)
            self._push(job)
            return False

    def retry(self, job: JobDescriptor) -> None:
        with self._cond:
            self._push(job)

    def _push(self, job: JobDescriptor) -> None:
        if job.priority:
            self._jobs.appendleft(job)
        else:
            self._jobs.append(job)
        self._cond.notify()

    def get(self) -> Optional[JobDescriptor]:
        """Block for the next job; None once the queue is drained or closed."""
        with self._cond:
            while not self._jobs and self._in_flight and not self._closed:
                self._cond.wait()
            if self._closed or not self._jobs:
                self._cond.notify_all()
                return None
            self._in_flight += 1
            return self._jobs.popleft()

    def task_done(self) -> None:
        with self._cond:
            self._in_flight -= 1
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def __len__(self) -> int:
        with self._cond:
            return len(self._jobs)


class JsonlOutputSink:
    """Appends one JSON document per extracted listing."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def __call__(self, payload: Dict[str, Any], context: Dict[str, Any]) -> None:
        row = to_listing_row(payload, context["entity_id"], context.get("detail_url"))
        with self._lock, self.path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(row, ensure_ascii=False, default=str) + "\n")


def make_output_sink(settings: Settings, run_id: uuid.UUID) -> OutputSink:
    if not settings.database_url:
        return JsonlOutputSink(settings.output_path)

    init_pool()
    scraped_at = datetime.now(timezone.utc)

    def sink(payload: Dict[str, Any], context: Dict[str, Any]) -> None:
        row = to_listing_row(payload, context["entity_id"], context.get("detail_url"))
        row["run_id"] = run_id
        row["scraped_at"] = scraped_at
        upsert_listing(row)

    return sink


def job_from_start_url(url: str, base_url: str) -> JobDescriptor:
    """Turn a search URL carrying `searchQueryState` into a level-0 QUERY job."""
    raw = parse_qs(urlparse(url).query).get("searchQueryState")
    if not raw:
        raise ValueError(f"Start URL has no searchQueryState parameter: {url}")
    try:
        state = QueryState.from_search_query_state(json.loads(raw[0]))
    except ValueError as exc:
        raise ValueError(f"Start URL has an invalid searchQueryState: {exc}") from exc
    return query_job(state, 0, base_url)


def ids_job(entity_ids: Iterable[Any], base_url: str) -> JobDescriptor:
    ids = [str(i) for i in entity_ids]
    return JobDescriptor(
        label=LABEL_IDS,
        target=base_url,
        identity=quick_hash({"zpids": ids}),
        payload={"entity_ids": ids},
        priority=True,
    )


class SearchRunner:
    """Worker pool that drains the queue with one session per worker thread."""

    def __init__(
        self,
        settings: Settings,
        context: RunContext,
        output_sink: OutputSink,
        query_entity: QueryEntity,
        fetch_page: Optional[Callable[[str], str]] = None,
        targets: Optional[List[str]] = None,
        reporter: Optional[ReportDispatcher] = None,
        queue: Optional[WorkQueue] = None,
    ) -> None:
        self.settings = settings
        self.context = context
        self.output_sink = output_sink
        self.query_entity = query_entity
        self.fetch_page = fetch_page or listing_api.fetch_page
        self.targets = targets or []
        self.reporter = reporter
        self.queue = queue or WorkQueue()
        self._attempts: Dict[str, int] = {}
        self._attempts_lock = threading.Lock()
        self.failed: List[JobDescriptor] = []

    def handle_job(self, job: JobDescriptor, session: Session) -> None:
        orchestrator = ExtractionOrchestrator(
            self.context, session, self.query_entity, self.output_sink, self.queue.add
        )

        if job.label == LABEL_IDS:
            ids = job.payload.get("entity_ids") or []
            logger.info("Scraping %d zpids", len(ids))
            orchestrator.extract_ids(ids)
        elif job.label == LABEL_DETAIL:
            logger.debug("Scraping %s", job.target)
            html = self.fetch_page(job.target)
            DetailPageHandler(self.context, session, self.output_sink, self.queue.add).handle_detail_page(html, job)
        elif job.label == LABEL_QUERY:
            html = self.fetch_page(job.target)
            controller = SearchPageController(
                self.context, session, orchestrator, self.queue.add, targets=self.targets, reporter=self.reporter
            )
            controller.handle_search_page(html, job)
        else:
            raise ValueError(f"Unknown job label {job.label!r}")

        if orchestrator.found_any_errors():
            session.retire()
            raise SessionRetiredError("Retiring session after extraction errors")

    def _worker(self) -> None:
        session = Session()
        while True:
            if self.context.is_over_items():
                logger.info("Reached maximum items, waiting for finish")
                self.queue.close()
                return
            job = self.queue.get()
            if job is None:
                return
            if not session.is_usable():
                session = Session()
            try:
                self.handle_job(job, session)
                session.mark_good()
            except EntityNotFoundError as exc:
                logger.warning("Giving up on %s: %s", job.target, exc)
                self.failed.append(job)
            except Exception as exc:  # noqa: BLE001
                self._retry_or_fail(job, exc)
            finally:
                self.queue.task_done()

    def _retry_or_fail(self, job: JobDescriptor, exc: Exception) -> None:
        with self._attempts_lock:
            attempts = self._attempts.get(job.identity, 0) + 1
            self._attempts[job.identity] = attempts
        if attempts > self.settings.max_retries:
            logger.error("Request %s failed too many times: %s", job.target, exc)
            self.failed.append(job)
            return
        logger.warning("%s job %s failed (attempt %s/%s): %s", job.label, job.identity, attempts, self.settings.max_retries, exc)
        self.queue.retry(job)

    def run(self, jobs: Iterable[JobDescriptor]) -> int:
        for job in jobs:
            self.queue.add(job)
        workers = max(1, self.settings.worker_concurrency)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sweep") as executor:
            futures = [executor.submit(self._worker) for _ in range(workers)]
            for future in futures:
                future.result()
        logger.info("Done with %s listings!", self.context.dedup.size)
        return self.context.dedup.size


def run_search_job(
    *,
    start_urls: List[str],
    entity_ids: Optional[List[str]] = None,
    targets: Optional[List[str]] = None,
    settings: Optional[Settings] = None,
) -> int:
    settings = settings or get_settings()
    if not start_urls and not entity_ids:
        raise ValueError("At least one start URL or entity id is required")
    if start_urls and not targets:
        logger.warning(
            "No target addresses supplied; search pages will only be read, not split, paginated or extracted"
        )

    context = RunContext.from_settings(settings, run_state.load_entity_ids(settings.state_path))
    credentials = run_state.load_query_credentials(settings.state_path) or {
        "queryId": settings.query_id,
        "clientVersion": settings.client_version,
    }

    def query_entity(entity_id: str) -> Dict[str, Any]:
        return listing_api.query_entity(
            entity_id, credentials["queryId"], credentials["clientVersion"], base_url=settings.listing_base_url
        )

    run_id = uuid.uuid4()
    logger.info("Assigned run_id=%s", run_id)

    jobs = [job_from_start_url(url, settings.listing_base_url) for url in start_urls]
    if entity_ids:
        jobs.insert(0, ids_job(entity_ids, settings.listing_base_url))

    reporter = ReportDispatcher(lambda records: post_match_report(records, settings))
    runner = SearchRunner(
        settings,
        context,
        make_output_sink(settings, run_id),
        query_entity,
        targets=targets,
        reporter=reporter,
    )
    try:
        return runner.run(jobs)
    finally:
        reporter.shutdown(wait=True)
        run_state.save_state(settings.state_path, context.dedup, credentials if credentials.get("queryId") else None)


def _read_lines(path: Optional[str]) -> List[str]:
    if not path:
        return []
    with open(path, "r", encoding="utf-8") as fh:
        return [line.strip() for line in fh if line.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sweep a listing search and extract every listing")
    parser.add_argument("--start-url", dest="start_urls", action="append", default=[], help="Search URL with searchQueryState")
    parser.add_argument("--zpid", dest="entity_ids", action="append", default=[], help="Entity id to extract directly")
    parser.add_argument("--target", dest="targets", action="append", default=[], help="Target address to match")
    parser.add_argument("--target-url", dest="target_urls", action="append", default=[], help="Listing URL whose slug is a target address")
    parser.add_argument("--targets-file", dest="targets_file", help="File with one target address per line")
    parser.add_argument("--max-items", dest="max_items", type=int, default=None, help="Stop after this many listings")
    parser.add_argument("--max-level", dest="max_level", type=int, default=None, help="Maximum map split depth")
    parser.add_argument("--split-threshold", dest="split_threshold", type=int, default=None, help="Result count that triggers a map split")
    parser.add_argument(
        "--concurrency",
        dest="worker_concurrency",
        type=int,
        default=get_settings().worker_concurrency,
        help="Number of worker threads",
    )
    return parser


def settings_from_args(args: argparse.Namespace, base: Settings) -> Settings:
    overrides: Dict[str, Any] = {"worker_concurrency": args.worker_concurrency}
    if args.max_items is not None:
        overrides["max_items"] = args.max_items if args.max_items > 0 else None
    if args.max_level is not None:
        overrides["max_level"] = args.max_level
    if args.split_threshold is not None:
        overrides["split_threshold"] = args.split_threshold
    return replace(base, **overrides)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args()

    targets = list(args.targets) + [target_from_url(u) for u in args.target_urls] + _read_lines(args.targets_file)
    run_search_job(
        start_urls=args.start_urls,
        entity_ids=args.entity_ids,
        targets=targets,
        settings=settings_from_args(args, get_settings()),
    )


if __name__ == "__main__":
    main()
