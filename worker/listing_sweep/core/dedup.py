"""Run-scoped shared state: the entity dedup store and the observed-count heuristic."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional

from listing_sweep.core.config import PAGES_LIMIT, RESULTS_LIMIT, Settings

logger = logging.getLogger(__name__)


def is_valid_entity_id(entity_id: object) -> bool:
    """Entity ids are non-empty strings of digits (ints are accepted too)."""
    if entity_id is None or isinstance(entity_id, bool):
        return False
    return str(entity_id).isdigit()


class DedupStore:
    """Thread-safe set of claimed or extracted entity ids with an optional cap.

    Membership test and insertion happen under one lock in `check_and_insert`,
    so two concurrent passes can never both claim the same id.
    """

    def __init__(self, initial: Optional[Iterable[str]] = None, max_items: Optional[int] = None) -> None:
        self._lock = threading.Lock()
        self._ids = set(str(i) for i in initial or [] if is_valid_entity_id(i))
        self.max_items = max_items if max_items and max_items > 0 else None

    def __contains__(self, entity_id: object) -> bool:
        with self._lock:
            return str(entity_id) in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())

    @property
    def size(self) -> int:
        return len(self)

    def is_full(self, extra: int = 0) -> bool:
        if self.max_items is None:
            return False
        return len(self) + extra >= self.max_items

    def check_and_insert(self, entity_id: str) -> bool:
        """Insert `entity_id` unless it is invalid, present, or the cap is reached.

        Returns True only for the caller that actually inserted it.
        """
        if not is_valid_entity_id(entity_id):
            return False
        key = str(entity_id)
        with self._lock:
            if key in self._ids:
                return False
            if self.max_items is not None and len(self._ids) >= self.max_items:
                return False
            self._ids.add(key)
            return True

    def release(self, entity_id: str) -> None:
        """Drop a claim whose extraction failed, so it neither counts toward the cap nor blocks a retry."""
        with self._lock:
            self._ids.discard(str(entity_id))

    def snapshot(self) -> List[str]:
        with self._lock:
            return sorted(self._ids, key=lambda v: (len(v), v))


class MaxObservedCount:
    """Running maximum of the total count reported by un-split first pages."""

    def __init__(self, value: int = 0) -> None:
        self._lock = threading.Lock()
        self._value = value

    @property
    def value(self) -> int:
        return self._value

    def observe(self, count: int) -> int:
        with self._lock:
            if count > self._value:
                logger.debug("Max observed count raised from %s to %s", self._value, count)
                self._value = count
            return self._value


@dataclass
class RunContext:
    """Shared state and limits handed to every page-handling pass of a run."""

    dedup: DedupStore = field(default_factory=DedupStore)
    max_observed: MaxObservedCount = field(default_factory=MaxObservedCount)
    max_level: int = 5
    split_threshold: int = RESULTS_LIMIT
    pages_limit: int = PAGES_LIMIT
    base_url: str = "https://www.zillow.com"

    @classmethod
    def from_settings(cls, settings: Settings, initial_ids: Optional[Iterable[str]] = None) -> RunContext:
        return cls(
            dedup=DedupStore(initial_ids, max_items=settings.max_items),
            max_level=settings.max_level,
            split_threshold=settings.split_threshold or RESULTS_LIMIT,
            pages_limit=settings.pages_limit,
            base_url=settings.listing_base_url,
        )

    def is_over_items(self, extra: int = 0) -> bool:
        return self.dedup.is_full(extra)

    def is_covered(self) -> bool:
        """True once the dedup store holds as many ids as the largest first page reported."""
        observed = self.max_observed.value
        return observed > 0 and self.dedup.size >= observed
