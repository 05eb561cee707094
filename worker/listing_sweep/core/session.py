"""Session health tracking for the channel used to talk to the upstream site."""

import logging
import threading
import uuid

logger = logging.getLogger(__name__)


class Session:
    """Error-scored session.

    `mark_bad` degrades the session; it stays usable until its error score
    reaches `max_error_score`. `retire` makes it unusable for good.
    """

    def __init__(self, max_error_score: float = 3.0) -> None:
        self.id = uuid.uuid4().hex[:10]
        self.max_error_score = max_error_score
        self.error_score = 0.0
        self.retired = False
        self._lock = threading.Lock()

    def is_usable(self) -> bool:
        with self._lock:
            return not self.retired and self.error_score < self.max_error_score

    def mark_bad(self) -> None:
        with self._lock:
            self.error_score += 1
            logger.debug("Session %s marked bad (score=%.1f)", self.id, self.error_score)

    def mark_good(self) -> None:
        with self._lock:
            self.error_score = max(0.0, self.error_score - 0.5)

    def retire(self) -> None:
        with self._lock:
            if not self.retired:
                logger.info("Retiring session %s", self.id)
            self.retired = True
