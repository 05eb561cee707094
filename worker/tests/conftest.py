import sys
from pathlib import Path

import pytest

# Ensure the `listing_sweep` package is importable when running pytest from the repo root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from listing_sweep.core.dedup import RunContext  # noqa: E402


class DummySession:
    def __init__(self, usable=True):
        self.usable = usable
        self.bad_marks = 0
        self.retired = False

    def is_usable(self):
        return self.usable and not self.retired

    def mark_bad(self):
        self.bad_marks += 1

    def mark_good(self):
        pass

    def retire(self):
        self.retired = True


class RecordingQueue:
    def __init__(self):
        self.jobs = []
        self.identities = set()

    def __call__(self, job):
        present = job.identity in self.identities
        self.identities.add(job.identity)
        self.jobs.append(job)
        return present


@pytest.fixture
def context():
    return RunContext(base_url="https://listings.test")


@pytest.fixture
def session():
    return DummySession()


@pytest.fixture
def queue():
    return RecordingQueue()
