"""Exception hierarchy shared by the page handlers and the host runner."""


class ListingSweepError(RuntimeError):
    """Base class for page-level failures."""


class RetryableError(ListingSweepError):
    """The host should retry the job, usually on a fresh session."""


class MissingPageDataError(RetryableError):
    """The embedded document a page handler expects is absent or unreadable."""


class AnomalousZeroResultsError(RetryableError):
    """The page reported a positive total but carried no result records."""

    def __init__(self, total_count: int) -> None:
        super().__init__(f"No map results but result count is {total_count}")
        self.total_count = total_count


class SessionUnusableError(RetryableError):
    """Extraction was not attempted because the session can no longer be trusted."""


class SessionRetiredError(RetryableError):
    """The pass recorded extraction failures and retired its session."""


class EntityNotFoundError(ListingSweepError):
    """A detail page did not yield any entity id; retrying will not help."""
