"""
Base fetcher interface and its error taxonomy. All fetchers implement this.
"""

from abc import ABC, abstractmethod

from models import FeedCursor, Page, WatchedResource


class FetchError(Exception):
    """Raised when a fetch does not produce a page."""
    pass


class RateLimitedError(FetchError):
    """The service refused the request because the budget is spent. Wait, don't abort."""

    def __init__(self, message: str, retry_after: float | None = None, reset_at: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after
        self.reset_at = reset_at


class TransientFetchError(FetchError):
    """Network failure, timeout or 5xx. Retryable."""
    pass


class FatalFetchError(FetchError):
    """Bad resource, rejected credential, missing resource. Not retryable."""
    pass


class PageFetcher(ABC):
    """
    Fetches one page of a feed relative to a cursor.

    Contract:
    - One conditional request per call (plus continuation pages when catching up).
    - Returns Unchanged when nothing is newer than the cursor.
    - Returns NewData with items oldest-first and a cursor covering them all.
    - Updates the shared RateBudget whenever the response carries rate metadata,
      on success and on failure.
    - Never emits anything; delivery belongs to the poller.
    """

    @abstractmethod
    def fetch(self, resource: WatchedResource, cursor: FeedCursor) -> Page:
        """
        Raises:
            RateLimitedError, TransientFetchError, FatalFetchError
        """
        ...

    @abstractmethod
    def name(self) -> str:
        """Fetcher name for logging."""
        ...
