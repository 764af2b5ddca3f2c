"""
Per-feed polling state machine.

IDLE -> POLLING -> IDLE, forever, until a fatal error or the stop event
moves it to STOPPED. Within one feed, fetch -> emit -> commit is strictly
sequential; there is never more than one fetch in flight.
"""

import logging
import sqlite3
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from config.settings import Config
from delivery.output import Sink
from feeds.base import FatalFetchError, PageFetcher, RateLimitedError, TransientFetchError
from feeds.budget import RateBudget
from models import FeedCursor, FeedStatus, NewData, Page, WatchedResource
from storage.db import Storage

log = logging.getLogger(__name__)

# Keeps 2**n finite in processes that stay rate limited for days
_MAX_EXPONENT = 16


class PollerState(Enum):
    IDLE = "idle"
    POLLING = "polling"
    STOPPED = "stopped"


class SinkError(Exception):
    """The sink did not accept an item or a status notice."""
    pass


@dataclass
class PacingPolicy:
    """Delays, in seconds, between polls of one feed."""
    base_interval: float = 60.0
    budget_floor: int = 10
    low_budget_multiplier: float = 4.0
    max_backoff: float = 900.0
    transient_base_delay: float = 5.0
    max_transient_retries: int = 5
    rate_limit_base_delay: float = 60.0

    @classmethod
    def from_config(cls, config: Config) -> "PacingPolicy":
        return cls(
            base_interval=config.base_interval,
            budget_floor=config.budget_floor,
            low_budget_multiplier=config.low_budget_multiplier,
            max_backoff=config.max_backoff,
            transient_base_delay=config.transient_base_delay,
            max_transient_retries=config.max_transient_retries,
            rate_limit_base_delay=config.rate_limit_base_delay,
        )


class FeedPoller:
    """
    Watches a single feed.

    The first successful fetch of a fresh feed seeds the cursor silently:
    the backlog is marked seen, nothing is emitted. A poller started from a
    persisted cursor is already seeded.
    """

    def __init__(
        self,
        resource: WatchedResource,
        fetcher: PageFetcher,
        sink: Sink,
        budget: RateBudget,
        policy: PacingPolicy | None = None,
        cursor: FeedCursor | None = None,
        store: Storage | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.resource = resource
        self._fetcher = fetcher
        self._sink = sink
        self._budget = budget
        self._policy = policy or PacingPolicy()
        self._cursor = cursor or FeedCursor.empty()
        self._store = store
        self._clock = clock

        self._seeded = not self._cursor.is_empty
        # Last position the sink accepted from a page whose cursor is not yet committed
        self._delivered_through: int | None = None
        self._transient_failures = 0
        self._rate_limit_streak = 0
        self._rate_limit_delay = 0.0

        self.state = PollerState.IDLE
        self.error: FatalFetchError | None = None

    @property
    def cursor(self) -> FeedCursor:
        return self._cursor

    @property
    def seeded(self) -> bool:
        return self._seeded

    def seed(self, stop: threading.Event) -> float | None:
        """
        Establish the starting cursor without emitting the backlog.

        Returns the delay before the first steady-state poll, or None if
        stopped first. Raises FatalFetchError if the feed cannot be watched.
        """
        if self._seeded:
            return 0.0
        while not stop.is_set():
            delay = self.poll_once()
            if self._seeded:
                return delay
            if stop.wait(delay):
                break
        return None

    def run(self, stop: threading.Event):
        """Poll until `stop` is set. Raises FatalFetchError when the feed dies."""
        log.debug(f"{self.resource}: polling loop started")
        try:
            while not stop.is_set():
                delay = self.poll_once()
                if stop.wait(delay):
                    break
        finally:
            self.state = PollerState.STOPPED
        log.info(f"{self.resource}: stopped")

    def poll_once(self) -> float:
        """One IDLE -> POLLING -> IDLE transition. Returns seconds until the next poll."""
        if self.state is PollerState.STOPPED:
            raise RuntimeError(f"poller for {self.resource} is stopped")

        self.state = PollerState.POLLING
        silent = not self._seeded
        try:
            page = self._fetcher.fetch(self.resource, self._cursor)
            if silent:
                self._seed_from(page)
            else:
                count = self._deliver(page) if isinstance(page, NewData) else 0
                self._notify(page, count)
        except RateLimitedError as e:
            return self._idle(self._rate_limited_delay(e))
        except (TransientFetchError, SinkError) as e:
            return self._idle(self._transient_delay(e))
        except FatalFetchError as e:
            self._stop(e)
            raise

        self._transient_failures = 0
        self._rate_limit_streak = 0
        self._rate_limit_delay = 0.0
        return self._idle(self._pacing_delay(page))

    # ── Page handling ──

    def _seed_from(self, page: Page):
        if isinstance(page, NewData):
            self._commit(page.cursor)
            log.info(f"{self.resource}: skipped backlog of {len(page.items)} events, "
                     f"cursor at {self._cursor.position}")
        else:
            log.info(f"{self.resource}: empty feed, watching from the start")
        self._seeded = True

    def _deliver(self, page: NewData) -> int:
        """
        Emit unseen items in order, then commit.

        The in-memory cursor only moves once the whole page is accepted. The
        store follows each accepted item, keeping the page's old etag.
        """
        delivered = 0
        for item in page.items:
            if self._cursor.covers(item):
                continue
            if self._delivered_through is not None and item.position <= self._delivered_through:
                continue
            try:
                self._sink.emit(self.resource, item)
            except Exception as e:
                raise SinkError(f"sink rejected {item!r}: {e}") from e
            self._delivered_through = item.position
            # Durable progress so a restart mid-page redelivers at most the boundary item
            self._persist(FeedCursor(position=item.position, etag=self._cursor.etag))
            delivered += 1

        self._commit(page.cursor)
        return delivered

    def _notify(self, page: Page, count: int):
        kind = "new" if isinstance(page, NewData) else "unchanged"
        notice = FeedStatus(
            resource=self.resource,
            kind=kind,
            item_count=count,
            remaining=self._budget.remaining,
        )
        try:
            self._sink.status(notice)
        except Exception as e:
            raise SinkError(f"sink rejected status for {self.resource}: {e}") from e

    def _commit(self, cursor: FeedCursor):
        if self._cursor.is_after(cursor):
            log.warning(f"{self.resource}: ignoring cursor {cursor.position} behind {self._cursor.position}")
            return

        self._cursor = cursor
        self._delivered_through = None
        self._persist(cursor)

    def _persist(self, cursor: FeedCursor):
        if self._store is None:
            return
        try:
            self._store.set_cursor(self.resource, cursor)
        except sqlite3.Error as e:
            log.warning(f"{self.resource}: could not persist cursor: {e}")

    # ── Delays ──

    def _pacing_delay(self, page: Page) -> float:
        p = self._policy
        delay = p.base_interval
        if page.poll_interval:
            delay = max(delay, float(page.poll_interval))

        if self._budget.is_low(p.budget_floor):
            until_reset = self._budget.seconds_until_reset(self._clock())
            if until_reset is not None:
                stretched = min(until_reset, p.max_backoff)
            else:
                stretched = min(p.base_interval * p.low_budget_multiplier, p.max_backoff)
            delay = max(delay, stretched)
            log.info(f"{self.resource}: budget low ({self._budget.remaining} left), "
                     f"next poll in {delay:.0f}s")
        return delay

    def _rate_limited_delay(self, err: RateLimitedError) -> float:
        """Grows with each consecutive rate limit, never shrinks, capped at max_backoff."""
        p = self._policy
        self._rate_limit_streak += 1
        exponent = min(self._rate_limit_streak - 1, _MAX_EXPONENT)
        delay = p.rate_limit_base_delay * 2 ** exponent

        if err.retry_after is not None:
            delay = max(delay, err.retry_after)
        reset_at = err.reset_at if err.reset_at is not None else self._budget.reset_at
        if reset_at is not None:
            delay = max(delay, reset_at - self._clock())

        delay = min(max(delay, self._rate_limit_delay), p.max_backoff)
        self._rate_limit_delay = delay
        log.warning(f"{self.resource}: rate limited ({err}), pausing {delay:.0f}s")
        return delay

    def _transient_delay(self, err: Exception) -> float:
        p = self._policy
        self._transient_failures += 1
        if self._transient_failures > p.max_transient_retries:
            fatal = FatalFetchError(
                f"{self.resource}: giving up after {self._transient_failures} consecutive failures: {err}"
            )
            self._stop(fatal)
            raise fatal from err

        exponent = min(self._transient_failures - 1, _MAX_EXPONENT)
        delay = min(p.transient_base_delay * 2 ** exponent, p.max_backoff)
        log.warning(f"{self.resource}: {err} "
                    f"(retry {self._transient_failures}/{p.max_transient_retries} in {delay:.0f}s)")
        return delay

    # ── State ──

    def _idle(self, delay: float) -> float:
        self.state = PollerState.IDLE
        return delay

    def _stop(self, err: FatalFetchError):
        self.state = PollerState.STOPPED
        self.error = err
