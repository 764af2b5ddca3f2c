"""
Runs one FeedPoller per watched resource, each in its own thread.

A feed that fails fatally stops alone; its siblings keep polling. run()
returns once every feed has stopped, either fatally or because the stop
event was set.
"""

import logging
import threading
from dataclasses import dataclass

from delivery.output import Sink
from feeds.base import FatalFetchError, PageFetcher
from feeds.budget import RateBudget
from models import WatchedResource
from storage.db import Storage
from watch.poller import FeedPoller, PacingPolicy, PollerState

log = logging.getLogger(__name__)

# How often the joining thread wakes up, so signals reach the main thread
_JOIN_TICK = 0.5


@dataclass
class FeedOutcome:
    resource: WatchedResource
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class WatchReport:
    feeds: tuple[FeedOutcome, ...]

    @property
    def failed(self) -> list[FeedOutcome]:
        return [f for f in self.feeds if f.failed]

    @property
    def all_failed(self) -> bool:
        return bool(self.feeds) and all(f.failed for f in self.feeds)


class WatchSupervisor:
    def __init__(
        self,
        fetcher: PageFetcher,
        budget: RateBudget,
        policy: PacingPolicy | None = None,
        store: Storage | None = None,
        stop: threading.Event | None = None,
    ):
        self._fetcher = fetcher
        self._budget = budget
        self._policy = policy or PacingPolicy()
        self._store = store
        self._stop = stop or threading.Event()
        self._lock = threading.Lock()
        self._errors: dict[WatchedResource, str] = {}
        self.pollers: list[FeedPoller] = []

    def stop(self):
        """Ask every poller to exit at its next loop boundary."""
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def run(self, resources: list[WatchedResource], sink: Sink) -> WatchReport:
        unique = list(dict.fromkeys(resources))
        self.pollers = [self._make_poller(r, sink) for r in unique]

        threads = [
            threading.Thread(
                target=self._run_feed,
                args=(poller,),
                name=f"feed-{poller.resource}",
                daemon=True,
            )
            for poller in self.pollers
        ]
        for t in threads:
            t.start()
        log.info(f"Watching {len(threads)} feed(s)")

        for t in threads:
            while t.is_alive():
                t.join(timeout=_JOIN_TICK)

        outcomes = tuple(
            FeedOutcome(resource=p.resource, error=self._errors.get(p.resource))
            for p in self.pollers
        )
        return WatchReport(feeds=outcomes)

    def _make_poller(self, resource: WatchedResource, sink: Sink) -> FeedPoller:
        cursor = self._store.get_cursor(resource) if self._store is not None else None
        if cursor is not None:
            log.info(f"{resource}: resuming from cursor {cursor.position}")
        return FeedPoller(
            resource=resource,
            fetcher=self._fetcher,
            sink=sink,
            budget=self._budget,
            policy=self._policy,
            cursor=cursor,
            store=self._store,
        )

    def _run_feed(self, poller: FeedPoller):
        try:
            delay = poller.seed(self._stop)
            if delay is None or self._stop.wait(delay):
                poller.state = PollerState.STOPPED
                return
            poller.run(self._stop)
        except FatalFetchError as e:
            self._record_failure(poller.resource, str(e))
        except Exception as e:
            log.exception(f"{poller.resource}: feed crashed")
            self._record_failure(poller.resource, f"{type(e).__name__}: {e}")

    def _record_failure(self, resource: WatchedResource, error: str):
        with self._lock:
            self._errors[resource] = error
            active = len(self.pollers) - len(self._errors)
        log.error(f"{resource}: feed stopped: {error} ({active} feed(s) still active)")
