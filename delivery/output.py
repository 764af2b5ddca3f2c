"""
Output delivery. The sink receives events and per-poll heartbeats.

CLI (stdout) is the only sink shipped. Anything that implements Sink can
be handed to the supervisor instead.
"""

import logging
import sys
import threading
from abc import ABC, abstractmethod
from typing import TextIO

from models import FeedStatus, Item, WatchedResource

log = logging.getLogger(__name__)


class Sink(ABC):
    """
    Consumer of delivered items.

    Contract:
    - emit() returning normally means the item was accepted. The poller only
      commits its cursor once every item of a page has been accepted.
    - Any exception means not accepted. The poller retries later.
    - Called from several feed threads; implementations serialise themselves.
    """

    @abstractmethod
    def emit(self, resource: WatchedResource, item: Item):
        ...

    @abstractmethod
    def status(self, notice: FeedStatus):
        ...


def format_item(item: Item) -> str:
    """One line per event: '#<id>--> <actor>: <Type> on owner/repo'."""
    line = f"#{item.item_id}--> {item.actor}: {item.kind} on {item.resource}"
    ref = item.payload.get("ref")
    if isinstance(ref, str) and ref:
        line += f" ({ref})"
    return line


def format_status(notice: FeedStatus) -> str:
    remaining = "?" if notice.remaining is None else str(notice.remaining)
    ts = f"{notice.observed_at.timestamp():f}"
    if notice.kind == "new":
        return f"{ts} {notice.item_count} new events on {notice.resource} ({remaining})"
    return f"{ts} no new events on {notice.resource} ({remaining})"


class ConsoleSink(Sink):
    """Print to stdout. That's it."""

    def __init__(self, stream: TextIO | None = None, heartbeats: bool = True):
        self._stream = stream or sys.stdout
        self._heartbeats = heartbeats
        self._lock = threading.Lock()

    def emit(self, resource: WatchedResource, item: Item):
        self._write(format_item(item))

    def status(self, notice: FeedStatus):
        if self._heartbeats:
            self._write(format_status(notice))

    def listening(self, resource: WatchedResource):
        self._write(f"listening for events on {resource}")

    def _write(self, line: str):
        with self._lock:
            print(line, file=self._stream, flush=True)
