"""
Shared fakes: a scripted fetcher, a recording sink and a fake HTTP session
that hands out real requests.Response objects. No network access.
"""

import json
import sys
import tempfile
import threading
from pathlib import Path

import pytest
import requests
from requests.structures import CaseInsensitiveDict

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from delivery.output import Sink
from feeds.base import PageFetcher
from models import FeedCursor, FeedStatus, Item, NewData, Unchanged, WatchedResource
from storage.db import Storage


REPO = WatchedResource("octo", "widgets")


def make_item(position: int, resource: WatchedResource = REPO, kind: str = "PushEvent") -> Item:
    return Item(item_id=str(position), kind=kind, actor="alice", resource=resource)


def new_data(*positions: int, resource: WatchedResource = REPO, etag: str | None = None) -> NewData:
    items = tuple(make_item(p, resource) for p in positions)
    return NewData(items=items, cursor=FeedCursor(position=max(positions), etag=etag))


def make_event(position: int, kind: str = "PushEvent", login: str = "alice") -> dict:
    return {
        "id": str(position),
        "type": kind,
        "actor": {"login": login},
        "repo": {"name": "octo/widgets"},
        "payload": {"ref": "refs/heads/main"},
        "created_at": "2026-02-10T00:00:00Z",
    }


def make_response(status: int = 200, body=None, headers: dict | None = None,
                  url: str = "https://api.github.com/repos/octo/widgets/events") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(body).encode("utf-8") if body is not None else b""
    resp.headers = CaseInsensitiveDict(headers or {})
    resp.url = url
    resp.encoding = "utf-8"
    return resp


class FakeSession:
    """Stands in for requests.Session. Responses (or exceptions) are handed out in order."""

    def __init__(self, responses: list):
        self.headers: dict = {}
        self._responses = list(responses)
        self.calls: list[dict] = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": params, "headers": headers or {}, "timeout": timeout})
        nxt = self._responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


class ScriptedFetcher(PageFetcher):
    """Returns scripted pages or raises scripted errors; Unchanged once the script runs out."""

    def __init__(self, script: list | None = None):
        self.script = list(script or [])
        self.cursors_seen: list[FeedCursor] = []

    def name(self) -> str:
        return "scripted"

    def fetch(self, resource, cursor):
        self.cursors_seen.append(cursor)
        if not self.script:
            return Unchanged()
        nxt = self.script.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


class RecordingSink(Sink):
    """
    Collects everything it accepts.

    fail_on: item ids whose first delivery raises.
    record_before_failing: the failing delivery still lands in `items`,
    like a consumer that crashed right after acting on the item.
    crash: failing ids raise SystemExit instead, taking the process down.
    """

    def __init__(self, fail_on: set[str] | None = None, record_before_failing: bool = False,
                 fail_always: bool = False, fail_status: bool = False,
                 crash: bool = False):
        self.items: list[Item] = []
        self.statuses: list[FeedStatus] = []
        self._fail_on = set(fail_on or ())
        self._record_before_failing = record_before_failing
        self._fail_always = fail_always
        self._fail_status = fail_status
        self._crash = crash
        self._lock = threading.Lock()

    def emit(self, resource, item):
        with self._lock:
            if self._fail_always:
                raise RuntimeError("sink down")
            if item.item_id in self._fail_on:
                self._fail_on.discard(item.item_id)
                if self._record_before_failing:
                    self.items.append(item)
                if self._crash:
                    raise SystemExit(f"process died on {item.item_id}")
                raise RuntimeError(f"sink crashed on {item.item_id}")
            self.items.append(item)

    def status(self, notice):
        with self._lock:
            if self._fail_status:
                raise RuntimeError("status channel down")
            self.statuses.append(notice)

    def ids(self) -> list[str]:
        with self._lock:
            return [i.item_id for i in self.items]


@pytest.fixture
def tmp_storage():
    """Create a temporary Storage instance for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        storage = Storage(Path(tmpdir) / "test.db")
        yield storage
        storage.close()
