"""
Core data types. No behavior beyond ordering and validation, just shapes.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

_RESOURCE_PART = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass(frozen=True)
class WatchedResource:
    """An owner/name pair, fixed for the lifetime of the process."""
    owner: str
    name: str

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"


def parse_resource(text: str) -> WatchedResource:
    """Parse 'owner/name'. Raises ValueError on anything else."""
    parts = text.strip().split("/")
    if len(parts) != 2 or not all(_RESOURCE_PART.match(p) for p in parts):
        raise ValueError(f"Repositories must be in username/repo format: {text!r}")
    return WatchedResource(owner=parts[0], name=parts[1])


@dataclass
class Item:
    """A single event observed on a feed."""
    item_id: str            # server-assigned, increasing within a feed
    kind: str               # e.g. "PushEvent"
    actor: str
    resource: WatchedResource
    created_at: datetime | None = None
    payload: dict = field(default_factory=dict)

    @property
    def position(self) -> int:
        return int(self.item_id)

    def __repr__(self) -> str:
        return f"Item({self.item_id}, {self.kind}, {self.resource})"


@dataclass(frozen=True)
class FeedCursor:
    """
    Everything up to `position` has been delivered.

    `etag` is the validator of the response that produced the cursor, used
    so the server can answer "nothing new" with a 304.
    """
    position: int | None = None
    etag: str | None = None

    @classmethod
    def empty(cls) -> "FeedCursor":
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.position is None

    def covers(self, item: Item) -> bool:
        """True if the item is at or before this boundary."""
        return self.position is not None and item.position <= self.position

    def is_after(self, other: "FeedCursor") -> bool:
        if self.position is None:
            return False
        return other.position is None or self.position > other.position

    def to_dict(self) -> dict:
        return {"position": self.position, "etag": self.etag}

    @classmethod
    def from_dict(cls, data: dict) -> "FeedCursor":
        position = data.get("position")
        return cls(
            position=int(position) if position is not None else None,
            etag=data.get("etag") or None,
        )


@dataclass(frozen=True)
class Unchanged:
    """Nothing new since the supplied cursor."""
    poll_interval: int | None = None


@dataclass(frozen=True)
class NewData:
    """New items, oldest first, and the cursor that covers all of them."""
    items: tuple[Item, ...]
    cursor: FeedCursor
    poll_interval: int | None = None

    def __post_init__(self):
        if not self.items:
            raise ValueError("NewData requires at least one item")


Page = Unchanged | NewData


@dataclass
class FeedStatus:
    """Heartbeat notice handed to the sink after every successful poll."""
    resource: WatchedResource
    kind: str               # "unchanged" | "new"
    item_count: int
    remaining: int | None
    observed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
