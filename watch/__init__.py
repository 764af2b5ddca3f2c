from watch.poller import FeedPoller, PacingPolicy, PollerState, SinkError
from watch.supervisor import FeedOutcome, WatchReport, WatchSupervisor

__all__ = [
    "FeedPoller",
    "PacingPolicy",
    "PollerState",
    "SinkError",
    "FeedOutcome",
    "WatchReport",
    "WatchSupervisor",
]
