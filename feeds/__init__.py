from feeds.base import FatalFetchError, FetchError, PageFetcher, RateLimitedError, TransientFetchError
from feeds.budget import RateBudget
from feeds.github import GitHubEventsFetcher

__all__ = [
    "FetchError",
    "FatalFetchError",
    "RateLimitedError",
    "TransientFetchError",
    "PageFetcher",
    "RateBudget",
    "GitHubEventsFetcher",
]
