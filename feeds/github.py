"""
GitHub repository events fetcher. Uses the REST events endpoint.

GET /repos/{owner}/{repo}/events answers 304 to a matching If-None-Match,
which does not count against the rate limit. That is what makes polling
every minute affordable.
"""

import logging
from datetime import datetime

import requests

from config.settings import Config
from feeds.base import FatalFetchError, PageFetcher, RateLimitedError, TransientFetchError
from feeds.budget import RateBudget
from models import FeedCursor, Item, NewData, Page, Unchanged, WatchedResource

log = logging.getLogger(__name__)


def _int_or_none(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class GitHubEventsFetcher(PageFetcher):
    def __init__(self, config: Config, budget: RateBudget, token: str = "", session: requests.Session | None = None):
        self._api_base = config.api_base.rstrip("/")
        self._timeout = config.request_timeout
        self._max_pages = max(1, config.max_pages)
        self._budget = budget
        self._session = session or requests.Session()
        self._session.headers["Accept"] = "application/vnd.github.v3+json"
        self._session.headers["User-Agent"] = config.user_agent
        if token and not token.startswith(("ghp_...", "your")):
            self._session.headers["Authorization"] = f"token {token}"

    def name(self) -> str:
        return "github_events"

    @property
    def budget(self) -> RateBudget:
        return self._budget

    def fetch(self, resource: WatchedResource, cursor: FeedCursor) -> Page:
        url = f"{self._api_base}/repos/{resource.owner}/{resource.name}/events"
        headers = {}
        if cursor.etag:
            headers["If-None-Match"] = cursor.etag

        resp = self._get(url, params={"per_page": 100}, headers=headers)
        poll_interval = _int_or_none(resp.headers.get("X-Poll-Interval"))
        if resp.status_code == 304:
            return Unchanged(poll_interval=poll_interval)

        etag = resp.headers.get("ETag")
        items: list[Item] = []
        seen_ids: set[str] = set()
        pages = 0

        while True:
            pages += 1
            reached_known = False
            for item in self._parse_events(resp, resource):
                if cursor.covers(item):
                    reached_known = True
                    continue
                # Events shift between pages while we paginate
                if item.item_id in seen_ids:
                    continue
                seen_ids.add(item.item_id)
                items.append(item)

            next_url = resp.links.get("next", {}).get("url")
            # A fresh feed only needs the newest page to establish its boundary
            if reached_known or cursor.is_empty or not next_url:
                break
            if pages >= self._max_pages:
                log.warning(f"{resource}: stopped catching up after {pages} page(s), "
                            f"older events since {cursor.position} were skipped")
                break
            resp = self._get(next_url)

        if not items:
            return Unchanged(poll_interval=poll_interval)

        items.sort(key=lambda i: i.position)
        new_cursor = FeedCursor(position=items[-1].position, etag=etag)
        log.debug(f"{resource}: {len(items)} new events across {pages} page(s)")
        return NewData(items=tuple(items), cursor=new_cursor, poll_interval=poll_interval)

    def _get(self, url: str, params: dict | None = None, headers: dict | None = None) -> requests.Response:
        """One GET. Returns 200/304 responses, raises a FetchError for everything else."""
        try:
            resp = self._session.get(url, params=params, headers=headers, timeout=self._timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransientFetchError(f"GitHub request failed: {e}") from e
        except requests.RequestException as e:
            raise TransientFetchError(f"GitHub request error: {e}") from e

        self._budget.update_from_headers(resp.headers)
        status = resp.status_code

        if status in (200, 304):
            return resp

        if status == 429 or (status == 403 and self._is_rate_limited(resp)):
            retry_after = _int_or_none(resp.headers.get("Retry-After"))
            raise RateLimitedError(
                f"GitHub rate limit hit for {url} (HTTP {status})",
                retry_after=float(retry_after) if retry_after is not None else None,
                reset_at=self._budget.reset_at,
            )
        if status >= 500:
            raise TransientFetchError(f"GitHub API {url}: HTTP {status}")
        if status == 401:
            raise FatalFetchError(f"GitHub token rejected (401) for {url}")
        if status == 404:
            raise FatalFetchError(f"No such repository or no access: {url}")
        raise FatalFetchError(f"GitHub API {url}: HTTP {status}")

    @staticmethod
    def _is_rate_limited(resp: requests.Response) -> bool:
        return resp.headers.get("X-RateLimit-Remaining") == "0" or "Retry-After" in resp.headers

    def _parse_events(self, resp: requests.Response, resource: WatchedResource) -> list[Item]:
        try:
            data = resp.json()
        except ValueError as e:
            raise TransientFetchError(f"Undecodable events body from {resp.url}: {e}") from e
        if not isinstance(data, list):
            raise TransientFetchError(f"Expected an event list from {resp.url}, got {type(data).__name__}")

        items = []
        for event in data:
            if not isinstance(event, dict):
                continue
            event_id = str(event.get("id", ""))
            if not event_id.isdigit():
                continue

            created_at = None
            created_at_str = event.get("created_at") or ""
            if created_at_str:
                try:
                    created_at = datetime.fromisoformat(created_at_str.replace("Z", "+00:00"))
                except (ValueError, TypeError):
                    pass

            items.append(Item(
                item_id=event_id,
                kind=event.get("type") or "UnknownEvent",
                actor=(event.get("actor") or {}).get("login", ""),
                resource=resource,
                created_at=created_at,
                payload=event.get("payload") or {},
            ))
        return items
