"""HTTP fetching of feeds and pages with conditional requests and retries."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

import httpx
import structlog

from .. import __version__
from ..config import CssSubscription, RssSubscription, Subscription
from ..errors import FetchError
from ..infra import HostRateLimiter
from .cache import CacheTokens
from .parser import FeedItem, extract_css_items, parse_feed

FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml, */*"
RETRY_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(slots=True)
class FetchResult:
    """Outcome of one subscription fetch.

    ``not_modified`` is only ever set for feeds answering 304; ``items`` may
    legitimately be empty otherwise.
    """

    items: list[FeedItem] = field(default_factory=list)
    not_modified: bool = False
    new_tokens: CacheTokens | None = None


class Fetcher:
    """Fetch subscriptions through one shared ``httpx.Client``."""

    def __init__(
        self,
        rate_limiter: HostRateLimiter | None = None,
        client: httpx.Client | None = None,
        timeout: float = 30.0,
        retries: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.rate_limiter = rate_limiter or HostRateLimiter()
        self._client = client or httpx.Client(
            follow_redirects=True,
            timeout=timeout,
            headers={"User-Agent": f"feedwatch/{__version__}"},
        )
        self.retries = retries
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.logger = logger or structlog.get_logger("feedwatch.fetcher")

    def close(self) -> None:
        self._client.close()

    def fetch(self, subscription: Subscription, tokens: CacheTokens | None = None) -> FetchResult:
        if isinstance(subscription, RssSubscription):
            return self._fetch_feed(subscription, tokens)
        if isinstance(subscription, CssSubscription):
            return self._fetch_page(subscription)
        raise TypeError(f"Unsupported subscription type: {type(subscription).__name__}")

    # ------------------------------------------------------------------
    def _fetch_feed(self, subscription: RssSubscription, tokens: CacheTokens | None) -> FetchResult:
        headers = {"Accept": FEED_ACCEPT}
        if tokens is not None:
            if tokens.etag:
                headers["If-None-Match"] = tokens.etag
            if tokens.last_modified:
                headers["If-Modified-Since"] = tokens.last_modified
        response = self._request(subscription.rss_url, headers)
        if response.status_code == 304:
            return FetchResult(not_modified=True)
        self._raise_for_status(response, subscription.rss_url)
        new_tokens = CacheTokens(
            etag=response.headers.get("etag"),
            last_modified=response.headers.get("last-modified"),
        )
        return FetchResult(
            items=parse_feed(response.content, subscription.url),
            new_tokens=None if new_tokens.is_empty() else new_tokens,
        )

    def _fetch_page(self, subscription: CssSubscription) -> FetchResult:
        response = self._request(subscription.url, {})
        self._raise_for_status(response, subscription.url)
        return FetchResult(
            items=extract_css_items(response.text, subscription.url, subscription.selectors)
        )

    def _request(self, url: str, headers: dict[str, str]) -> httpx.Response:
        attempt = 0
        while True:
            attempt += 1
            self.rate_limiter.wait(url)
            try:
                response = self._client.get(url, headers=headers)
            except httpx.HTTPError as exc:
                self.logger.warning("fetch_error", url=url, attempt=attempt, error=str(exc))
                if attempt > self.retries:
                    raise FetchError(
                        f"Failed to fetch {url}",
                        str(exc) or type(exc).__name__,
                        "Check if the URL is still valid or reachable.",
                    ) from exc
            else:
                if response.status_code not in RETRY_STATUS_CODES or attempt > self.retries:
                    return response
                self.logger.info(
                    "fetch_retry", url=url, attempt=attempt, status=response.status_code
                )
            self._sleep(self.retry_delay)

    @staticmethod
    def _raise_for_status(response: httpx.Response, url: str) -> None:
        if response.status_code >= 400:
            raise FetchError(
                f"Failed to fetch {url}",
                f"HTTP {response.status_code} {response.reason_phrase}",
                "The site may be blocking automated requests. Try again later or verify the URL.",
            )


__all__ = ["Fetcher", "FetchResult", "RETRY_STATUS_CODES"]
