"""Pytest configuration providing isolated state and shared fixtures."""

from __future__ import annotations

import os
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Iterable

import pytest

from feedwatch.config import (
    ChannelConfig,
    ConfigLocator,
    ConfigRepository,
    CssSubscription,
    FeedwatchConfig,
    RssSubscription,
)
from feedwatch.engine import DedupLedger, FetchResult, HealthTracker
from feedwatch.engine.parser import FeedItem
from feedwatch.errors import TransportError
from feedwatch.infra import Database, SQLiteManager


@pytest.fixture(scope="session", autouse=True)
def isolated_home(tmp_path_factory: pytest.TempPathFactory) -> Iterable[Path]:
    home = tmp_path_factory.mktemp("feedwatch-home")
    previous = os.environ.get("FEEDWATCH_HOME")
    os.environ["FEEDWATCH_HOME"] = str(home)
    os.environ.pop("FEEDWATCH_DB_PATH", None)
    yield home
    if previous is None:
        os.environ.pop("FEEDWATCH_HOME", None)
    else:
        os.environ["FEEDWATCH_HOME"] = previous


@pytest.fixture
def storage() -> Iterable[SQLiteManager]:
    manager = SQLiteManager()
    yield manager
    manager.close_all()


@pytest.fixture
def database(storage: SQLiteManager, tmp_path: Path) -> Database:
    return storage.connect(tmp_path / "data" / "feedwatch.db")


@pytest.fixture
def ledger(database: Database) -> DedupLedger:
    return DedupLedger(database)


@pytest.fixture
def health_tracker(database: Database) -> HealthTracker:
    return HealthTracker(database)


@pytest.fixture
def rss_subscription() -> Callable[..., RssSubscription]:
    def _builder(**overrides: Any) -> RssSubscription:
        base: dict[str, Any] = {
            "url": "https://blog.example.com",
            "rss_url": "https://blog.example.com/feed.xml",
        }
        base.update(overrides)
        return RssSubscription(**base)

    return _builder


@pytest.fixture
def css_subscription() -> Callable[..., CssSubscription]:
    def _builder(**overrides: Any) -> CssSubscription:
        base: dict[str, Any] = {
            "url": "https://news.example.com/latest",
            "item_selector": "ul.posts li",
            "title_selector": "a",
            "link_selector": "a",
        }
        base.update(overrides)
        return CssSubscription(**base)

    return _builder


@pytest.fixture
def channel_config() -> Callable[..., ChannelConfig]:
    def _builder(**overrides: Any) -> ChannelConfig:
        base: dict[str, Any] = {
            "name": "Team",
            "apprise_url": "tgram://bot-token/12345",
            "subscriptions": [],
        }
        base.update(overrides)
        return ChannelConfig(**base)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path) -> ConfigRepository:
    locator = ConfigLocator(home=tmp_path / "home")
    return ConfigRepository(locator)


@pytest.fixture
def make_config() -> Callable[..., FeedwatchConfig]:
    def _builder(*channels: ChannelConfig, **overrides: Any) -> FeedwatchConfig:
        return FeedwatchConfig(channels=list(channels), **overrides)

    return _builder


def items(*pairs: tuple[str, str]) -> list[FeedItem]:
    return [FeedItem(title=title, link=link) for title, link in pairs]


class StubFetcher:
    """Serve canned results per subscription URL; exceptions are raised."""

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[tuple[str, Any]] = []
        self._lock = Lock()

    def fetch(self, subscription, tokens=None) -> FetchResult:
        with self._lock:
            self.calls.append((subscription.url, tokens))
        response = self.responses[subscription.url]
        if callable(response):
            response = response(subscription, tokens)
        if isinstance(response, Exception):
            raise response
        return response


class RecordingTransport:
    """Collect sent notifications; ``fail_on`` bodies raise ``TransportError``."""

    def __init__(self, fail_on: Callable[[str], bool] | None = None) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_on = fail_on
        self._lock = Lock()

    def send(self, destination_url: str, body: str) -> None:
        if self.fail_on is not None and self.fail_on(body):
            raise TransportError("Failed to send notification", "apprise exited with an error.")
        with self._lock:
            self.sent.append((destination_url, body))

    def bodies(self) -> list[str]:
        with self._lock:
            return [body for _, body in self.sent]


@pytest.fixture
def feed_items() -> Callable[..., list[FeedItem]]:
    return items


@pytest.fixture
def stub_fetcher() -> Callable[..., StubFetcher]:
    return StubFetcher


@pytest.fixture
def recording_transport() -> Callable[..., RecordingTransport]:
    return RecordingTransport
