"""Pydantic models describing destinations, subscriptions and cleanup policy."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class CleanupConfig(BaseModel):
    """Bounds on the dedup ledger applied once per check run."""

    ttl_days: int = Field(default=90, gt=0)
    max_records: int = Field(default=50_000, gt=0)


class CssSelectors(BaseModel):
    """Selectors locating items, their titles and their links on a page."""

    item_selector: str = Field(min_length=1)
    title_selector: str = Field(min_length=1)
    link_selector: str = Field(min_length=1)


class RssSubscription(BaseModel):
    """Syndication feed subscription; eligible for conditional fetches."""

    kind: Literal["rss"] = "rss"
    url: str = Field(min_length=1)
    rss_url: str = Field(min_length=1)


class CssSubscription(BaseModel):
    """Scraped page subscription driven by saved CSS selectors."""

    kind: Literal["css"] = "css"
    url: str = Field(min_length=1)
    item_selector: str = Field(min_length=1)
    title_selector: str = Field(min_length=1)
    link_selector: str = Field(min_length=1)

    @property
    def selectors(self) -> CssSelectors:
        return CssSelectors(
            item_selector=self.item_selector,
            title_selector=self.title_selector,
            link_selector=self.link_selector,
        )

    def with_selectors(self, selectors: CssSelectors) -> "CssSubscription":
        return self.model_copy(update=selectors.model_dump())


Subscription = Annotated[Union[RssSubscription, CssSubscription], Field(discriminator="kind")]


def _tag_legacy_subscription(value: Any) -> Any:
    # Older files carry no ``kind``; tag them once here by field presence.
    if isinstance(value, dict) and "kind" not in value:
        if "rss_url" in value:
            return {**value, "kind": "rss"}
        if "item_selector" in value:
            return {**value, "kind": "css"}
    return value


def name_key(name: str) -> str:
    """Case-insensitive lookup key for destination names."""

    return name.strip().lower()


class ChannelConfig(BaseModel):
    """A notification destination and the subscriptions routed to it.

    ``apprise_url`` is the stable routing key used for dedup, health and
    delivery ordering; ``name`` is the display identity used by the CLI.
    """

    name: str = Field(min_length=1)
    apprise_url: str = Field(min_length=1)
    subscriptions: list[Subscription] = Field(default_factory=list)

    @field_validator("subscriptions", mode="before")
    @classmethod
    def _tag_subscriptions(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [_tag_legacy_subscription(item) for item in value]
        return value

    @property
    def routing_key(self) -> str:
        return self.apprise_url


class SelectorUpdate(BaseModel):
    """Selectors recovered for one CSS subscription during a check run."""

    channel_name: str
    subscription_url: str
    selectors: CssSelectors


class FeedwatchConfig(BaseModel):
    """Top-level configuration file contents."""

    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)
    # Program run as ``<command...> <url>`` to re-derive drifted CSS selectors.
    recovery_command: list[str] = Field(default_factory=list)
    channels: list[ChannelConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _validate_unique_names(self) -> "FeedwatchConfig":
        seen: set[str] = set()
        for channel in self.channels:
            key = name_key(channel.name)
            if key in seen:
                raise ValueError(f"Duplicate channel name: {channel.name}")
            seen.add(key)
        return self

    def find_channel(self, name: str) -> ChannelConfig | None:
        key = name_key(name)
        return next((channel for channel in self.channels if name_key(channel.name) == key), None)

    def select_channels(self, name: str | None = None) -> list[ChannelConfig]:
        if name is None:
            return list(self.channels)
        channel = self.find_channel(name)
        return [channel] if channel is not None else []

    def apply_selector_updates(self, updates: list[SelectorUpdate]) -> "FeedwatchConfig":
        """Return a copy with recovered selectors written into matching CSS subscriptions."""

        by_target = {(name_key(u.channel_name), u.subscription_url): u.selectors for u in updates}
        channels: list[ChannelConfig] = []
        for channel in self.channels:
            subscriptions = []
            for subscription in channel.subscriptions:
                selectors = by_target.get((name_key(channel.name), subscription.url))
                if selectors is not None and isinstance(subscription, CssSubscription):
                    subscription = subscription.with_selectors(selectors)
                subscriptions.append(subscription)
            channels.append(channel.model_copy(update={"subscriptions": subscriptions}))
        return self.model_copy(update={"channels": channels})


__all__ = [
    "ChannelConfig",
    "CleanupConfig",
    "CssSelectors",
    "CssSubscription",
    "FeedwatchConfig",
    "RssSubscription",
    "SelectorUpdate",
    "Subscription",
    "name_key",
]
