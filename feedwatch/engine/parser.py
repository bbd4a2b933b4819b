"""Feed and HTML item extraction."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urljoin

import feedparser
from selectolax.parser import HTMLParser

from ..config import CssSelectors

UNTITLED = "Untitled"


@dataclass(slots=True)
class FeedItem:
    """One candidate notification extracted from a subscription."""

    title: str
    link: str
    published_at: datetime | None = None


def resolve_link(href: str | None, base_url: str) -> str:
    href = (href or "").strip()
    if not href:
        return base_url
    return urljoin(base_url, href)


def _entry_datetime(entry: Any) -> datetime | None:
    for field in ("published_parsed", "updated_parsed"):
        value = entry.get(field)
        if value:
            return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    return None


def parse_feed(payload: str | bytes, subscription_url: str) -> list[FeedItem]:
    """Parse RSS/Atom ``payload``; links resolve against ``subscription_url``."""

    feed = feedparser.parse(payload)
    items: list[FeedItem] = []
    for entry in feed.entries:
        link = entry.get("link") or entry.get("id") or subscription_url
        title = (entry.get("title") or "").strip()
        if not title:
            summary = (entry.get("summary") or "").strip()
            title = summary[:100] if summary else UNTITLED
        items.append(
            FeedItem(
                title=title,
                link=resolve_link(link, subscription_url),
                published_at=_entry_datetime(entry),
            )
        )
    return items


def extract_css_items(html: str, subscription_url: str, selectors: CssSelectors) -> list[FeedItem]:
    """Apply saved selectors to a page; each matched item yields a title and link."""

    parser = HTMLParser(html)
    items: list[FeedItem] = []
    for node in parser.css(selectors.item_selector):
        title_node = node.css_first(selectors.title_selector)
        link_node = node.css_first(selectors.link_selector)
        title = ""
        if title_node is not None:
            title = title_node.text(strip=True)
        if not title and link_node is not None:
            title = link_node.text(strip=True)
        href = None
        if link_node is not None:
            href = link_node.attributes.get("href")
        if not href and title_node is not None:
            href = title_node.attributes.get("href")
        items.append(
            FeedItem(title=title or UNTITLED, link=resolve_link(href, subscription_url))
        )
    return items


def sort_oldest_first(items: list[FeedItem]) -> list[FeedItem]:
    """Order by publish time ascending; undated items keep their order at the end."""

    dated = [item for item in items if item.published_at is not None]
    undated = [item for item in items if item.published_at is None]
    dated.sort(key=lambda item: item.published_at)
    return dated + undated


__all__ = ["FeedItem", "extract_css_items", "parse_feed", "resolve_link", "sort_oldest_first"]
