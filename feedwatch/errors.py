"""Error taxonomy shared by the check pipeline and the CLI."""

from __future__ import annotations


class FeedwatchError(Exception):
    """Base error carrying a short message plus optional detail and hint."""

    def __init__(self, message: str, detail: str | None = None, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail
        self.hint = hint

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


class FetchError(FeedwatchError):
    """Network failure or HTTP status >= 400 while fetching a subscription."""


class ExtractionError(FeedwatchError):
    """Saved CSS selectors matched zero items on a page."""


class TransportError(FeedwatchError):
    """Notification delivery failed or timed out."""


class RecoveryError(FeedwatchError):
    """Selector re-identification failed."""


class StoreError(FeedwatchError):
    """Persistent state is unreadable, corrupted or could not be reset."""


class ConfigError(FeedwatchError):
    """Configuration file is unreadable or invalid."""


__all__ = [
    "ConfigError",
    "ExtractionError",
    "FeedwatchError",
    "FetchError",
    "RecoveryError",
    "StoreError",
    "TransportError",
]
