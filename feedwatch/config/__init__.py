"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository, default_home
from .models import (
    ChannelConfig,
    CleanupConfig,
    CssSelectors,
    CssSubscription,
    FeedwatchConfig,
    RssSubscription,
    SelectorUpdate,
    Subscription,
    name_key,
)

__all__ = [
    "ChannelConfig",
    "CleanupConfig",
    "ConfigLocator",
    "ConfigRepository",
    "CssSelectors",
    "CssSubscription",
    "FeedwatchConfig",
    "RssSubscription",
    "SelectorUpdate",
    "Subscription",
    "default_home",
    "name_key",
]
