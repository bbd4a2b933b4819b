"""Engine components: fetch, dedup, health, cache and delivery ordering."""

from .cache import CacheTokens, ConditionalCache
from .dedup import DedupLedger, DedupRecord, EvictionResult, fingerprint
from .fetcher import Fetcher, FetchResult
from .health import HealthState, HealthTracker
from .parser import FeedItem
from .recovery import CommandRecovery, SelectorRecovery
from .serializer import NotificationSerializer

__all__ = [
    "CacheTokens",
    "CommandRecovery",
    "ConditionalCache",
    "DedupLedger",
    "DedupRecord",
    "EvictionResult",
    "FeedItem",
    "FetchResult",
    "Fetcher",
    "HealthState",
    "HealthTracker",
    "NotificationSerializer",
    "SelectorRecovery",
    "fingerprint",
]
