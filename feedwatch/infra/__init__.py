"""Infra layer utilities (storage, rate limiting)."""

from .rate_limit import HostRateLimiter
from .storage import Database, SQLiteManager

__all__ = ["Database", "HostRateLimiter", "SQLiteManager"]
