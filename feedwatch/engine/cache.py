"""Freshness tokens for conditional feed requests, kept in the ``meta`` table."""

from __future__ import annotations

from dataclasses import dataclass

from ..infra.storage import Database


@dataclass(slots=True)
class CacheTokens:
    etag: str | None = None
    last_modified: str | None = None

    def is_empty(self) -> bool:
        return not self.etag and not self.last_modified


def etag_key(feed_url: str) -> str:
    return f"etag:{feed_url}"


def last_modified_key(feed_url: str) -> str:
    return f"last-modified:{feed_url}"


class ConditionalCache:
    def __init__(self, database: Database) -> None:
        self.database = database

    def get_token(self, feed_url: str) -> CacheTokens:
        with self.database.transaction() as conn:
            rows = conn.execute(
                "SELECT key, value FROM meta WHERE key IN (?, ?)",
                (etag_key(feed_url), last_modified_key(feed_url)),
            ).fetchall()
        values = {row["key"]: row["value"] for row in rows}
        return CacheTokens(
            etag=values.get(etag_key(feed_url)),
            last_modified=values.get(last_modified_key(feed_url)),
        )

    def set_token(
        self, feed_url: str, etag: str | None = None, last_modified: str | None = None
    ) -> None:
        """Upsert whichever tokens are present; absent ones keep their stored value."""

        pairs = [
            (key, value)
            for key, value in ((etag_key(feed_url), etag), (last_modified_key(feed_url), last_modified))
            if value
        ]
        if not pairs:
            return
        with self.database.transaction() as conn:
            conn.executemany(
                """
                INSERT INTO meta(key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                pairs,
            )


__all__ = ["CacheTokens", "ConditionalCache", "etag_key", "last_modified_key"]
