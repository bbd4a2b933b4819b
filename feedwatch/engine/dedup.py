"""Deduplication ledger of delivered items, backed by the shared SQLite store."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from ..infra.storage import Database


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    # Fixed-width UTC text so lexical order in SQLite matches time order.
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def fingerprint(destination: str, title: str, link: str) -> str:
    """SHA-256 over link, title and destination, in that order."""

    return hashlib.sha256(f"{link}{title}{destination}".encode("utf-8")).hexdigest()


@dataclass(slots=True)
class DedupRecord:
    hash: str
    destination: str
    subscription_url: str
    title: str
    link: str
    sent_at: str | None = None

    @classmethod
    def build(cls, destination: str, subscription_url: str, title: str, link: str) -> "DedupRecord":
        return cls(
            hash=fingerprint(destination, title, link),
            destination=destination,
            subscription_url=subscription_url,
            title=title,
            link=link,
        )


@dataclass(slots=True)
class EvictionResult:
    deleted_by_ttl: int
    deleted_by_cap: int


class DedupLedger:
    """Record of items already delivered, one row per (item, destination)."""

    def __init__(self, database: Database, clock: Callable[[], datetime] = utc_now) -> None:
        self.database = database
        self._clock = clock

    def exists(self, dedup_hash: str) -> bool:
        with self.database.transaction() as conn:
            cur = conn.execute("SELECT 1 FROM sent_items WHERE dedup_hash = ? LIMIT 1", (dedup_hash,))
            return cur.fetchone() is not None

    def insert_if_absent(self, record: DedupRecord) -> bool:
        """Insert ``record`` unless its hash is known; return whether a row was written."""

        sent_at = record.sent_at or format_timestamp(self._clock())
        with self.database.transaction() as conn:
            cur = conn.execute(
                """
                INSERT INTO sent_items(dedup_hash, channel_key, subscription_url, title, link, sent_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(dedup_hash) DO NOTHING
                """,
                (
                    record.hash,
                    record.destination,
                    record.subscription_url,
                    record.title,
                    record.link,
                    sent_at,
                ),
            )
            inserted = cur.rowcount == 1
        if inserted:
            record.sent_at = sent_at
        return inserted

    def delete(self, dedup_hash: str) -> None:
        with self.database.transaction() as conn:
            conn.execute("DELETE FROM sent_items WHERE dedup_hash = ?", (dedup_hash,))

    def count(self) -> int:
        with self.database.transaction() as conn:
            return int(conn.execute("SELECT count(*) FROM sent_items").fetchone()[0])

    def evict(self, ttl: timedelta | None, max_records: int | None) -> EvictionResult:
        """Drop records older than ``ttl``, then the oldest beyond ``max_records``.

        ``None`` disables the corresponding phase.
        """

        deleted_by_ttl = 0
        deleted_by_cap = 0
        with self.database.transaction() as conn:
            if ttl is not None:
                threshold = format_timestamp(self._clock() - ttl)
                cur = conn.execute("DELETE FROM sent_items WHERE sent_at < ?", (threshold,))
                deleted_by_ttl = max(0, cur.rowcount)
            if max_records is not None:
                remaining = int(conn.execute("SELECT count(*) FROM sent_items").fetchone()[0])
                over_by = remaining - max_records
                if over_by > 0:
                    cur = conn.execute(
                        """
                        DELETE FROM sent_items WHERE id IN (
                            SELECT id FROM sent_items ORDER BY sent_at ASC, id ASC LIMIT ?
                        )
                        """,
                        (over_by,),
                    )
                    deleted_by_cap = max(0, cur.rowcount)
        return EvictionResult(deleted_by_ttl=deleted_by_ttl, deleted_by_cap=deleted_by_cap)

    def seed(
        self, destination: str, subscription_url: str, items: Iterable[tuple[str, str]]
    ) -> int:
        """Mark ``(title, link)`` pairs as already delivered; return how many were new."""

        inserted = 0
        for title, link in items:
            if self.insert_if_absent(DedupRecord.build(destination, subscription_url, title, link)):
                inserted += 1
        return inserted

    def recent(self, limit: int = 20, destination: str | None = None) -> list[DedupRecord]:
        query = "SELECT * FROM sent_items"
        params: tuple = ()
        if destination is not None:
            query += " WHERE channel_key = ?"
            params = (destination,)
        query += " ORDER BY sent_at DESC, id DESC LIMIT ?"
        with self.database.transaction() as conn:
            rows = conn.execute(query, params + (limit,)).fetchall()
        return [
            DedupRecord(
                hash=row["dedup_hash"],
                destination=row["channel_key"],
                subscription_url=row["subscription_url"],
                title=row["title"] or "",
                link=row["link"] or "",
                sent_at=row["sent_at"],
            )
            for row in rows
        ]


__all__ = [
    "DedupLedger",
    "DedupRecord",
    "EvictionResult",
    "fingerprint",
    "format_timestamp",
    "utc_now",
]
