from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone

from feedwatch.engine import DedupLedger, DedupRecord, fingerprint


class MutableClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def test_fingerprint_hashes_link_title_destination_in_order() -> None:
    expected = hashlib.sha256("https://a.example/1Hellotgram://x".encode("utf-8")).hexdigest()
    assert fingerprint("tgram://x", "Hello", "https://a.example/1") == expected
    assert fingerprint("tgram://y", "Hello", "https://a.example/1") != expected


def test_insert_if_absent_is_idempotent(ledger: DedupLedger) -> None:
    record = DedupRecord.build("tgram://x", "https://blog.example.com", "Post", "https://blog.example.com/p/1")
    assert ledger.exists(record.hash) is False

    assert ledger.insert_if_absent(record) is True
    assert record.sent_at is not None
    duplicate = DedupRecord.build("tgram://x", "https://blog.example.com", "Post", "https://blog.example.com/p/1")
    assert ledger.insert_if_absent(duplicate) is False
    assert duplicate.sent_at is None

    assert ledger.exists(record.hash) is True
    assert ledger.count() == 1


def test_same_item_for_two_destinations_is_two_records(ledger: DedupLedger) -> None:
    first = DedupRecord.build("tgram://a", "https://s", "T", "https://s/1")
    second = DedupRecord.build("tgram://b", "https://s", "T", "https://s/1")
    assert ledger.insert_if_absent(first)
    assert ledger.insert_if_absent(second)
    assert ledger.count() == 2


def test_delete_allows_reinsert(ledger: DedupLedger) -> None:
    record = DedupRecord.build("tgram://x", "https://s", "T", "https://s/1")
    ledger.insert_if_absent(record)
    ledger.delete(record.hash)
    assert ledger.exists(record.hash) is False
    assert ledger.insert_if_absent(DedupRecord.build("tgram://x", "https://s", "T", "https://s/1"))


def test_evict_by_ttl_removes_only_old_records(database) -> None:
    clock = MutableClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
    ledger = DedupLedger(database, clock=clock)
    ledger.insert_if_absent(DedupRecord.build("d", "s", "old", "https://s/old"))
    clock.advance(days=100)
    ledger.insert_if_absent(DedupRecord.build("d", "s", "new", "https://s/new"))

    result = ledger.evict(ttl=timedelta(days=90), max_records=None)

    assert result.deleted_by_ttl == 1
    assert result.deleted_by_cap == 0
    assert ledger.exists(fingerprint("d", "old", "https://s/old")) is False
    assert ledger.exists(fingerprint("d", "new", "https://s/new")) is True


def test_evict_by_cap_keeps_most_recent(database) -> None:
    clock = MutableClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
    ledger = DedupLedger(database, clock=clock)
    for index in range(5):
        ledger.insert_if_absent(DedupRecord.build("d", "s", f"t{index}", f"https://s/{index}"))
        clock.advance(minutes=1)

    result = ledger.evict(ttl=None, max_records=3)

    assert result.deleted_by_cap == 2
    assert ledger.count() == 3
    remaining = {record.title for record in ledger.recent(limit=10)}
    assert remaining == {"t2", "t3", "t4"}


def test_evict_runs_cap_after_ttl(database) -> None:
    clock = MutableClock(datetime(2024, 1, 1, tzinfo=timezone.utc))
    ledger = DedupLedger(database, clock=clock)
    ledger.insert_if_absent(DedupRecord.build("d", "s", "ancient", "https://s/a"))
    clock.advance(days=120)
    for index in range(4):
        ledger.insert_if_absent(DedupRecord.build("d", "s", f"t{index}", f"https://s/{index}"))
        clock.advance(seconds=5)

    result = ledger.evict(ttl=timedelta(days=90), max_records=2)

    assert result.deleted_by_ttl == 1
    assert result.deleted_by_cap == 2
    assert [record.title for record in ledger.recent(limit=10)] == ["t3", "t2"]


def test_evict_under_cap_deletes_nothing(ledger: DedupLedger) -> None:
    ledger.insert_if_absent(DedupRecord.build("d", "s", "t", "https://s/1"))
    result = ledger.evict(ttl=timedelta(days=90), max_records=10)
    assert (result.deleted_by_ttl, result.deleted_by_cap) == (0, 0)


def test_seed_and_recent_filter_by_destination(ledger: DedupLedger) -> None:
    inserted = ledger.seed("tgram://a", "https://s", [("One", "https://s/1"), ("Two", "https://s/2")])
    assert inserted == 2
    assert ledger.seed("tgram://a", "https://s", [("One", "https://s/1")]) == 0
    ledger.seed("tgram://b", "https://s", [("Other", "https://s/3")])

    only_a = ledger.recent(limit=10, destination="tgram://a")
    assert {record.title for record in only_a} == {"One", "Two"}
    assert all(record.destination == "tgram://a" for record in only_a)
    assert len(ledger.recent(limit=1)) == 1
