"""Run-level tallies and the exit status derived from them."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from threading import Lock

EXIT_OK = 0
EXIT_TOTAL_FAILURE = 1
EXIT_PARTIAL_FAILURE = 2


@dataclass(slots=True)
class SentRecord:
    title: str
    link: str
    destination: str


@dataclass(slots=True)
class CheckReport:
    sent: list[SentRecord] = field(default_factory=list)
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    exit_code: int = EXIT_OK

    def to_dict(self) -> dict:
        return {
            "sent": [asdict(record) for record in self.sent],
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


def resolve_exit_code(sent: int, skipped: int, errors: int) -> int:
    if errors == 0:
        return EXIT_OK
    if sent > 0 or skipped > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_TOTAL_FAILURE


class ResultAggregator:
    """Thread-safe accumulator shared by all pair tasks of one run."""

    def __init__(self) -> None:
        self._sent: list[SentRecord] = []
        self._skipped = 0
        self._errors: list[str] = []
        self._lock = Lock()

    def add_sent(self, title: str, link: str, destination: str) -> None:
        with self._lock:
            self._sent.append(SentRecord(title=title, link=link, destination=destination))

    def add_skipped(self, count: int = 1) -> None:
        with self._lock:
            self._skipped += count

    def add_error(self, message: str) -> None:
        with self._lock:
            self._errors.append(message)

    def report(self) -> CheckReport:
        with self._lock:
            return CheckReport(
                sent=list(self._sent),
                skipped=self._skipped,
                errors=list(self._errors),
                exit_code=resolve_exit_code(len(self._sent), self._skipped, len(self._errors)),
            )


def render_summary(report: CheckReport, dry_run: bool, as_json: bool) -> str:
    if as_json:
        return json.dumps({"ok": True, "data": report.to_dict()}, ensure_ascii=False)
    if dry_run:
        return f"[dry-run] {len(report.sent)} items would be sent"
    return f"{len(report.sent)} new, {report.skipped} unchanged, {len(report.errors)} errors"


__all__ = [
    "CheckReport",
    "EXIT_OK",
    "EXIT_PARTIAL_FAILURE",
    "EXIT_TOTAL_FAILURE",
    "ResultAggregator",
    "SentRecord",
    "render_summary",
    "resolve_exit_code",
]
