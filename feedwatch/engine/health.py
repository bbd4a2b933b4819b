"""Consecutive-failure tracking per (destination, subscription) and the alert policy."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from ..infra.storage import Database
from .dedup import format_timestamp, utc_now

ALERT_THRESHOLD = 3
ESCALATION_THRESHOLD = 10
RECOVERY_THRESHOLD = 3


@dataclass(slots=True)
class HealthState:
    destination: str
    subscription_url: str
    consecutive_failures: int = 0
    last_error: str | None = None
    last_failure_at: str | None = None


class HealthTracker:
    """Persist failure streaks; absent rows read as a clean state."""

    def __init__(self, database: Database, clock: Callable[[], datetime] = utc_now) -> None:
        self.database = database
        self._clock = clock

    def get_state(self, destination: str, subscription_url: str) -> HealthState:
        with self.database.transaction() as conn:
            row = conn.execute(
                "SELECT * FROM health WHERE channel_key = ? AND subscription_url = ?",
                (destination, subscription_url),
            ).fetchone()
        if row is None:
            return HealthState(destination, subscription_url)
        return self._from_row(row)

    def mark_failure(self, destination: str, subscription_url: str, message: str) -> HealthState:
        now = format_timestamp(self._clock())
        with self.database.transaction() as conn:
            conn.execute(
                """
                INSERT INTO health(channel_key, subscription_url, consecutive_failures, last_error, last_failure_at)
                VALUES (?, ?, 1, ?, ?)
                ON CONFLICT(channel_key, subscription_url) DO UPDATE SET
                    consecutive_failures = consecutive_failures + 1,
                    last_error = excluded.last_error,
                    last_failure_at = excluded.last_failure_at
                """,
                (destination, subscription_url, message, now),
            )
            row = conn.execute(
                "SELECT * FROM health WHERE channel_key = ? AND subscription_url = ?",
                (destination, subscription_url),
            ).fetchone()
        return self._from_row(row)

    def mark_success(self, destination: str, subscription_url: str) -> None:
        with self.database.transaction() as conn:
            conn.execute(
                """
                INSERT INTO health(channel_key, subscription_url, consecutive_failures, last_error, last_failure_at)
                VALUES (?, ?, 0, NULL, NULL)
                ON CONFLICT(channel_key, subscription_url) DO UPDATE SET
                    consecutive_failures = 0,
                    last_error = NULL,
                    last_failure_at = NULL
                """,
                (destination, subscription_url),
            )

    def list_states(self) -> list[HealthState]:
        with self.database.transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM health ORDER BY consecutive_failures DESC, channel_key, subscription_url"
            ).fetchall()
        return [self._from_row(row) for row in rows]

    @staticmethod
    def _from_row(row) -> HealthState:
        return HealthState(
            destination=row["channel_key"],
            subscription_url=row["subscription_url"],
            consecutive_failures=max(0, int(row["consecutive_failures"] or 0)),
            last_error=row["last_error"],
            last_failure_at=row["last_failure_at"],
        )


def should_attempt_recovery(state: HealthState, is_css: bool, dry_run: bool) -> bool:
    return is_css and not dry_run and state.consecutive_failures >= RECOVERY_THRESHOLD


def failure_alert(state: HealthState, channel_name: str) -> str | None:
    """Alert body for this failure count, or ``None`` when no alert is due."""

    failures = state.consecutive_failures
    if failures >= ESCALATION_THRESHOLD:
        return (
            f"feedwatch: subscription {state.subscription_url} has been failing for "
            f"{ESCALATION_THRESHOLD}+ checks. Consider removing it from channel \"{channel_name}\"."
        )
    if failures == ALERT_THRESHOLD:
        return (
            f"feedwatch: subscription {state.subscription_url} has failed {ALERT_THRESHOLD} "
            f"consecutive checks. Last error: {state.last_error}"
        )
    return None


__all__ = [
    "ALERT_THRESHOLD",
    "ESCALATION_THRESHOLD",
    "HealthState",
    "HealthTracker",
    "RECOVERY_THRESHOLD",
    "failure_alert",
    "should_attempt_recovery",
]
