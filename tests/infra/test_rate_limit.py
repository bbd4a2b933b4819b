from __future__ import annotations

import pytest

from feedwatch.infra import HostRateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_same_host_waits_min_interval() -> None:
    clock = FakeClock()
    limiter = HostRateLimiter(min_interval=1.0, clock=clock, sleep=clock.sleep)

    assert limiter.wait("https://a.example/feed") == 0.0
    assert limiter.wait("https://a.example/other") == 1.0
    assert clock.sleeps == [1.0]


def test_other_hosts_are_not_delayed() -> None:
    clock = FakeClock()
    limiter = HostRateLimiter(min_interval=1.0, clock=clock, sleep=clock.sleep)

    limiter.wait("https://a.example/feed")
    assert limiter.wait("https://b.example/feed") == 0.0
    assert clock.sleeps == []


def test_elapsed_time_counts_towards_interval() -> None:
    clock = FakeClock()
    limiter = HostRateLimiter(min_interval=1.0, clock=clock, sleep=clock.sleep)

    limiter.wait("https://a.example/1")
    clock.now += 0.4
    assert limiter.wait("https://a.example/2") == pytest.approx(0.6)
    assert clock.sleeps == [pytest.approx(0.6)]


def test_url_without_host_is_ignored() -> None:
    limiter = HostRateLimiter(min_interval=1.0, clock=lambda: 0.0, sleep=lambda _: None)
    assert limiter.wait("not a url") == 0.0
