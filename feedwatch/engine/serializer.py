"""Per-destination FIFO delivery lanes."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Callable, Dict, TypeVar

T = TypeVar("T")


class NotificationSerializer:
    """Run tasks one at a time, in enqueue order, per destination key.

    Each key owns a single-worker executor, so a failed task only fails its
    own future and the lane keeps draining. Distinct keys run in parallel.
    """

    def __init__(self) -> None:
        self._lanes: Dict[str, ThreadPoolExecutor] = {}
        self._lock = Lock()
        self._closed = False

    def enqueue(self, destination: str, task: Callable[[], T]) -> Future[T]:
        return self._lane(destination).submit(task)

    def _lane(self, destination: str) -> ThreadPoolExecutor:
        with self._lock:
            if self._closed:
                raise RuntimeError("NotificationSerializer is shut down")
            lane = self._lanes.get(destination)
            if lane is None:
                lane = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix=f"notify-{len(self._lanes)}"
                )
                self._lanes[destination] = lane
            return lane

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            lanes = list(self._lanes.values())
            self._lanes.clear()
            self._closed = True
        for lane in lanes:
            lane.shutdown(wait=wait)


__all__ = ["NotificationSerializer"]
