import threading
import time
from typing import Dict, Callable


class RateLimiter:
    """Spaces out turns that share a key by at least ``delay_seconds``.

    The crawler keys turns by worker thread and calls ``end_turn`` once a
    fetch finishes, so every worker pauses a full delay between the end of
    one fetch and the start of its next, with no ordering across workers.
    """

    def __init__(self, delay_seconds: float, now: Callable[[], float] | None = None, sleep: Callable[[float], None] | None = None):
        self.delay_seconds = delay_seconds
        self._next_time: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._now = now or time.monotonic
        self._sleep = sleep or time.sleep

    def wait_turn(self, key: str) -> None:
        if self.delay_seconds <= 0:
            return
        with self._lock:
            now = self._now()
            next_allowed = self._next_time.get(key, 0.0)
            if next_allowed > now:
                sleep_for = next_allowed - now
            else:
                sleep_for = 0.0
            self._next_time[key] = max(next_allowed, now) + self.delay_seconds
        if sleep_for > 0:
            self._sleep(sleep_for)

    def end_turn(self, key: str) -> None:
        if self.delay_seconds <= 0:
            return
        with self._lock:
            self._next_time[key] = max(self._next_time.get(key, 0.0), self._now() + self.delay_seconds)

    def wait_worker_turn(self) -> None:
        self.wait_turn(threading.current_thread().name)

    def end_worker_turn(self) -> None:
        self.end_turn(threading.current_thread().name)
