import threading
from collections import deque
from typing import Deque, Dict, Optional

from .types import FrontierEntry


class VisitedSet:
    """URLs admitted to the frontier, with the depth they were admitted at."""

    def __init__(self) -> None:
        self._depths: Dict[str, int] = {}
        self._lock = threading.Lock()

    def add(self, url: str, depth: int) -> bool:
        """Insert ``url`` unless already present; True when it was inserted."""
        with self._lock:
            if url in self._depths:
                return False
            self._depths[url] = depth
            return True

    def depth_of(self, url: str) -> Optional[int]:
        with self._lock:
            return self._depths.get(url)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._depths)

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return url in self._depths

    def __len__(self) -> int:
        with self._lock:
            return len(self._depths)


class Frontier:
    """FIFO of pending entries that also tracks entries being worked on.

    ``get`` blocks while the queue is empty but some worker is still busy,
    since that worker may enqueue more links. Once the queue is empty and
    nothing is in flight, every caller gets ``None``.
    """

    def __init__(self) -> None:
        self._pending: Deque[FrontierEntry] = deque()
        self._in_flight = 0
        self._cond = threading.Condition()

    def put(self, url: str, depth: int) -> None:
        with self._cond:
            self._pending.append(FrontierEntry(url, depth))
            self._cond.notify()

    def get(self) -> Optional[FrontierEntry]:
        with self._cond:
            while not self._pending and self._in_flight > 0:
                self._cond.wait()
            if not self._pending:
                self._cond.notify_all()
                return None
            self._in_flight += 1
            return self._pending.popleft()

    def task_done(self) -> None:
        with self._cond:
            if self._in_flight <= 0:
                raise ValueError("task_done() called more times than get()")
            self._in_flight -= 1
            if self._in_flight == 0 and not self._pending:
                self._cond.notify_all()

    @property
    def in_flight(self) -> int:
        with self._cond:
            return self._in_flight

    def __len__(self) -> int:
        with self._cond:
            return len(self._pending)
