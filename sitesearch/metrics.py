import threading
import time
from dataclasses import dataclass


@dataclass
class Totals:
    pages: int = 0
    bytes: int = 0
    errors: int = 0
    fetch_ms_sum: float = 0.0
    documents: int = 0
    batches: int = 0
    commit_ms_sum: float = 0.0


class Metrics:
    def __init__(self):
        self._totals = Totals()
        self._lock = threading.Lock()
        self._start = time.time()

    def record_fetch(self, ok: bool, bytes_read: int, fetch_ms: float) -> None:
        with self._lock:
            self._totals.pages += 1
            self._totals.bytes += max(0, bytes_read)
            if not ok:
                self._totals.errors += 1
            self._totals.fetch_ms_sum += fetch_ms

    def record_commit(self, documents: int, commit_ms: float) -> None:
        with self._lock:
            self._totals.documents += max(0, documents)
            self._totals.batches += 1
            self._totals.commit_ms_sum += commit_ms

    def snapshot(self) -> tuple[Totals, float]:
        with self._lock:
            t = Totals(**vars(self._totals))
        elapsed = max(1e-6, time.time() - self._start)
        return t, elapsed


class StatsLogger(threading.Thread):
    daemon = True

    def __init__(self, metrics: Metrics, interval_s: float, log_fn):
        super().__init__(name="stats-logger")
        self._metrics = metrics
        self._interval = max(0.5, interval_s)
        self._log = log_fn
        self._stopped = threading.Event()

    def run(self) -> None:
        while not self._stopped.is_set():
            self._stopped.wait(self._interval)
            if self._stopped.is_set():
                break
            self.report()

    def report(self) -> None:
        totals, elapsed = self._metrics.snapshot()
        if totals.pages:
            self._log(
                "Perf: pages=%d, errors=%d, MB=%.2f, avg_fetch_ms=%.1f, pages/sec=%.2f",
                totals.pages,
                totals.errors,
                totals.bytes / (1024 * 1024),
                totals.fetch_ms_sum / totals.pages,
                totals.pages / elapsed,
            )
        if totals.batches:
            self._log(
                "Index: documents=%d, batches=%d, avg_commit_ms=%.1f, docs/sec=%.2f",
                totals.documents,
                totals.batches,
                totals.commit_ms_sum / totals.batches,
                totals.documents / elapsed,
            )

    def stop(self) -> None:
        self._stopped.set()
