import logging
import threading
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, start_http_server

from .metrics import Metrics


logger = logging.getLogger(__name__)


class PrometheusExporter:
    def __init__(self, metrics: Metrics, port: int = 8000, registry: CollectorRegistry = REGISTRY) -> None:
        self.metrics = metrics
        self.port = port
        self.registry = registry
        self._server_thread: threading.Thread | None = None
        self._stop_event = threading.Event()

        self.pages_total = Counter('sitesearch_pages_total', 'Total number of pages fetched', registry=registry)
        self.bytes_total = Counter('sitesearch_bytes_total', 'Total number of bytes downloaded', registry=registry)
        self.errors_total = Counter('sitesearch_fetch_errors_total', 'Total number of failed fetches', registry=registry)
        self.documents_total = Counter('sitesearch_documents_indexed_total', 'Total number of documents committed to the index', registry=registry)
        self.batches_total = Counter('sitesearch_batches_committed_total', 'Total number of index batch commits', registry=registry)
        self.pages_per_second = Gauge('sitesearch_pages_per_second', 'Current crawl rate in pages per second', registry=registry)
        self.avg_fetch_duration_seconds = Gauge('sitesearch_avg_fetch_duration_seconds', 'Average fetch duration in seconds', registry=registry)
        self.avg_commit_duration_seconds = Gauge('sitesearch_avg_commit_duration_seconds', 'Average batch commit duration in seconds', registry=registry)

        self._last_pages = 0
        self._last_bytes = 0
        self._last_errors = 0
        self._last_documents = 0
        self._last_batches = 0

    def start(self) -> None:
        start_http_server(self.port, registry=self.registry)
        logger.info("Prometheus metrics server started on port %d", self.port)

        self._server_thread = threading.Thread(
            target=self._update_metrics_loop,
            name="prometheus-updater",
            daemon=True
        )
        self._server_thread.start()

    def _update_metrics_loop(self) -> None:
        while not self._stop_event.is_set():
            self.update()
            self._stop_event.wait(5.0)

    def update(self) -> None:
        totals, elapsed = self.metrics.snapshot()

        for counter, current, attr in (
            (self.pages_total, totals.pages, "_last_pages"),
            (self.bytes_total, totals.bytes, "_last_bytes"),
            (self.errors_total, totals.errors, "_last_errors"),
            (self.documents_total, totals.documents, "_last_documents"),
            (self.batches_total, totals.batches, "_last_batches"),
        ):
            delta = current - getattr(self, attr)
            if delta > 0:
                counter.inc(delta)
            setattr(self, attr, current)

        if elapsed > 0:
            self.pages_per_second.set(totals.pages / elapsed)
        if totals.pages > 0:
            self.avg_fetch_duration_seconds.set(totals.fetch_ms_sum / totals.pages / 1000.0)
        if totals.batches > 0:
            self.avg_commit_duration_seconds.set(totals.commit_ms_sum / totals.batches / 1000.0)

    def stop(self) -> None:
        self._stop_event.set()
        if self._server_thread:
            self._server_thread.join(timeout=2.0)
        # Flush whatever was recorded since the last tick.
        self.update()
