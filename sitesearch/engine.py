import enum
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .config import CrawlConfig
from .errors import FetchError
from .frontier import Frontier, VisitedSet
from .metrics import Metrics, StatsLogger
from .net import HttpClient, RobotsCache
from .parsing import Extractor, UrlTools
from .rate import RateLimiter
from .storage import ArtifactWriter
from .types import HttpClientProtocol, PageRecord


class UrlState(enum.Enum):
    ENQUEUED = "enqueued"
    FETCHING = "fetching"
    DONE = "done"
    FAILED = "failed"


class Crawler:
    def __init__(
        self,
        config: CrawlConfig,
        http_client: HttpClientProtocol | None = None,
        writer: ArtifactWriter | None = None,
    ):
        self.config = config.validate()
        if http_client is None:
            http_client = HttpClient(
                config.user_agent,
                config.request_timeout,
                config.parallelism,
                config.max_connections,
                retries=config.fetch_retries,
            )
        self.http = http_client
        self.robots: Optional[RobotsCache] = None
        if config.obey_robots_txt and isinstance(http_client, HttpClient):
            self.robots = RobotsCache(config.user_agent, http_client)
        self.rate = RateLimiter(config.delay_seconds)
        self.frontier = Frontier()
        self.visited = VisitedSet()
        self.writer = writer or ArtifactWriter(config.data_dir)
        self.allowed_domains = [d.lower().lstrip(".") for d in config.allowed_domains]
        self.metrics = Metrics()
        self.stats_thread: Optional[StatsLogger] = None
        self.artifacts: List[Path] = []
        self._states: Dict[str, UrlState] = {}
        self._states_lock = threading.Lock()
        self.pages_crawled = 0
        self.pages_lock = threading.Lock()

        for url in UrlTools.normalize_start(config.entry_points):
            self._admit(url, 0)

    def _set_state(self, url: str, state: UrlState) -> None:
        with self._states_lock:
            self._states[url] = state

    def state_of(self, url: str) -> Optional[UrlState]:
        with self._states_lock:
            return self._states.get(url)

    def urls_in_state(self, state: UrlState) -> List[str]:
        with self._states_lock:
            return sorted(u for u, s in self._states.items() if s is state)

    def _admit(self, url: str, depth: int) -> bool:
        if UrlTools.is_blacklisted(url):
            logging.debug("Skipping file resource: %s", url)
            return False
        if not UrlTools.is_allowed_domain(url, self.allowed_domains):
            return False
        if not self.visited.add(url, depth):
            return False
        self._set_state(url, UrlState.ENQUEUED)
        self.frontier.put(url, depth)
        return True

    def _enqueue_links(self, links: Iterable[str], current_depth: int) -> None:
        next_depth = current_depth + 1
        if next_depth > self.config.max_depth:
            return
        for link in links:
            self._admit(link, next_depth)

    def _crawl(self, url: str, depth: int) -> None:
        if self.robots is not None and not self.robots.can_fetch(url):
            logging.debug("Disallowed by robots.txt: %s", url)
            self._set_state(url, UrlState.DONE)
            return
        self._set_state(url, UrlState.FETCHING)
        t0 = time.perf_counter()
        try:
            response = self.http.fetch(url)
        except FetchError as exc:
            dt_ms = (time.perf_counter() - t0) * 1000.0
            self.metrics.record_fetch(False, 0, dt_ms)
            logging.warning("Failed to fetch %s (depth %d): %s", url, depth, exc.reason)
            self._set_state(url, UrlState.FAILED)
            return
        dt_ms = (time.perf_counter() - t0) * 1000.0
        self.metrics.record_fetch(True, response.size_bytes, dt_ms)

        if response.text and "text/html" in response.content_type:
            try:
                title, texts, links = Extractor.extract(url, response.text)
            except Exception:
                logging.exception("Failed to extract %s (depth %d)", url, depth)
                self._set_state(url, UrlState.FAILED)
                return
            self.writer.write(PageRecord(url=url, title=title, texts=tuple(texts)))
            self._enqueue_links(links, depth)
            with self.pages_lock:
                self.pages_crawled += 1
                crawled = self.pages_crawled
            if crawled % 10 == 0:
                logging.info("Crawled %d pages", crawled)
        else:
            logging.debug("Skipping non-HTML response from %s (%s)", url, response.content_type)
        self._set_state(url, UrlState.DONE)

    def worker(self) -> None:
        while True:
            entry = self.frontier.get()
            if entry is None:
                return
            try:
                # politeness
                self.rate.wait_worker_turn()
                try:
                    self._crawl(entry.url, entry.depth)
                finally:
                    self.rate.end_worker_turn()
            finally:
                self.frontier.task_done()

    def run(self) -> List[Path]:
        logging.info(
            "Starting crawl: %d entry points, max depth %d, %d workers, allowed domains: %s",
            len(self.config.entry_points),
            self.config.max_depth,
            self.config.parallelism,
            ", ".join(self.allowed_domains) or "(any)",
        )
        if self.config.metrics_interval and self.config.metrics_interval > 0:
            self.stats_thread = StatsLogger(self.metrics, self.config.metrics_interval, logging.info)
            self.stats_thread.start()
        try:
            with ThreadPoolExecutor(max_workers=self.config.parallelism, thread_name_prefix="crawl") as executor:
                futures = [executor.submit(self.worker) for _ in range(self.config.parallelism)]
                for future in as_completed(futures):
                    future.result()
        finally:
            if self.stats_thread:
                self.stats_thread.stop()
            self.artifacts = self.writer.close()
        logging.info(
            "Finished. Pages crawled: %d, failed: %d. Artifacts: %s",
            self.pages_crawled,
            len(self.urls_in_state(UrlState.FAILED)),
            ", ".join(str(p) for p in self.artifacts) or "(none)",
        )
        return self.artifacts
