import logging
import threading
from typing import Dict, Optional, Tuple
from urllib import robotparser
from urllib.parse import urljoin, urlparse

import urllib3
from urllib3.util.retry import Retry
from urllib3 import exceptions as urllib3_exc

from .errors import FetchError
from .types import FetchResult


logger = logging.getLogger(__name__)


class HttpClient:
    def __init__(
        self,
        user_agent: str,
        request_timeout: float,
        parallelism: int,
        max_connections: int = 16,
        retries: int = 0,
    ):
        self.user_agent = user_agent
        self.timeout = urllib3.Timeout(connect=5.0, read=request_timeout)
        # Retries happen only when configured; the scheduler never re-enqueues.
        retry = Retry(
            total=retries,
            backoff_factor=0.3,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False,
        ) if retries > 0 else Retry(total=None, connect=0, read=0, status=0, other=0, redirect=5)
        self.http = urllib3.PoolManager(
            num_pools=max(8, parallelism),
            maxsize=max_connections,
            headers={
                "User-Agent": user_agent,
                "Accept": "text/html,*/*;q=0.8",
                "Accept-Encoding": "gzip, deflate",
            },
            retries=retry,
        )

    def _request_bytes(self, url: str) -> Tuple[int, str, bytes]:
        try:
            response = self.http.request(
                "GET",
                url,
                timeout=self.timeout,
                preload_content=True,
                headers={"User-Agent": self.user_agent},
            )
        except urllib3_exc.HTTPError as exc:
            raise FetchError(url, str(exc)) from exc
        return response.status, response.headers.get("Content-Type", ""), response.data or b""

    def fetch(self, url: str) -> FetchResult:
        status, content_type, body = self._request_bytes(url)
        if status >= 400:
            raise FetchError(url, f"HTTP {status}")
        text = ""
        if "text/html" in (content_type or "") or "text/plain" in (content_type or ""):
            text = body.decode("utf-8", errors="ignore")
        return FetchResult(status=status, content_type=content_type or "", text=text, size_bytes=len(body))


class RobotsCache:
    def __init__(self, user_agent: str, http: HttpClient):
        self.user_agent = user_agent
        self.http = http
        self._cache: Dict[str, Optional[robotparser.RobotFileParser]] = {}
        self._lock = threading.Lock()

    def _fetch_robots(self, root: str) -> Optional[robotparser.RobotFileParser]:
        robots_url = urljoin(root, "/robots.txt")
        try:
            status, _content_type, body = self.http._request_bytes(robots_url)
        except FetchError as exc:
            logger.debug("No robots.txt for %s: %s", root, exc.reason)
            return None
        if status >= 400:
            return None
        rp = robotparser.RobotFileParser()
        rp.set_url(robots_url)
        rp.parse(body.decode("utf-8", errors="ignore").splitlines())
        return rp

    def can_fetch(self, url: str) -> bool:
        parsed = urlparse(url)
        root = f"{parsed.scheme}://{parsed.netloc}"
        with self._lock:
            cached = root in self._cache
            rp = self._cache.get(root)
        if not cached:
            rp = self._fetch_robots(root)
            with self._lock:
                self._cache.setdefault(root, rp)
        if rp is None:
            return True
        return rp.can_fetch(self.user_agent, url)
