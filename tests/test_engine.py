import json
import threading
import time
from collections import Counter

import pytest

from sitesearch.config import CrawlConfig
from sitesearch.engine import Crawler, UrlState
from sitesearch.errors import ConfigError, FetchError
from sitesearch.metrics import Metrics
from sitesearch.types import FetchResult, HttpClientProtocol


def page(title: str, body: str = "", links=()) -> str:
    anchors = "".join(f'<a href="{h}">{h}</a>' for h in links)
    return f"<html><head><title>{title}</title></head><body><p>{body}</p>{anchors}</body></html>"


class StubHttp(HttpClientProtocol):
    """Serves a fixed site map and counts every fetch."""

    def __init__(self, pages: dict, content_types: dict | None = None):
        self.pages = pages
        self.content_types = content_types or {}
        self.calls: Counter = Counter()
        self._lock = threading.Lock()

    def fetch(self, url: str) -> FetchResult:
        with self._lock:
            self.calls[url] += 1
        if url not in self.pages:
            raise FetchError(url, "HTTP 404")
        html = self.pages[url]
        return FetchResult(
            status=200,
            content_type=self.content_types.get(url, "text/html; charset=utf-8"),
            text=html,
            size_bytes=len(html.encode()),
        )


SITE = {
    "http://example.com/": page(
        "Home",
        "welcome",
        ["/a", "/b", "/a", "/report.pdf", "/", "https://other.org/x"],
    ),
    "http://example.com/a": page("A", "alpha", ["/a/deep", "/"]),
    "http://example.com/b": page("B", "beta", ["/b/deep.html"]),
    "http://example.com/a/deep": page("Deep A", "deep", ["/a/deeper"]),
    "http://example.com/b/deep.html": page("Deep B", "deep"),
    "http://example.com/a/deeper": page("Deeper", "deeper"),
    "https://other.org/x": page("Other", "elsewhere"),
}


def make_config(tmp_path, **overrides):
    values = dict(
        entry_points=["http://example.com"],
        max_depth=1,
        parallelism=2,
        delay_seconds=0.001,
        allowed_domains=["example.com"],
        data_dir=str(tmp_path / "data"),
        obey_robots_txt=False,
        metrics_interval=0.0,
    )
    values.update(overrides)
    return CrawlConfig(**values)


def read_artifacts(paths):
    records = []
    for path in paths:
        records.extend(json.loads(path.read_text(encoding="utf-8")))
    return records


def test_depth_one_visits_seed_and_direct_links(tmp_path):
    http = StubHttp(SITE)
    c = Crawler(make_config(tmp_path), http_client=http)
    paths = c.run()

    assert set(http.calls) == {
        "http://example.com/",
        "http://example.com/a",
        "http://example.com/b",
    }
    assert "http://example.com/a/deep" not in c.visited
    assert "http://example.com/report.pdf" not in c.visited
    urls = sorted(r["URL"] for r in read_artifacts(paths))
    assert urls == ["http://example.com/", "http://example.com/a", "http://example.com/b"]
    assert c.pages_crawled == 3


def test_depth_two_follows_one_more_level(tmp_path):
    http = StubHttp(SITE)
    c = Crawler(make_config(tmp_path, max_depth=2), http_client=http)
    c.run()

    assert "http://example.com/a/deep" in http.calls
    assert "http://example.com/b/deep.html" in http.calls
    assert "http://example.com/a/deeper" not in http.calls
    for url, depth in c.visited.snapshot().items():
        assert depth <= 2, url


def test_unrestricted_domains_follow_external_links(tmp_path):
    http = StubHttp(SITE)
    c = Crawler(make_config(tmp_path, allowed_domains=[]), http_client=http)
    paths = c.run()

    assert "https://other.org/x" in http.calls
    assert [p.name.split("-")[0] for p in paths] == ["example.com", "other.org"]


def test_records_carry_title_and_texts(tmp_path):
    c = Crawler(make_config(tmp_path), http_client=StubHttp(SITE))
    records = {r["URL"]: r for r in read_artifacts(c.run())}
    home = records["http://example.com/"]
    assert home["Title"] == "Home"
    assert home["Texts"][0] == "welcome"


def test_failed_fetch_is_not_retried(tmp_path):
    pages = dict(SITE)
    del pages["http://example.com/b"]
    http = StubHttp(pages)
    c = Crawler(make_config(tmp_path), http_client=http)
    c.run()

    assert http.calls["http://example.com/b"] == 1
    assert c.state_of("http://example.com/b") is UrlState.FAILED
    assert c.state_of("http://example.com/a") is UrlState.DONE
    assert c.urls_in_state(UrlState.FAILED) == ["http://example.com/b"]
    totals, _ = c.metrics.snapshot()
    assert totals.errors == 1
    assert totals.pages == 3


def test_failing_seed_still_terminates(tmp_path):
    http = StubHttp({})
    c = Crawler(make_config(tmp_path), http_client=http)
    assert c.run() == []
    assert c.pages_crawled == 0


def test_non_html_response_produces_no_record(tmp_path):
    http = StubHttp(SITE, content_types={"http://example.com/a": "application/json"})
    c = Crawler(make_config(tmp_path), http_client=http)
    urls = [r["URL"] for r in read_artifacts(c.run())]
    assert "http://example.com/a" not in urls
    assert c.state_of("http://example.com/a") is UrlState.DONE


def test_blacklisted_and_duplicate_seeds(tmp_path):
    http = StubHttp(SITE)
    cfg = make_config(
        tmp_path,
        entry_points=["http://example.com", "http://example.com/#top", "http://example.com/report.pdf"],
        max_depth=1,
    )
    c = Crawler(cfg, http_client=http)
    c.run()
    assert http.calls["http://example.com/"] == 1
    assert "http://example.com/report.pdf" not in http.calls


def grid_site(width: int, depth: int) -> dict:
    """Every page at level d links to every page at level d + 1."""
    pages = {}
    for d in range(depth + 2):
        children = [f"/l{d + 1}/p{i}" for i in range(width)]
        for i in range(width):
            path = "/" if d == 0 and i == 0 else f"/l{d}/p{i}"
            if d == 0 and i > 0:
                continue
            pages["http://example.com" + path] = page(f"L{d}P{i}", "x", children)
    return pages


def test_concurrent_workers_fetch_each_url_once(tmp_path):
    http = StubHttp(grid_site(width=12, depth=3))
    c = Crawler(make_config(tmp_path, max_depth=3, parallelism=8), http_client=http)
    paths = c.run()

    assert all(n == 1 for n in http.calls.values())
    assert len(http.calls) == 1 + 12 * 3
    records = read_artifacts(paths)
    assert len(records) == len({r["URL"] for r in records}) == 1 + 12 * 3
    depths = c.visited.snapshot()
    assert max(depths.values()) == 3
    assert not any(url.startswith("http://example.com/l4/") for url in http.calls)


def test_invalid_config_is_rejected(tmp_path):
    with pytest.raises(ConfigError):
        Crawler(make_config(tmp_path, parallelism=0), http_client=StubHttp(SITE))


def test_metrics_records_fetches():
    m = Metrics()

    m.record_fetch(ok=True, bytes_read=1024, fetch_ms=50.0)
    totals, elapsed = m.snapshot()

    assert totals.pages == 1
    assert totals.bytes == 1024
    assert totals.errors == 0
    assert totals.fetch_ms_sum == 50.0
    assert elapsed > 0

    m.record_fetch(ok=False, bytes_read=0, fetch_ms=100.0)
    m.record_commit(documents=50, commit_ms=12.5)
    totals, elapsed = m.snapshot()

    assert totals.pages == 2
    assert totals.bytes == 1024
    assert totals.errors == 1
    assert totals.fetch_ms_sum == 150.0
    assert totals.documents == 50
    assert totals.batches == 1


def test_malformed_link_is_skipped(tmp_path):
    pages = {
        "http://example.com/": '<html><body><a href="http://[oops/">bad</a><a href="/a">a</a></body></html>',
        "http://example.com/a": page("A", "alpha"),
    }
    http = StubHttp(pages)
    c = Crawler(make_config(tmp_path, allowed_domains=[]), http_client=http)
    c.run()
    assert c.state_of("http://example.com/") is UrlState.DONE
    assert c.state_of("http://example.com/a") is UrlState.DONE


def test_extraction_error_fails_only_that_url(tmp_path, monkeypatch, caplog):
    from sitesearch import engine

    real_extract = engine.Extractor.extract

    def flaky_extract(url, html):
        if url.endswith("/a"):
            raise ValueError("unparseable page")
        return real_extract(url, html)

    monkeypatch.setattr(engine.Extractor, "extract", staticmethod(flaky_extract))
    c = Crawler(make_config(tmp_path), http_client=StubHttp(SITE))
    c.run()
    assert c.state_of("http://example.com/a") is UrlState.FAILED
    assert c.state_of("http://example.com/b") is UrlState.DONE
    assert c.pages_crawled == 2
    assert "Failed to extract http://example.com/a" in caplog.text


class SlowHttp(StubHttp):
    def __init__(self, pages: dict, fetch_seconds: float):
        super().__init__(pages)
        self.fetch_seconds = fetch_seconds
        self.spans = []

    def fetch(self, url: str) -> FetchResult:
        start = time.monotonic()
        time.sleep(self.fetch_seconds)
        result = super().fetch(url)
        self.spans.append((start, time.monotonic()))
        return result


def test_worker_pauses_full_delay_after_each_fetch(tmp_path):
    http = SlowHttp(SITE, fetch_seconds=0.1)
    c = Crawler(make_config(tmp_path, parallelism=1, delay_seconds=0.1), http_client=http)
    c.run()

    assert len(http.spans) == 3
    gaps = [nxt[0] - prev[1] for prev, nxt in zip(http.spans, http.spans[1:])]
    assert all(gap >= 0.09 for gap in gaps), gaps
