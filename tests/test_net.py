import pytest
from urllib3 import exceptions as urllib3_exc

from sitesearch.errors import FetchError
from sitesearch.net import HttpClient, RobotsCache


class FakeResponse:
    def __init__(self, status: int, body: bytes = b"", content_type: str = "text/html"):
        self.status = status
        self.data = body
        self.headers = {"Content-Type": content_type}


class FakePool:
    def __init__(self, responses: dict):
        self.responses = responses
        self.requested = []

    def request(self, method, url, **kwargs):
        self.requested.append(url)
        result = self.responses.get(url)
        if result is None:
            raise urllib3_exc.NewConnectionError(None, "connection refused")
        return result


def make_client(responses: dict) -> HttpClient:
    client = HttpClient("test-agent", request_timeout=1.0, parallelism=1)
    client.http = FakePool(responses)
    return client


def test_fetch_decodes_html():
    client = make_client({"https://a.com/": FakeResponse(200, "héllo".encode())})
    result = client.fetch("https://a.com/")
    assert result.status == 200
    assert result.text == "héllo"
    assert result.size_bytes == len("héllo".encode())


def test_fetch_leaves_binary_undecoded():
    client = make_client({"https://a.com/x": FakeResponse(200, b"\x00\x01", "application/octet-stream")})
    result = client.fetch("https://a.com/x")
    assert result.text == ""
    assert result.size_bytes == 2


def test_fetch_error_status_raises():
    client = make_client({"https://a.com/missing": FakeResponse(404)})
    with pytest.raises(FetchError) as info:
        client.fetch("https://a.com/missing")
    assert info.value.reason == "HTTP 404"


def test_transport_error_raises_fetch_error():
    client = make_client({})
    with pytest.raises(FetchError):
        client.fetch("https://down.example/")


def test_retries_are_opt_in():
    assert HttpClient("ua", 1.0, 1).http.connection_pool_kw["retries"].connect == 0
    assert HttpClient("ua", 1.0, 1, retries=3).http.connection_pool_kw["retries"].total == 3


def test_robots_cache():
    robots = b"User-agent: *\nDisallow: /private\n"
    client = make_client({"https://a.com/robots.txt": FakeResponse(200, robots, "text/plain")})
    cache = RobotsCache("test-agent", client)
    assert cache.can_fetch("https://a.com/public")
    assert not cache.can_fetch("https://a.com/private/page")
    assert client.http.requested.count("https://a.com/robots.txt") == 1
    # unreachable robots.txt allows everything
    assert cache.can_fetch("https://b.com/private")
