"""
Shared fixtures: a fake platform API behind httpx.MockTransport, an HTTP
client that never really sleeps, settings and a store under tmp_path.
"""
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from replay.config import Settings
from replay.fetcher.http_client import HTTPClient
from replay.models import Author, FeedIdentity, NormalizedEntry
from replay.store import DurableStore

FEED_URL_BASE = "https://feeds.example.com"


class FakeAPI:
    """
    Routes requests by URL (query string ignored) to handlers.

    Handlers registered for a URL are used in order; the last one repeats.
    Unknown URLs get a 404.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    @staticmethod
    def reply(payload=None, status_code=200, headers=None):
        """Handler returning a fresh JSON response on every call."""
        def handler(request):
            return httpx.Response(status_code, json=payload, headers=headers)
        return handler

    def add(self, url, *handlers):
        self.routes[url] = list(handlers)

    def calls(self, url):
        return [r for r in self.requests if self._key(r) == url]

    @staticmethod
    def _key(request):
        return f"{request.url.scheme}://{request.url.host}{request.url.path}"

    def __call__(self, request):
        self.requests.append(request)
        handlers = self.routes.get(self._key(request))
        if not handlers:
            return httpx.Response(404, json={"message": "not found"})
        handler = handlers.pop(0) if len(handlers) > 1 else handlers[0]
        return handler(request)


@pytest.fixture
def fake_api():
    return FakeAPI()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def http_client(fake_api, sleeps):
    client = HTTPClient(
        client=httpx.Client(transport=httpx.MockTransport(fake_api)),
        max_retries=3,
        retry_jitter=0,
        page_delay=1.0,
        sleep=sleeps.append,
    )
    yield client
    client.close()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        blogger={"api_key": "test-key"},
        output={"feed_url_base": FEED_URL_BASE, "feed_path": tmp_path / "feeds"},
        storage={"db_path": tmp_path / "data" / "replay.db"},
    )


@pytest.fixture
def store(tmp_path):
    with DurableStore(tmp_path / "data" / "replay.db") as store:
        yield store


@pytest.fixture
def identity():
    return FeedIdentity(
        id=f"{FEED_URL_BASE}/example_blog",
        key="example_blog",
        title="Example Blog",
        url="https://blog.example.com",
    )


@pytest.fixture
def make_entry(identity):
    """Build an entry published ``n`` days after 2020-01-01."""
    start = datetime(2020, 1, 1, 12, 0, tzinfo=timezone.utc)

    def factory(n, **overrides):
        fields = dict(
            id=f"{identity.id}/{n}",
            title=f"Post {n}",
            published=start + timedelta(days=n),
            authors=[Author(name="Alice", uri="https://blog.example.com/alice")],
            content_html=f"<p>Body of post {n}</p>",
            link=f"https://blog.example.com/posts/{n}",
        )
        fields.update(overrides)
        return NormalizedEntry(**fields)

    return factory
