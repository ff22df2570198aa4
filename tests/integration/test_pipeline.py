"""
End-to-end replay of a WordPress blog: scrape, generate a few times, rescrape
after the remote title changed, and drive the command line entry point.

HTTP is served by httpx.MockTransport; nothing leaves the machine.
"""
from datetime import datetime, timezone

import httpx
import pytest

from replay.config import Settings
from replay.context import AppContext
from replay.errors import ConsistencyError
from replay.fetcher.http_client import HTTPClient
from replay.main import main
from replay.models import NormalizedEntry
from replay.render import feed_file_path, read_feed
from replay.tasks import generate_feeds, list_feeds, scrape_blog

SITE = "https://blog.example.com"
FEED_URL_BASE = "https://feeds.example.com"


class WordpressSite:
    """A tiny WordPress REST API with a mutable title and post list."""

    def __init__(self, name, posts):
        self.name = name
        self.posts = posts

    def __call__(self, request):
        path = request.url.path
        if path == "/wp-json/":
            return httpx.Response(200, json={"name": self.name, "home": SITE})
        if path == "/wp-json/wp/v2/users":
            return httpx.Response(200, json=[{"id": 1, "name": "Alice"}], headers={"X-WP-TotalPages": "1"})
        if path == "/wp-json/wp/v2/posts":
            items = self.posts
        elif path == "/wp-json/wp/v2/pages":
            items = []
        else:
            return httpx.Response(404)
        headers = {"X-WP-Total": str(len(items)), "X-WP-TotalPages": "1"}
        return httpx.Response(200, json=items, headers=headers)


def wp_post(post_id):
    return {
        "id": post_id,
        "date_gmt": f"2019-05-{post_id:02d}T12:00:00",
        "link": f"{SITE}/?p={post_id}",
        "title": {"rendered": f"Post {post_id}"},
        "content": {"rendered": f"<p>Post {post_id}</p>"},
        "author": 1,
    }


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        output={"feed_url_base": FEED_URL_BASE, "feed_path": tmp_path / "feeds", "max_entries": 2},
        storage={"db_path": tmp_path / "replay.db"},
    )


@pytest.fixture
def site():
    return WordpressSite("Example Blog", [wp_post(n) for n in (1, 2, 3)])


@pytest.fixture
def app(settings, site):
    http = HTTPClient(
        client=httpx.Client(transport=httpx.MockTransport(site)),
        page_delay=0,
        retry_jitter=0,
        sleep=lambda seconds: None,
    )
    with http, AppContext(settings, http=http) as app_context:
        yield app_context


def test_scrape_then_replay(app, settings, site):
    identity, queued = scrape_blog(app, SITE)
    assert identity.key == "example_blog"
    assert queued == 3
    assert [(i.key, pending) for i, pending in list_feeds(app)] == [("example_blog", 3)]

    results = generate_feeds(app)
    assert results["example_blog"].title == "Post 1"

    path = feed_file_path(settings.output.feed_path, "example_blog")
    feed = read_feed(path)
    assert feed.title == "Example Blog (blog-replay)"
    assert [e.id for e in feed.entries] == [f"{FEED_URL_BASE}/example_blog/1"]

    generate_feeds(app, "example_blog")
    generate_feeds(app, "example_blog")
    assert [e.title for e in read_feed(path).entries] == ["Post 2", "Post 3"]

    assert generate_feeds(app) == {"example_blog": None}
    assert list_feeds(app)[0][1] == 0


def test_rescrape_keeps_identity_and_skips_published(app, settings, site):
    scrape_blog(app, SITE)
    generate_feeds(app)

    site.name = "Example Blog, Renamed"
    site.posts = site.posts + [wp_post(4)]
    identity, queued = scrape_blog(app, SITE)

    assert identity.key == "example_blog"
    assert identity.title == "Example Blog"
    assert queued == 3
    assert [i.key for i, _ in list_feeds(app)] == ["example_blog"]
    assert generate_feeds(app)["example_blog"].title == "Post 2"


def test_failed_scrape_stores_nothing(app, site):
    site.posts = [wp_post(1), dict(wp_post(2), author=42)]
    with pytest.raises(ConsistencyError):
        scrape_blog(app, SITE)
    assert list_feeds(app) == []


def test_command_line(tmp_path, monkeypatch):
    # Keep the global logging configuration of the test session
    monkeypatch.setattr("replay.main.setup_logging", lambda settings: None)
    env_file = tmp_path / "replay.env"
    env_file.write_text(
        f"REPLAY_OUTPUT__FEED_PATH={tmp_path / 'feeds'}\n"
        f"REPLAY_STORAGE__DB_PATH={tmp_path / 'replay.db'}\n"
    )

    assert main(["--env-file", str(env_file), "list"]) == 0

    assert main(["--env-file", str(env_file), "generate", "--feed", "missing"]) == 1


def test_command_line_generate_carries_on_past_a_broken_feed(app, settings, tmp_path, monkeypatch, capsys):
    monkeypatch.setattr("replay.main.setup_logging", lambda settings: None)
    scrape_blog(app, SITE)
    broken = app.store.get_feed("example_blog").model_copy(
        update={"id": f"{FEED_URL_BASE}/a_blog", "key": "a_blog", "url": "https://other.example.com"}
    )
    app.store.ingest(broken, [NormalizedEntry(
        id=f"{FEED_URL_BASE}/a_blog/1",
        title="Other post",
        published=datetime(2019, 5, 1, tzinfo=timezone.utc),
        content_html="<p>Other</p>",
        link="https://other.example.com/1",
    )])
    settings.output.feed_path.mkdir(parents=True, exist_ok=True)
    feed_file_path(settings.output.feed_path, "a_blog").write_text("not xml at all")

    env_file = tmp_path / "replay.env"
    env_file.write_text(
        f"REPLAY_OUTPUT__FEED_URL_BASE={FEED_URL_BASE}\n"
        f"REPLAY_OUTPUT__FEED_PATH={settings.output.feed_path}\n"
        f"REPLAY_STORAGE__DB_PATH={settings.storage.db_path}\n"
    )

    assert main(["--env-file", str(env_file), "generate"]) == 1

    assert "example_blog\tPost 1" in capsys.readouterr().out
    assert dict((i.key, pending) for i, pending in list_feeds(app)) == {"a_blog": 1, "example_blog": 2}
