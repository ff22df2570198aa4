import httpx
import pytest

from replay.blogs import BlogType, WordpressBlog
from replay.blogs.wordpress import get_blog
from replay.errors import ConsistencyError, RemoteError

SITE = "https://blog.example.com"
API = f"{SITE}/wp-json/"
POSTS = f"{API}wp/v2/posts"
PAGES = f"{API}wp/v2/pages"
USERS = f"{API}wp/v2/users"


def wp_post(post_id, author=1, day=1):
    return {
        "id": post_id,
        "date_gmt": f"2020-01-{day:02d}T10:00:00",
        "link": f"{SITE}/?p={post_id}",
        "title": {"rendered": f"Post {post_id}"},
        "content": {"rendered": f"<p>Content {post_id}</p>"},
        "author": author,
    }


def paged(pages, total=None, total_pages=None, drop_header=None):
    """Serve ``pages`` (a list of item lists) by the ``page`` query parameter."""
    total = sum(len(p) for p in pages) if total is None else total
    total_pages = len(pages) if total_pages is None else total_pages

    def handler(request):
        page = int(request.url.params["page"])
        headers = {"X-WP-Total": str(total), "X-WP-TotalPages": str(total_pages)}
        if drop_header:
            del headers[drop_header]
        items = pages[page - 1] if page <= len(pages) else []
        return httpx.Response(200, json=items, headers=headers)
    return handler


@pytest.fixture
def site(fake_api):
    fake_api.add(API, fake_api.reply({"name": "Example Blog", "home": SITE}))
    fake_api.add(USERS, fake_api.reply([{"id": 1, "name": "Alice"}, {"id": 2, "name": "Bob"}],
                                  headers={"X-WP-TotalPages": "1"}))
    fake_api.add(PAGES, paged([]))
    return fake_api


def test_get_blog_resolves_identity_and_authors(site, http_client, settings):
    site.add(POSTS, paged([]))
    blog = get_blog(SITE + "/", http_client, settings)

    assert isinstance(blog, WordpressBlog)
    assert blog.blog_type == BlogType.WORDPRESS
    assert blog.feed_data().key == "example_blog"
    assert blog.feed_data().id == "https://feeds.example.com/example_blog"
    assert blog.feed_data().url == SITE
    assert blog.authors == {1: "Alice", 2: "Bob"}
    # Metadata lookup only, no listing yet
    assert site.calls(POSTS) == []


def test_posts_across_two_pages(site, http_client, settings, sleeps):
    site.add(POSTS, paged([[wp_post(101, day=1), wp_post(102, author=2, day=2)], [wp_post(103, day=3)]]))
    blog = get_blog(SITE, http_client, settings)

    entries = list(blog.entries())

    assert [e.id for e in entries] == [
        "https://feeds.example.com/example_blog/101",
        "https://feeds.example.com/example_blog/102",
        "https://feeds.example.com/example_blog/103",
    ]
    assert [e.author.name for e in entries] == ["Alice", "Bob", "Alice"]
    assert entries[0].content_html == "<p>Content 101</p>"
    assert entries[0].published.isoformat() == "2020-01-01T10:00:00+00:00"
    assert [int(r.url.params["page"]) for r in site.calls(POSTS)] == [1, 2]
    assert len(site.calls(PAGES)) == 1
    # One courtesy pause between the two post pages
    assert sleeps == [1.0]


def test_pages_follow_posts(site, http_client, settings):
    site.add(POSTS, paged([[wp_post(1)]]))
    site.add(PAGES, paged([[wp_post(2)]]))
    entries = list(get_blog(SITE, http_client, settings).entries())
    assert [e.title for e in entries] == ["Post 1", "Post 2"]


def test_entries_are_lazy(site, http_client, settings):
    site.add(POSTS, paged([[wp_post(1)], [wp_post(2)]]))
    entries = get_blog(SITE, http_client, settings).entries()

    assert next(entries).title == "Post 1"
    assert len(site.calls(POSTS)) == 1


@pytest.mark.parametrize("header", ["X-WP-Total", "X-WP-TotalPages"])
def test_missing_header_is_fatal(site, http_client, settings, sleeps, header):
    site.add(POSTS, paged([[wp_post(1)]], drop_header=header))
    with pytest.raises(RemoteError, match=f"Missing expected {header} header"):
        list(get_blog(SITE, http_client, settings).entries())
    assert len(site.calls(POSTS)) == 1
    assert sleeps == []


def test_unknown_author_is_fatal(site, http_client, settings):
    site.add(POSTS, paged([[wp_post(1, author=99)]]))
    with pytest.raises(ConsistencyError, match="99"):
        list(get_blog(SITE, http_client, settings).entries())


def test_count_mismatch_is_fatal(site, http_client, settings):
    site.add(POSTS, paged([[wp_post(1), wp_post(2)], [wp_post(3)]], total=5))
    entries = get_blog(SITE, http_client, settings).entries()
    with pytest.raises(ConsistencyError, match="5"):
        list(entries)


def test_server_errors_are_retried(site, http_client, settings, sleeps):
    site.add(POSTS, site.reply({"code": "oops"}, status_code=502), paged([[wp_post(1)]]))
    entries = list(get_blog(SITE, http_client, settings).entries())
    assert [e.title for e in entries] == ["Post 1"]
    assert len(site.calls(POSTS)) == 2
    assert sleeps == [0.5]


def test_persistent_server_errors_surface_as_transient(site, http_client, settings):
    site.add(POSTS, site.reply({"code": "oops"}, status_code=503))
    with pytest.raises(RemoteError) as exc_info:
        list(get_blog(SITE, http_client, settings).entries())
    assert exc_info.value.transient
    assert exc_info.value.status_code == 503
    assert len(site.calls(POSTS)) == 3


def test_not_wordpress(fake_api, http_client, settings):
    with pytest.raises(RemoteError):
        get_blog("https://example.org", http_client, settings)
