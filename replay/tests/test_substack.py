import httpx
import pytest

from replay.blogs import SubstackBlog
from replay.blogs.substack import SEARCH_URL, get_blog, subdomain_for
from replay.errors import ConsistencyError, NotThisPlatform, RemoteError

BLOG_URL = "https://weeklywords.substack.com"
ARCHIVE = f"{BLOG_URL}/api/v1/archive"
POSTS = f"{BLOG_URL}/api/v1/posts/"


def listed(post_id, audience="everyone", publication_id=7):
    return {
        "id": post_id,
        "title": f"Issue {post_id}",
        "slug": f"issue-{post_id}",
        "post_date": f"2022-03-{post_id:02d}T09:30:00.000Z",
        "canonical_url": f"{BLOG_URL}/p/issue-{post_id}",
        "audience": audience,
        "publication_id": publication_id,
    }


def by_offset(posts, page_size=2):
    def handler(request):
        offset = int(request.url.params["offset"])
        return httpx.Response(200, json=posts[offset:offset + page_size])
    return handler


@pytest.fixture
def publication(fake_api):
    fake_api.add(SEARCH_URL, fake_api.reply({"results": [
        {"id": 3, "name": "Other Words", "subdomain": "otherwords"},
        {"id": 7, "name": "Weekly Words", "subdomain": "weeklywords", "custom_domain": None},
    ]}))
    return fake_api


def add_details(fake_api, *post_ids):
    for post_id in post_ids:
        fake_api.add(f"{POSTS}issue-{post_id}", fake_api.reply({
            "body_html": f"<p>Issue {post_id} body</p>",
            "publishedBylines": [{"name": "Dana", "handle": "dana"}, {"name": "Eli"}],
        }))


@pytest.mark.parametrize("host,subdomain", [
    ("weeklywords.substack.com", "weeklywords"),
    ("www.weeklywords.com", "weeklywords"),
    ("news.example.co", "example"),
])
def test_subdomain_for(host, subdomain):
    assert subdomain_for(host) == subdomain


def test_get_blog_resolves_identity(publication, http_client, settings):
    blog = get_blog(BLOG_URL, http_client, settings)

    assert isinstance(blog, SubstackBlog)
    assert blog.feed_data().key == "weeklywords"
    assert blog.feed_data().title == "Weekly Words"
    assert blog.feed_data().url == BLOG_URL
    assert publication.calls(SEARCH_URL)[0].url.params["query"] == "weeklywords"


def test_unknown_publication(fake_api, http_client, settings):
    fake_api.add(SEARCH_URL, fake_api.reply({"results": []}))
    with pytest.raises(NotThisPlatform):
        get_blog(BLOG_URL, http_client, settings)


def test_archive_by_offset_with_detail_fetches(publication, http_client, settings, sleeps):
    posts = [listed(1), listed(2), listed(3)]
    publication.add(ARCHIVE, by_offset(posts))
    add_details(publication, 1, 2, 3)

    entries = list(get_blog(BLOG_URL, http_client, settings).entries())

    assert [e.title for e in entries] == ["Issue 1", "Issue 2", "Issue 3"]
    assert entries[0].id == "https://feeds.example.com/weeklywords/1"
    assert entries[0].content_html == "<p>Issue 1 body</p>"
    assert [(a.name, a.uri) for a in entries[0].authors] == [
        ("Dana", "https://substack.com/@dana"),
        ("Eli", None),
    ]
    assert [r.url.params["offset"] for r in publication.calls(ARCHIVE)] == ["0", "2", "3"]
    # One detail request per listed post
    detail_requests = [r for r in publication.requests if r.url.path.startswith("/api/v1/posts/")]
    assert len(detail_requests) == 3
    assert sleeps == [1.0, 1.0]


def test_only_public_posts_are_kept(publication, http_client, settings):
    posts = [listed(1), listed(2, audience="only_paid"), listed(3, audience="founding"), listed(4)]
    publication.add(ARCHIVE, by_offset(posts))
    add_details(publication, 1, 4)

    entries = list(get_blog(BLOG_URL, http_client, settings).entries())

    assert [e.title for e in entries] == ["Issue 1", "Issue 4"]
    assert publication.calls(f"{POSTS}issue-2") == []
    assert publication.calls(f"{POSTS}issue-3") == []


def test_publication_mismatch_is_fatal(publication, http_client, settings):
    publication.add(ARCHIVE, by_offset([listed(1), listed(2, publication_id=99)]))
    add_details(publication, 1, 2)

    entries = get_blog(BLOG_URL, http_client, settings).entries()
    assert next(entries).title == "Issue 1"
    with pytest.raises(ConsistencyError, match="99"):
        next(entries)
    assert publication.calls(f"{POSTS}issue-2") == []


def test_post_detail_server_error_is_retried(publication, http_client, settings, sleeps):
    publication.add(ARCHIVE, by_offset([listed(1)]))
    publication.add(
        f"{POSTS}issue-1",
        publication.reply(status_code=502),
        publication.reply({"body_html": "<p>Second try</p>", "publishedBylines": [{"name": "Dana"}]}),
    )

    entries = list(get_blog(BLOG_URL, http_client, settings).entries())

    assert [e.content_html for e in entries] == ["<p>Second try</p>"]
    assert [a.name for a in entries[0].authors] == ["Dana"]
    assert len(publication.calls(f"{POSTS}issue-1")) == 2
    assert 0.5 in sleeps


def test_post_detail_client_error_ends_the_stream(publication, http_client, settings, sleeps):
    publication.add(ARCHIVE, by_offset([listed(1), listed(2)]))
    add_details(publication, 1)

    entries = get_blog(BLOG_URL, http_client, settings).entries()
    assert next(entries).title == "Issue 1"
    with pytest.raises(RemoteError) as excinfo:
        next(entries)

    assert excinfo.value.status_code == 404
    assert not excinfo.value.transient
    assert len(publication.calls(f"{POSTS}issue-2")) == 1
    assert 0.5 not in sleeps
