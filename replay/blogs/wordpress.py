"""
WordPress source for blog replay.

Uses the WordPress REST API under ``/wp-json/``. Listings are paginated with a
numeric ``page`` parameter and report their totals in the ``X-WP-Total`` and
``X-WP-TotalPages`` response headers rather than in the body. Author names are
resolved from a one-time users lookup.
"""
from typing import TYPE_CHECKING, Dict, List, Optional

import httpx
import structlog
from pydantic import BaseModel, TypeAdapter

from replay.blogs.base import (
    Batch,
    BlogSource,
    BlogType,
    PageCursor,
    ProgressObserver,
    translate_remote_errors,
)
from replay.errors import ConsistencyError, RemoteError
from replay.fetcher.http_client import HTTPClient
from replay.models import Author, FeedIdentity, NormalizedEntry, feed_id_for, sanitize_blog_key

if TYPE_CHECKING:
    from replay.config import Settings

logger = structlog.get_logger()

TOTAL_HEADER = "X-WP-Total"
TOTAL_PAGES_HEADER = "X-WP-TotalPages"
USERS_PER_PAGE = 100


class WordpressJson(BaseModel):
    """Site metadata from the API root."""
    name: str
    home: str


class Rendered(BaseModel):
    rendered: str


class WordpressPost(BaseModel):
    id: int
    date_gmt: str
    link: str
    title: Rendered
    content: Rendered
    author: int


class WordpressUser(BaseModel):
    id: int
    name: str


_posts_adapter = TypeAdapter(List[WordpressPost])
_users_adapter = TypeAdapter(List[WordpressUser])


def read_int_header(response: httpx.Response, name: str) -> int:
    """
    Read a pagination header.

    Raises:
        RemoteError: If the header is missing or not an integer
    """
    value = response.headers.get(name)
    if value is None:
        raise RemoteError(f"Missing expected {name} header from {response.request.url}")
    try:
        return int(value.strip())
    except ValueError:
        raise RemoteError(f"Invalid {name} header {value!r} from {response.request.url}")


class WordpressCursor(PageCursor[WordpressPost, int]):
    """Walks one WordPress listing (posts or pages) by page number."""

    def __init__(self, http: HTTPClient, stream: str, api_url: str, observer: Optional[ProgressObserver] = None):
        self.api_url = api_url
        super().__init__(http, stream, observer=observer)

    def initial_position(self) -> int:
        return 1

    def next_batch(self, position: int) -> Batch[WordpressPost, int]:
        response = self.http.get(self.api_url, params={"page": position})
        total_items = read_int_header(response, TOTAL_HEADER)
        total_pages = read_int_header(response, TOTAL_PAGES_HEADER)
        posts = _posts_adapter.validate_python(response.json())

        next_position = None if position >= total_pages else position + 1
        return Batch(items=posts, next_position=next_position, expected_total=total_items)


class WordpressBlog(BlogSource):
    """A self-hosted or wordpress.com blog exposing the REST API."""

    blog_type = BlogType.WORDPRESS

    def __init__(
        self,
        identity: FeedIdentity,
        http: HTTPClient,
        api_url: str,
        authors: Dict[int, str],
        observer: Optional[ProgressObserver] = None,
    ):
        super().__init__(identity, http, observer=observer)
        self.api_url = api_url
        self.authors = authors
        self.posts_api_url = f"{api_url}wp/v2/posts"
        self.pages_api_url = f"{api_url}wp/v2/pages"

    def cursors(self) -> List[PageCursor]:
        return [
            WordpressCursor(self.http, "posts", self.posts_api_url, observer=self.observer),
            WordpressCursor(self.http, "pages", self.pages_api_url, observer=self.observer),
        ]

    def to_entry(self, item: WordpressPost) -> NormalizedEntry:
        try:
            author_name = self.authors[item.author]
        except KeyError:
            raise ConsistencyError(
                f"Post {item.id} references unknown author id {item.author}"
            )

        return NormalizedEntry(
            id=self.entry_id(item.id),
            title=item.title.rendered,
            published=item.date_gmt,
            authors=[Author(name=author_name)],
            content_html=item.content.rendered,
            link=item.link,
        )


def get_users(http: HTTPClient, users_url: str) -> Dict[int, str]:
    """Map every user id of the site to its display name."""
    authors: Dict[int, str] = {}
    page = 1
    while True:
        def fetch_page(page: int = page):
            response = http.get(users_url, params={"page": page, "per_page": USERS_PER_PAGE})
            return _users_adapter.validate_python(response.json()), response.headers.get(TOTAL_PAGES_HEADER)

        users, total_pages = http.retrying(fetch_page)
        authors.update((u.id, u.name) for u in users)
        if total_pages is None or page >= int(total_pages):
            return authors
        page += 1


def get_blog(
    url: str,
    http: HTTPClient,
    settings: "Settings",
    observer: Optional[ProgressObserver] = None,
) -> WordpressBlog:
    """
    Look up a WordPress blog by URL.

    The REST API is assumed to live at ``{url}/wp-json/``; discovery through
    the ``Link`` header is not enabled on every site.

    Raises:
        RemoteError: If the site metadata or users lookup fails
    """
    api_url = f"{url.rstrip('/')}/wp-json/"

    with translate_remote_errors("WordPress metadata lookup"):
        api_json = http.retrying(lambda: WordpressJson.model_validate(http.get_json(api_url)))
    with translate_remote_errors("WordPress users lookup"):
        authors = get_users(http, f"{api_url}wp/v2/users")

    key = sanitize_blog_key(api_json.name)
    identity = FeedIdentity(
        id=feed_id_for(settings.output.feed_url_base, key),
        key=key,
        title=api_json.name,
        url=api_json.home,
    )
    logger.debug("Resolved WordPress authors", blog=api_json.name, count=len(authors))
    return WordpressBlog(identity, http, api_url, authors, observer=observer)
