"""
Blogger source for blog replay.

Uses the Blogger v3 API, which needs an API key. Posts and pages are two
separate listings paginated with an opaque ``nextPageToken``; the expected
totals come from the blog metadata returned by the ``byurl`` lookup.
"""
from typing import TYPE_CHECKING, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from replay.blogs.base import (
    Batch,
    BlogSource,
    BlogType,
    PageCursor,
    ProgressObserver,
    require,
    translate_remote_errors,
)
from replay.fetcher.http_client import HTTPClient
from replay.models import Author, FeedIdentity, NormalizedEntry, feed_id_for, sanitize_blog_key

if TYPE_CHECKING:
    from replay.config import Settings

logger = structlog.get_logger()

API_BASE = "https://www.googleapis.com/blogger/v3"


class ItemSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_items: int = Field(default=0, alias="totalItems")


class BloggerJson(BaseModel):
    """Blog metadata from the ``blogs/byurl`` endpoint."""
    id: str
    name: str
    description: str = ""
    url: str
    posts: ItemSummary = Field(default_factory=ItemSummary)
    pages: ItemSummary = Field(default_factory=ItemSummary)


class BloggerAuthor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    display_name: str = Field(alias="displayName")
    url: Optional[str] = None


class BloggerPost(BaseModel):
    id: str
    url: str
    title: str = ""
    content: Optional[str] = None
    author: BloggerAuthor
    published: str


class ListPostsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    next_page_token: Optional[str] = Field(default=None, alias="nextPageToken")
    items: List[BloggerPost] = Field(default_factory=list)


class BloggerCursor(PageCursor[BloggerPost, Optional[str]]):
    """Walks one Blogger listing (posts or pages) by page token."""

    def __init__(
        self,
        http: HTTPClient,
        stream: str,
        api_url: str,
        api_key: str,
        total_items: int,
        observer: Optional[ProgressObserver] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        super().__init__(http, stream, observer=observer, expected_total=total_items)
        if total_items == 0:
            # Nothing to list, skip the request entirely
            self.exhausted = True

    def initial_position(self) -> Optional[str]:
        return None

    def next_batch(self, position: Optional[str]) -> Batch[BloggerPost, Optional[str]]:
        params = {
            "key": self.api_key,
            "orderBy": "published",
            "fetchBodies": "true",
        }
        if position is not None:
            params["pageToken"] = position

        page = ListPostsResponse.model_validate(self.http.get_json(self.api_url, params=params))
        return Batch(
            items=page.items,
            next_position=page.next_page_token,
            expected_total=self.expected_total,
        )


class BloggerBlog(BlogSource):
    """A blog hosted on Blogger."""

    blog_type = BlogType.BLOGGER

    def __init__(
        self,
        identity: FeedIdentity,
        http: HTTPClient,
        api_json: BloggerJson,
        api_key: str,
        observer: Optional[ProgressObserver] = None,
    ):
        super().__init__(identity, http, observer=observer)
        self.api_json = api_json
        self.api_key = api_key
        self.posts_api_url = f"{API_BASE}/blogs/{api_json.id}/posts"
        self.pages_api_url = f"{API_BASE}/blogs/{api_json.id}/pages"

    def cursors(self) -> List[PageCursor]:
        logger.info(
            "Scraping Blogger blog",
            blog=self.api_json.name,
            posts=self.api_json.posts.total_items,
            pages=self.api_json.pages.total_items,
        )
        return [
            BloggerCursor(
                self.http, "posts", self.posts_api_url, self.api_key,
                self.api_json.posts.total_items, observer=self.observer,
            ),
            BloggerCursor(
                self.http, "pages", self.pages_api_url, self.api_key,
                self.api_json.pages.total_items, observer=self.observer,
            ),
        ]

    def to_entry(self, item: BloggerPost) -> NormalizedEntry:
        return NormalizedEntry(
            id=self.entry_id(item.id),
            title=item.title,
            published=item.published,
            authors=[Author(name=item.author.display_name, uri=item.author.url)],
            content_html=item.content,
            link=item.url,
        )


def get_blog(
    url: str,
    http: HTTPClient,
    settings: "Settings",
    observer: Optional[ProgressObserver] = None,
) -> BloggerBlog:
    """
    Look up a Blogger blog by URL.

    Raises:
        NotThisPlatform: If no Blogger API key is configured
        RemoteError: If the metadata lookup fails
    """
    api_key = settings.blogger_api_key
    require(api_key is not None, "No Blogger API key configured")

    with translate_remote_errors("Blogger metadata lookup"):
        api_json = http.retrying(
            lambda: BloggerJson.model_validate(
                http.get_json(f"{API_BASE}/blogs/byurl", params={"url": url, "key": api_key})
            )
        )

    key = sanitize_blog_key(api_json.name)
    identity = FeedIdentity(
        id=feed_id_for(settings.output.feed_url_base, key),
        key=key,
        title=api_json.name,
        url=api_json.url,
    )
    return BloggerBlog(identity, http, api_json, api_key, observer=observer)
