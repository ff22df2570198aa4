"""
Substack source for blog replay.

The archive listing is paginated by ``offset`` and ends with an empty page.
Listings do not carry post bodies, so every listed post costs one more
request for its HTML and bylines. Only posts visible to everyone are kept.
"""
from typing import TYPE_CHECKING, List, Optional
from urllib.parse import urlparse

import structlog
from pydantic import BaseModel, Field, TypeAdapter

from replay.blogs.base import (
    Batch,
    BlogSource,
    BlogType,
    PageCursor,
    ProgressObserver,
    require,
    translate_remote_errors,
)
from replay.errors import ConsistencyError, NotThisPlatform
from replay.fetcher.http_client import HTTPClient
from replay.models import Author, FeedIdentity, NormalizedEntry, feed_id_for, sanitize_blog_key

if TYPE_CHECKING:
    from replay.config import Settings

logger = structlog.get_logger()

SEARCH_URL = "https://substack.com/api/v1/publication/search"
PROFILE_URL = "https://substack.com/@{handle}"
PUBLIC_AUDIENCE = "everyone"


class SubstackMeta(BaseModel):
    """One publication search result."""
    id: int
    name: str
    subdomain: str
    custom_domain: Optional[str] = None


class PubSearchResponse(BaseModel):
    results: List[SubstackMeta] = Field(default_factory=list)


class SubstackPost(BaseModel):
    """A post as listed in the archive."""
    id: int
    title: str = ""
    slug: str
    post_date: str
    canonical_url: str
    audience: str
    publication_id: int


class Byline(BaseModel):
    name: str
    handle: Optional[str] = None


class PostMeta(BaseModel):
    """Full post detail."""
    body_html: Optional[str] = None
    published_bylines: List[Byline] = Field(default_factory=list, alias="publishedBylines")


_archive_adapter = TypeAdapter(List[SubstackPost])


def subdomain_for(host: str) -> str:
    """
    Guess the Substack subdomain of a host.

    ``foo.substack.com`` gives ``foo``; a custom domain such as
    ``www.example.com`` gives ``example``.
    """
    if host.endswith("substack.com"):
        return host.split(".", 1)[0]
    labels = host.split(".")
    if len(labels) < 2:
        raise NotThisPlatform(f"Could not find subdomain of {host}")
    return labels[-2]


class SubstackCursor(PageCursor[SubstackPost, int]):
    """Walks the archive listing by offset until an empty page comes back."""

    def __init__(self, http: HTTPClient, archive_url: str, observer: Optional[ProgressObserver] = None):
        self.archive_url = archive_url
        super().__init__(http, "posts", observer=observer)

    def initial_position(self) -> int:
        return 0

    def next_batch(self, position: int) -> Batch[SubstackPost, int]:
        posts = _archive_adapter.validate_python(
            self.http.get_json(self.archive_url, params={"offset": position})
        )
        next_position = position + len(posts) if posts else None
        # No total is reported
        return Batch(items=posts, next_position=next_position)


class SubstackBlog(BlogSource):
    """A Substack publication, on substack.com or a custom domain."""

    blog_type = BlogType.SUBSTACK

    def __init__(
        self,
        identity: FeedIdentity,
        http: HTTPClient,
        meta: SubstackMeta,
        base_url: str,
        observer: Optional[ProgressObserver] = None,
    ):
        super().__init__(identity, http, observer=observer)
        self.meta = meta
        self.archive_url = f"{base_url}/api/v1/archive"
        self.posts_url = f"{base_url}/api/v1/posts/"

    def cursors(self) -> List[PageCursor]:
        return [SubstackCursor(self.http, self.archive_url, observer=self.observer)]

    def keep(self, item: SubstackPost) -> bool:
        # TODO: make the audience filter configurable to replay paid posts with a session cookie
        return item.audience == PUBLIC_AUDIENCE

    def fetch_post(self, post: SubstackPost) -> PostMeta:
        return self.http.retrying(
            lambda: PostMeta.model_validate(self.http.get_json(f"{self.posts_url}{post.slug}"))
        )

    def to_entry(self, item: SubstackPost) -> NormalizedEntry:
        if item.publication_id != self.meta.id:
            raise ConsistencyError(
                f"Post publication {item.publication_id} did not match expected id {self.meta.id}"
            )

        post_meta = self.fetch_post(item)
        authors = [
            Author(name=b.name, uri=PROFILE_URL.format(handle=b.handle) if b.handle else None)
            for b in post_meta.published_bylines
        ]
        return NormalizedEntry(
            id=self.entry_id(item.id),
            title=item.title,
            published=item.post_date,
            authors=authors,
            content_html=post_meta.body_html,
            link=item.canonical_url,
        )


def get_blog(
    url: str,
    http: HTTPClient,
    settings: "Settings",
    observer: Optional[ProgressObserver] = None,
) -> SubstackBlog:
    """
    Look up a Substack publication by URL.

    Raises:
        NotThisPlatform: If the publication search has no matching result
        RemoteError: If the search request fails
    """
    parsed = urlparse(url)
    host = (parsed.hostname or "").lower()
    require(bool(host), f"Can't extract domain from url {url}")
    subdomain = subdomain_for(host)

    with translate_remote_errors("Substack publication search"):
        search = http.retrying(
            lambda: PubSearchResponse.model_validate(
                http.get_json(SEARCH_URL, params={"query": subdomain})
            )
        )

    meta = next(
        (r for r in search.results if r.subdomain == subdomain or r.custom_domain == host),
        None,
    )
    require(meta is not None, f"Couldn't find blog info for {host}")

    key = sanitize_blog_key(meta.subdomain)
    identity = FeedIdentity(
        id=feed_id_for(settings.output.feed_url_base, key),
        key=key,
        title=meta.name,
        url=url,
    )
    base_url = f"{parsed.scheme or 'https'}://{parsed.netloc}"
    return SubstackBlog(identity, http, meta, base_url, observer=observer)
