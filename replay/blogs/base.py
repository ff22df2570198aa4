"""
Base blog source module for blog replay.

This module defines the pieces every platform shares: the pull-based page
cursor that walks one paginated listing, the BlogSource interface that turns
cursors into normalized entries, the progress observer hooks, and blog type
detection.

The main entry point is ``detect_blog``, which probes a URL against each
supported platform and returns the first BlogSource that recognises it.
"""
import abc
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Deque, Generic, Iterator, List, Optional, Protocol, TypeVar

import httpx
import structlog

from replay.errors import (
    ConsistencyError,
    DetectionError,
    NotThisPlatform,
    RemoteError,
    ReplayError,
)
from replay.fetcher.http_client import HTTPClient
from replay.models import FeedIdentity, NormalizedEntry

if TYPE_CHECKING:
    from replay.config import Settings

# Set up structured logger
logger = structlog.get_logger()

T = TypeVar("T")
P = TypeVar("P")


class BlogType(str, Enum):
    """Publishing platforms blog replay can scrape."""
    BLOGGER = "blogger"
    WORDPRESS = "wordpress"
    SUBSTACK = "substack"


class ProgressObserver(Protocol):
    """Receives progress notifications while a stream is being paginated."""

    def on_start(self, stream: str, total: Optional[int]) -> None:
        ...

    def on_progress(self, stream: str, seen: int, total: Optional[int]) -> None:
        ...

    def on_finish(self, stream: str, seen: int) -> None:
        ...


class LoggingProgressObserver:
    """Default observer: reports progress through the structured logger."""

    def __init__(self, blog_title: Optional[str] = None):
        self.blog_title = blog_title

    def on_start(self, stream: str, total: Optional[int]) -> None:
        logger.info("Scraping stream", blog=self.blog_title, stream=stream, total=total)

    def on_progress(self, stream: str, seen: int, total: Optional[int]) -> None:
        logger.debug("Fetched page", blog=self.blog_title, stream=stream, seen=seen, total=total)

    def on_finish(self, stream: str, seen: int) -> None:
        logger.info("Stream complete", blog=self.blog_title, stream=stream, seen=seen)


class NullProgressObserver:
    """Observer that ignores everything."""

    def on_start(self, stream: str, total: Optional[int]) -> None:
        pass

    def on_progress(self, stream: str, seen: int, total: Optional[int]) -> None:
        pass

    def on_finish(self, stream: str, seen: int) -> None:
        pass


@contextmanager
def translate_remote_errors(what: str):
    """
    Turn httpx, JSON and schema failures into RemoteError.

    ReplayError subclasses raised inside the block pass through untouched.
    """
    try:
        yield
    except ReplayError:
        raise
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        raise RemoteError(
            f"{what}: HTTP {status} from {e.request.url}",
            transient=e.response.is_server_error,
            status_code=status,
        ) from e
    except httpx.HTTPError as e:
        raise RemoteError(f"{what}: {e}") from e
    except ValueError as e:
        # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
        raise RemoteError(f"{what}: malformed response: {e}") from e


@dataclass
class Batch(Generic[T, P]):
    """One page of raw items plus what is needed to fetch the next one."""
    items: List[T]
    next_position: Optional[P]
    expected_total: Optional[int] = None


class PageCursor(abc.ABC, Generic[T, P]):
    """
    Pull-based cursor over one paginated platform listing.

    State: a buffer of fetched but not yet consumed items, an exhaustion flag,
    the platform position (page token, page number or offset) and the running
    item count. ``__next__`` refills the buffer on demand. When the stream is
    exhausted the count is checked against the platform reported total.
    """

    def __init__(
        self,
        http: HTTPClient,
        stream: str,
        observer: Optional[ProgressObserver] = None,
        expected_total: Optional[int] = None,
    ):
        self.http = http
        self.stream = stream
        self.observer = observer or NullProgressObserver()
        self.pending: Deque[T] = deque()
        self.position: Optional[P] = self.initial_position()
        self.exhausted = False
        self.items_seen = 0
        self.expected_total = expected_total
        self.fetches = 0
        self._verified = False

    @abc.abstractmethod
    def initial_position(self) -> P:
        """Position of the first page."""

    @abc.abstractmethod
    def next_batch(self, position: P) -> Batch[T, P]:
        """
        Fetch the page at ``position``.

        Called under the retry engine; may raise httpx errors, ValueError or
        any ReplayError.
        """

    def __iter__(self) -> "PageCursor[T, P]":
        return self

    def __next__(self) -> T:
        while not self.pending:
            if self.exhausted:
                self._verify()
                raise StopIteration
            self._refill()
        return self.pending.popleft()

    def _refill(self) -> None:
        if self.fetches > 0:
            self.http.pause()

        position = self.position
        try:
            with translate_remote_errors(f"Fetching {self.stream}"):
                batch = self.http.retrying(lambda: self.next_batch(position))
        except ReplayError:
            # A failed stream cannot be resumed
            self.exhausted = True
            self._verified = True
            raise

        self.fetches += 1
        if batch.expected_total is not None:
            self.expected_total = batch.expected_total
        if self.fetches == 1:
            self.observer.on_start(self.stream, self.expected_total)

        self.items_seen += len(batch.items)
        self.pending.extend(batch.items)
        self.observer.on_progress(self.stream, self.items_seen, self.expected_total)

        self.position = batch.next_position
        if batch.next_position is None:
            self.exhausted = True

    def _verify(self) -> None:
        if self._verified:
            return
        self._verified = True
        if self.fetches:
            self.observer.on_finish(self.stream, self.items_seen)
        if self.expected_total is not None and self.items_seen != self.expected_total:
            raise ConsistencyError(
                f"{self.stream}: platform reported {self.expected_total} items "
                f"but {self.items_seen} were returned"
            )


class EntryStream:
    """
    Lazy, single-pass sequence of normalized entries.

    Consumes a source's cursors one after the other (posts before pages),
    drops items the source filters out and normalizes the rest.
    """

    def __init__(self, source: "BlogSource", cursors: List[PageCursor]):
        self.source = source
        self._cursors: Deque[PageCursor] = deque(cursors)
        self.yielded = 0

    def __iter__(self) -> "EntryStream":
        return self

    def __next__(self) -> NormalizedEntry:
        while self._cursors:
            cursor = self._cursors[0]
            try:
                item = next(cursor)
            except StopIteration:
                self._cursors.popleft()
                continue
            except ReplayError:
                self._cursors.clear()
                raise

            if not self.source.keep(item):
                continue

            try:
                with translate_remote_errors(f"Normalizing {cursor.stream} item"):
                    entry = self.source.to_entry(item)
            except ReplayError:
                self._cursors.clear()
                raise
            self.yielded += 1
            return entry
        raise StopIteration


class BlogSource(abc.ABC):
    """
    Abstract base class for blog sources.

    A blog source knows a blog's identity and how to walk its archive. It is
    built by the platform's ``get_blog`` factory, which performs the one-time
    metadata lookup.
    """

    blog_type: BlogType

    def __init__(
        self,
        identity: FeedIdentity,
        http: HTTPClient,
        observer: Optional[ProgressObserver] = None,
    ):
        self._identity = identity
        self.http = http
        self.observer = observer or LoggingProgressObserver(identity.title)
        self._started = False

    def feed_data(self) -> FeedIdentity:
        """Identity of the feed this blog replays into. No I/O."""
        return self._identity

    @property
    def feed_id(self) -> str:
        return self._identity.id

    def pin_identity(self, identity: FeedIdentity) -> None:
        """
        Reuse a previously stored identity.

        Must happen before ``entries`` is called, since entry ids are prefixed
        with the feed id.
        """
        if self._started:
            raise ReplayError("Cannot change feed identity after scraping started")
        self._identity = identity

    def entry_id(self, source_post_id: Any) -> str:
        return f"{self.feed_id}/{source_post_id}"

    @abc.abstractmethod
    def cursors(self) -> List[PageCursor]:
        """Cursors to consume, in order. Must not perform I/O."""

    @abc.abstractmethod
    def to_entry(self, item: Any) -> NormalizedEntry:
        """Normalize one raw item. May perform I/O."""

    def keep(self, item: Any) -> bool:
        """Whether a listed item should become an entry."""
        return True

    def entries(self) -> Iterator[NormalizedEntry]:
        """
        Lazy sequence of this blog's entries.

        Can only be consumed once. Iterating performs network I/O and may raise
        a ReplayError after some entries have been produced.
        """
        if self._started:
            raise ReplayError("entries() can only be consumed once per source")
        self._started = True
        return EntryStream(self, self.cursors())


def detect_blog(
    url: str,
    http: HTTPClient,
    settings: "Settings",
    observer: Optional[ProgressObserver] = None,
) -> BlogSource:
    """
    Get the blog source for a URL.

    Probes WordPress, then Blogger (only when an API key is configured), then
    Substack, and returns the first platform that recognises the blog.

    Raises:
        DetectionError: If no platform recognises the URL
    """
    # Import specific sources here to avoid circular imports
    from replay.blogs import blogger, substack, wordpress

    probes = [
        (BlogType.WORDPRESS, wordpress.get_blog),
        (BlogType.BLOGGER, blogger.get_blog),
        (BlogType.SUBSTACK, substack.get_blog),
    ]

    for blog_type, probe in probes:
        try:
            source = probe(url, http, settings, observer=observer)
        except ReplayError as e:
            logger.debug("Platform probe failed", url=url, blog_type=blog_type.value, error=str(e))
            continue
        logger.info("Detected blog type", url=url, blog_type=blog_type.value)
        return source

    raise DetectionError(f"Could not determine blog type for {url}")


def blog_type(url: str, http: HTTPClient, settings: "Settings") -> BlogType:
    """Return only the detected platform of a URL."""
    return detect_blog(url, http, settings, observer=NullProgressObserver()).blog_type


def require(condition: bool, message: str) -> None:
    """Raise NotThisPlatform unless ``condition`` holds."""
    if not condition:
        raise NotThisPlatform(message)
