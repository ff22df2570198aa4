"""
Task definitions for blog replay.

Each task is one user visible operation, composed from the blog sources, the
store and the materializer held by an AppContext.
"""
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

import structlog

from replay.blogs import ProgressObserver, detect_blog
from replay.models import FeedIdentity, NormalizedEntry

if TYPE_CHECKING:
    from replay.context import AppContext

# Set up structured logger
logger = structlog.get_logger()


def scrape_blog(
    app_context: "AppContext",
    url: str,
    observer: Optional[ProgressObserver] = None,
) -> Tuple[FeedIdentity, int]:
    """
    Scrape a blog's whole archive into the store.

    A blog scraped before keeps its stored identity, so its feed key and entry
    ids do not change if the remote title did. Nothing is stored unless the
    whole archive was read.

    Returns:
        Tuple[FeedIdentity, int]: The feed identity and the number of queued entries
    """
    logger.info("Scraping blog", url=url)
    source = detect_blog(url, app_context.http, app_context.settings, observer=observer)

    store = app_context.store
    stored = store.find_feed_by_url(source.feed_data().url)
    if stored is not None:
        logger.info("Reusing stored feed identity", url=url, feed_key=stored.key)
        source.pin_identity(stored)

    identity = source.feed_data()
    queued = store.ingest(identity, source.entries())
    logger.info("Blog scraped", url=url, feed_key=identity.key, queued=queued)
    return identity, queued


def generate_feeds(
    app_context: "AppContext",
    feed_key: Optional[str] = None,
) -> Dict[str, Optional[NormalizedEntry]]:
    """
    Replay one pending entry into every feed, or only into ``feed_key``.

    Returns:
        Dict[str, Optional[NormalizedEntry]]: Replayed entry (or None) per feed key
    """
    materializer = app_context.materializer()
    if feed_key is not None:
        return {feed_key: materializer.materialize(feed_key)}

    results = materializer.materialize_all()
    if not results:
        logger.warning("No feeds to generate, scrape a blog first")
    return results


def list_feeds(app_context: "AppContext") -> List[Tuple[FeedIdentity, int]]:
    """Stored feeds with their number of pending entries."""
    store = app_context.store
    return [(identity, store.count_pending(key)) for key, identity in store.list_feeds()]
