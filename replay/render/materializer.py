"""
Feed materialization: move one pending entry per run into the rendered feed.
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional, Union

import structlog

from replay import PROG_NAME, __version__
from replay.config import OutputConfig
from replay.errors import ConfigurationError, FeedGenerationError, ReplayError
from replay.models import NormalizedEntry
from replay.render.atom import feed_file_path, read_or_create_feed, write_feed
from replay.store import DurableStore

# Set up structured logger
logger = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeedMaterializer:
    """
    Replays stored entries into Atom files, one entry per feed per call.

    The oldest pending entry is appended to the feed file with its
    ``updated`` time set to now; the feed is trimmed to ``max_entries`` and
    rewritten atomically. The entry leaves the queue only once the new file
    is in place.
    """

    def __init__(
        self,
        store: DurableStore,
        feed_path: Union[str, Path],
        max_entries: Optional[int] = None,
        generator: str = PROG_NAME,
        version: Optional[str] = __version__,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if max_entries is not None and max_entries <= 0:
            raise ConfigurationError("max_entries must be greater than 0")
        self.store = store
        self.feed_path = Path(feed_path)
        self.max_entries = max_entries
        self.generator = generator
        self.version = version
        self.clock = clock

    @classmethod
    def from_config(cls, store: DurableStore, config: OutputConfig, **kwargs) -> "FeedMaterializer":
        return cls(store, config.feed_path, max_entries=config.max_entries, **kwargs)

    def materialize(self, feed_key: str) -> Optional[NormalizedEntry]:
        """
        Replay the oldest pending entry of one feed.

        Returns:
            Optional[NormalizedEntry]: The entry as written, or None if the
            queue was empty (the feed file is left untouched)

        Raises:
            ConfigurationError: If the feed was never scraped
            FeedFileError: If the feed file can't be read or written
            StorageError: If the store fails
        """
        identity = self.store.get_feed(feed_key)
        if identity is None:
            raise ConfigurationError(f"Unknown feed: {feed_key}")

        path = feed_file_path(self.feed_path, feed_key)
        with self.store.claim_oldest(feed_key) as pending:
            if pending is None:
                logger.info("No pending entries", feed_key=feed_key)
                return None

            feed = read_or_create_feed(path, identity, self.generator, self.version)
            now = self.clock()
            entry = pending.replayed(now)
            evicted = feed.append_bounded(entry, self.max_entries)
            feed.updated = now
            write_feed(path, feed)

        logger.info(
            "Replayed entry",
            feed_key=feed_key,
            entry_id=entry.id,
            title=entry.title,
            evicted=len(evicted),
            path=str(path),
        )
        return entry

    def materialize_all(self) -> Dict[str, Optional[NormalizedEntry]]:
        """
        Replay one entry into every known feed.

        A feed that fails is logged and skipped so the remaining feeds still
        get their entry; once every feed was visited, FeedGenerationError
        reports the failed ones.
        """
        results = {}
        failures = {}
        for feed_key, _ in self.store.list_feeds():
            try:
                results[feed_key] = self.materialize(feed_key)
            except ReplayError as e:
                logger.error(
                    "Failed to generate feed",
                    feed_key=feed_key,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                failures[feed_key] = e

        if failures:
            raise FeedGenerationError(results, failures)
        return results
