"""
SQLite-backed durable store for blog replay.

Holds the identity of every scraped feed and, per feed, the queue of entries
that have been scraped but not yet replayed into the rendered feed. Every
mutation runs inside one ``BEGIN IMMEDIATE`` transaction, so a scrape that
fails halfway leaves no trace and a replayed entry disappears from its queue
only if the feed file was written.

Layout:
    feed_metadata      key -> FeedIdentity JSON
    entries_{key}      queue key (sortable UTC timestamp) -> NormalizedEntry JSON
    published_entries  (feed key, entry id) of every replayed entry
"""
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union

import structlog

from replay.config import StorageConfig
from replay.errors import ConfigurationError, StorageError
from replay.models import FeedIdentity, NormalizedEntry
from replay.models.feed import VALID_KEY

# Set up structured logger
logger = structlog.get_logger()

SCHEMA = """
CREATE TABLE IF NOT EXISTS feed_metadata (
    key TEXT PRIMARY KEY,
    data TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS published_entries (
    feed_key TEXT NOT NULL,
    entry_id TEXT NOT NULL,
    published_at TEXT NOT NULL,
    PRIMARY KEY (feed_key, entry_id)
);
"""


def entries_table(feed_key: str) -> str:
    """Quoted name of a feed's queue table."""
    if not VALID_KEY.match(feed_key):
        raise ConfigurationError(f"Invalid feed key: {feed_key!r}")
    return f'"entries_{feed_key}"'


@contextmanager
def storage_errors(what: str):
    """Raise sqlite failures as StorageError."""
    try:
        yield
    except sqlite3.Error as e:
        raise StorageError(f"{what}: {e}") from e


class DurableStore:
    """
    Embedded, crash-consistent store of feed metadata and pending entries.

    One process at a time; SQLite's write lock is the only concurrency
    control.
    """

    def __init__(self, db_path: Union[str, Path], busy_timeout_ms: int = 5000):
        self.db_path = Path(db_path)
        self.busy_timeout_ms = busy_timeout_ms
        self._conn: Optional[sqlite3.Connection] = None

    @classmethod
    def from_config(cls, config: StorageConfig) -> "DurableStore":
        return cls(config.db_path, busy_timeout_ms=config.busy_timeout_ms)

    def __enter__(self) -> "DurableStore":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def open(self) -> None:
        if self._conn is not None:
            return
        with storage_errors(f"Opening store at {self.db_path}"):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Autocommit mode; transactions are explicit
            conn = sqlite3.connect(str(self.db_path), isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = FULL")
            conn.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout_ms)}")
            conn.executescript(SCHEMA)
        self._conn = conn
        logger.debug("Store opened", path=str(self.db_path))

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self.open()
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block inside one write transaction.

        Any exception rolls everything back, table creation included, and is
        re-raised unchanged.
        """
        conn = self.conn
        with storage_errors("Starting transaction"):
            conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            # SQLite may already have rolled back on its own
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        with storage_errors("Committing transaction"):
            conn.execute("COMMIT")

    def _table_exists(self, conn: sqlite3.Connection, table: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table.strip('"'),),
        ).fetchone()
        return row is not None

    def ingest(self, identity: FeedIdentity, entries: Iterable[NormalizedEntry]) -> int:
        """
        Store a feed's identity and queue its entries, atomically.

        Entries whose id was already replayed are skipped; an entry with the
        same id or the same queue key as a queued one replaces it. If
        iterating ``entries`` raises, nothing is stored and the exception
        propagates.

        Returns:
            int: Number of entries queued
        """
        table = entries_table(identity.key)
        queued = 0
        skipped = 0

        with self.transaction() as conn:
            with storage_errors(f"Storing metadata for {identity.key}"):
                conn.execute(
                    "INSERT OR REPLACE INTO feed_metadata (key, data) VALUES (?, ?)",
                    (identity.key, identity.model_dump_json()),
                )
                conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {table} ("
                    "ts TEXT PRIMARY KEY, entry_id TEXT NOT NULL, data TEXT NOT NULL)"
                )

            for entry in entries:
                try:
                    data = entry.to_json()
                except ValueError as e:
                    raise StorageError(f"Could not serialize entry {entry.id}: {e}") from e

                with storage_errors(f"Queueing entry {entry.id}"):
                    if self._is_published(conn, identity.key, entry.id):
                        skipped += 1
                        continue
                    conn.execute(f"DELETE FROM {table} WHERE entry_id = ?", (entry.id,))
                    conn.execute(
                        f"INSERT OR REPLACE INTO {table} (ts, entry_id, data) VALUES (?, ?, ?)",
                        (entry.queue_key(), entry.id, data),
                    )
                queued += 1

        logger.info("Ingested feed", feed_key=identity.key, queued=queued, already_published=skipped)
        return queued

    def _is_published(self, conn: sqlite3.Connection, feed_key: str, entry_id: str) -> bool:
        row = conn.execute(
            "SELECT 1 FROM published_entries WHERE feed_key = ? AND entry_id = ?",
            (feed_key, entry_id),
        ).fetchone()
        return row is not None

    @contextmanager
    def claim_oldest(self, feed_key: str) -> Iterator[Optional[NormalizedEntry]]:
        """
        Yield the oldest pending entry of a feed, removing it on success.

        The entry is deleted from the queue and recorded as published only if
        the block exits without an exception. Yields None when the queue is
        empty or the feed is unknown.
        """
        table = entries_table(feed_key)
        with self.transaction() as conn:
            with storage_errors(f"Reading queue of {feed_key}"):
                row = None
                if self._table_exists(conn, table):
                    row = conn.execute(
                        f"SELECT ts, data FROM {table} ORDER BY ts LIMIT 1"
                    ).fetchone()

            if row is None:
                yield None
                return

            entry = NormalizedEntry.from_json(row["data"])
            yield entry

            with storage_errors(f"Removing {entry.id} from queue of {feed_key}"):
                conn.execute(f"DELETE FROM {table} WHERE ts = ?", (row["ts"],))
                conn.execute(
                    "INSERT OR IGNORE INTO published_entries (feed_key, entry_id, published_at) "
                    "VALUES (?, ?, ?)",
                    (feed_key, entry.id, datetime.now(timezone.utc).isoformat()),
                )

    def drain_one(self, feed_key: str) -> Optional[NormalizedEntry]:
        """Pop the oldest pending entry of a feed, or None if there is none."""
        with self.claim_oldest(feed_key) as entry:
            return entry

    def get_feed(self, feed_key: str) -> Optional[FeedIdentity]:
        with storage_errors(f"Reading metadata of {feed_key}"):
            row = self.conn.execute(
                "SELECT data FROM feed_metadata WHERE key = ?", (feed_key,)
            ).fetchone()
        return FeedIdentity.model_validate_json(row["data"]) if row else None

    def find_feed_by_url(self, url: str) -> Optional[FeedIdentity]:
        """Stored identity of the blog at ``url``, if it was scraped before."""
        wanted = url.rstrip("/")
        for _, identity in self.list_feeds():
            if identity.url.rstrip("/") == wanted:
                return identity
        return None

    def list_feeds(self) -> List[Tuple[str, FeedIdentity]]:
        with storage_errors("Listing feeds"):
            rows = self.conn.execute("SELECT key, data FROM feed_metadata ORDER BY key").fetchall()
        return [(row["key"], FeedIdentity.model_validate_json(row["data"])) for row in rows]

    def count_pending(self, feed_key: str) -> int:
        table = entries_table(feed_key)
        conn = self.conn
        with storage_errors(f"Counting queue of {feed_key}"):
            if not self._table_exists(conn, table):
                return 0
            return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
