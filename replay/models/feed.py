"""
Feed models: the stable identity of a scraped blog and its rendered Atom feed.

This module also owns key derivation. A feed key is the URL and filesystem
safe slug that names a blog across runs: it is the rendered file name, the
suffix of the store's queue table and the last path segment of the feed id.
"""
import hashlib
import re
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from replay.models.entry import NormalizedEntry

# Compiled once at import, never mutated.
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_SANITIZER = re.compile(r"[^&\[\]a-z0-9]+")
VALID_KEY = re.compile(r"^[-&\[\]a-z0-9_]+$")


def sanitize_blog_key(title: str) -> str:
    """
    Derive a feed key from a human readable blog title.

    Word boundaries (whitespace, punctuation, camelCase transitions) become a
    single underscore and everything is lowercased, so ``"My Cool-Blog"`` and
    ``"myCoolBlog"`` both become ``"my_cool_blog"``. The function is idempotent.
    Different titles can collide; that is accepted.
    """
    snake = _CAMEL_BOUNDARY.sub(" ", title).lower()
    key = _SANITIZER.sub("_", snake).strip("_")
    if not key:
        # Nothing usable survived (e.g. a title written entirely in CJK)
        key = hashlib.sha256(title.encode()).hexdigest()[:12]
    return key


def feed_id_for(feed_url_base: str, key: str) -> str:
    """Public identifier of a feed, also the prefix of its entry ids."""
    return f"{feed_url_base}/{key}"


class FeedIdentity(BaseModel):
    """
    Identity of one scraped blog.

    Computed once at first scrape and stored; later scrapes reuse the stored
    copy so the key never drifts when the remote title changes.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    key: str
    title: str
    url: str


class AtomLink(BaseModel):
    """A feed level <link>."""
    href: str
    rel: str = "alternate"


class AtomFeed(BaseModel):
    """
    The rendered Atom document of one feed.

    ``title`` is the display title exactly as written to disk; ``entries`` is
    kept oldest first, the order in which they were replayed.
    """
    id: str
    title: str
    links: List[AtomLink] = Field(default_factory=list)
    generator: str
    generator_version: Optional[str] = None
    updated: Optional[datetime] = None
    entries: List[NormalizedEntry] = Field(default_factory=list)

    @classmethod
    def from_identity(cls, identity: FeedIdentity, generator: str, version: Optional[str] = None) -> "AtomFeed":
        """Synthesize an empty feed for a blog that has never been rendered."""
        return cls(
            id=identity.id,
            title=f"{identity.title} ({generator})",
            links=[
                AtomLink(href=identity.url, rel="alternate"),
                AtomLink(href=f"{identity.id}.atom", rel="self"),
            ],
            generator=generator,
            generator_version=version,
        )

    def append_bounded(self, entry: NormalizedEntry, max_entries: Optional[int]) -> List[NormalizedEntry]:
        """
        Append an entry and evict the oldest ones beyond ``max_entries``.

        Returns the evicted entries.
        """
        self.entries.append(entry)
        if max_entries is None or len(self.entries) <= max_entries:
            return []
        overflow = len(self.entries) - max_entries
        evicted = self.entries[:overflow]
        self.entries = self.entries[overflow:]
        return evicted
