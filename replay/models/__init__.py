"""
Central re-exports for the blog replay data models.
"""
from .entry import Author, NormalizedEntry, parse_datetime
from .feed import AtomFeed, AtomLink, FeedIdentity, feed_id_for, sanitize_blog_key

__all__ = [
    "AtomFeed",
    "AtomLink",
    "Author",
    "FeedIdentity",
    "NormalizedEntry",
    "feed_id_for",
    "parse_datetime",
    "sanitize_blog_key",
]
