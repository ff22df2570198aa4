"""
Render package for blog replay.

Reads and writes Atom feed files and replays stored entries into them.
"""
from replay.render.atom import (
    FEED_FILE_MODE,
    build_document,
    feed_file_path,
    read_feed,
    read_or_create_feed,
    write_feed,
)
from replay.render.materializer import FeedMaterializer

__all__ = [
    "FEED_FILE_MODE",
    "FeedMaterializer",
    "build_document",
    "feed_file_path",
    "read_feed",
    "read_or_create_feed",
    "write_feed",
]
