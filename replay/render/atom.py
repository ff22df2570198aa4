"""
Atom feed reading and writing for blog replay.

Existing feeds are read back with feedparser; feeds are written with
ElementTree to a temporary file that atomically replaces the old one, so a
reader never sees a half-written document.
"""
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union
from xml.etree import ElementTree as ET

import feedparser
import structlog

from replay.errors import FeedFileError
from replay.models import AtomFeed, AtomLink, Author, FeedIdentity, NormalizedEntry

# Set up structured logger
logger = structlog.get_logger()

ATOM_NS = "http://www.w3.org/2005/Atom"
FEED_FILE_MODE = 0o644
FEED_SUFFIX = ".atom"

ET.register_namespace("", ATOM_NS)


def _q(tag: str) -> str:
    return f"{{{ATOM_NS}}}{tag}"


def format_timestamp(dt: datetime) -> str:
    """RFC 3339 timestamp in UTC with a ``Z`` suffix."""
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def feed_file_path(feed_path: Union[str, Path], feed_key: str) -> Path:
    """Location of a feed's rendered Atom file."""
    return Path(feed_path) / f"{feed_key}{FEED_SUFFIX}"


# --------------------------------------------------------------------------- #
# Reading
# --------------------------------------------------------------------------- #

def _entry_from_parsed(entry: Dict[str, Any]) -> NormalizedEntry:
    authors = [
        Author(name=a["name"], uri=a.get("href"))
        for a in entry.get("authors", [])
        if a.get("name")
    ]
    content = entry.get("content") or []
    content_html = content[0].get("value") if content else None

    return NormalizedEntry(
        id=entry["id"],
        title=entry.get("title", ""),
        published=entry.get("published") or entry.get("updated"),
        updated=entry.get("updated"),
        authors=authors,
        content_html=content_html,
        link=entry.get("link", ""),
    )


def read_feed(path: Path) -> AtomFeed:
    """
    Parse a rendered feed from disk.

    Raises:
        FeedFileError: If the file is not an Atom feed written by us
    """
    content = path.read_bytes()
    parsed = feedparser.parse(content, sanitize_html=False, resolve_relative_uris=False)
    meta = parsed.feed

    if not meta.get("id"):
        reason = str(parsed.get("bozo_exception", "missing feed id"))
        raise FeedFileError(f"Could not parse feed at {path}: {reason}")

    generator = meta.get("generator_detail") or {}
    try:
        return AtomFeed(
            id=meta["id"],
            title=meta.get("title", ""),
            links=[
                AtomLink(href=link["href"], rel=link.get("rel", "alternate"))
                for link in meta.get("links", [])
                if link.get("href")
            ],
            generator=generator.get("name") or meta.get("generator", ""),
            generator_version=generator.get("version"),
            updated=meta.get("updated"),
            entries=[_entry_from_parsed(e) for e in parsed.entries],
        )
    except (KeyError, ValueError) as e:
        raise FeedFileError(f"Could not parse feed at {path}: {e}") from e


def read_or_create_feed(
    path: Path,
    identity: FeedIdentity,
    generator: str,
    version: Optional[str] = None,
) -> AtomFeed:
    """Load the rendered feed at ``path``, or start an empty one."""
    try:
        feed = read_feed(path)
    except FileNotFoundError:
        logger.debug("No rendered feed yet, creating one", path=str(path), feed_key=identity.key)
        return AtomFeed.from_identity(identity, generator, version)
    except OSError as e:
        raise FeedFileError(f"Failed to open feed at path {path}: {e}") from e
    return feed


# --------------------------------------------------------------------------- #
# Writing
# --------------------------------------------------------------------------- #

def _text(parent: ET.Element, tag: str, text: str, **attrib: str) -> ET.Element:
    element = ET.SubElement(parent, _q(tag), attrib)
    element.text = text
    return element


def _entry_element(parent: ET.Element, entry: NormalizedEntry) -> None:
    element = ET.SubElement(parent, _q("entry"))
    _text(element, "title", entry.title)
    _text(element, "id", entry.id)
    _text(element, "updated", format_timestamp(entry.updated or entry.published))
    _text(element, "published", format_timestamp(entry.published))
    for author in entry.authors:
        author_element = ET.SubElement(element, _q("author"))
        _text(author_element, "name", author.name)
        if author.uri:
            _text(author_element, "uri", author.uri)
    if entry.content_html is not None:
        _text(element, "content", entry.content_html, type="html")
    ET.SubElement(element, _q("link"), {"href": entry.link, "rel": "alternate"})


def build_document(feed: AtomFeed) -> ET.ElementTree:
    """Build the Atom XML tree of a feed."""
    root = ET.Element(_q("feed"))
    _text(root, "title", feed.title)
    _text(root, "id", feed.id)
    _text(root, "updated", format_timestamp(feed.updated or datetime.now(timezone.utc)))
    for link in feed.links:
        ET.SubElement(root, _q("link"), {"href": link.href, "rel": link.rel})

    generator_attrib = {"version": feed.generator_version} if feed.generator_version else {}
    _text(root, "generator", feed.generator, **generator_attrib)

    for entry in feed.entries:
        _entry_element(root, entry)

    tree = ET.ElementTree(root)
    ET.indent(tree)
    return tree


def write_feed(path: Path, feed: AtomFeed) -> None:
    """
    Write a feed to ``path`` atomically and make it world readable.

    The document goes to a sibling temporary file first, which then replaces
    ``path``.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp")
    tree = build_document(feed)

    try:
        with tmp.open("wb") as f:
            tree.write(f, encoding="utf-8", xml_declaration=True)
            f.flush()
            os.fsync(f.fileno())
        tmp.replace(path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise FeedFileError(f"Failed to write feed at path {path}: {e}") from e

    os.chmod(path, FEED_FILE_MODE)
    logger.debug("Feed written", path=str(path), entries=len(feed.entries))
