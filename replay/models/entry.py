"""
NormalizedEntry model: one post or page, normalized across platforms.

Entries are frozen. Replaying an entry into a feed produces a copy with its
``updated`` timestamp set (see ``NormalizedEntry.replayed``).
"""
from datetime import datetime, timezone
from typing import List, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, field_validator

QUEUE_KEY_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def parse_datetime(value: str) -> datetime:
    """
    Parse an RFC 3339 style timestamp, normalized to UTC.

    Naive timestamps (WordPress ``date_gmt``) are taken to be UTC already.

    Raises:
        ValueError: If the value is empty or not a timestamp
    """
    if not value:
        raise ValueError("empty timestamp")
    dt = date_parser.isoparse(value)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class Author(BaseModel):
    """An entry author."""
    model_config = ConfigDict(frozen=True)

    name: str
    uri: Optional[str] = None


class NormalizedEntry(BaseModel):
    """
    A scraped post or page ready for feed rendering.

    ``id`` is ``{feed_id}/{source_post_id}`` and is unique within a feed.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    published: datetime
    updated: Optional[datetime] = None
    authors: List[Author] = Field(default_factory=list)
    content_html: Optional[str] = None
    link: str

    @field_validator("published", "updated", mode="before")
    @classmethod
    def ensure_timezone(cls, v):
        """Accept strings and naive datetimes; store everything as aware UTC."""
        if v is None:
            return v
        if isinstance(v, str):
            return parse_datetime(v)
        if isinstance(v, datetime):
            if v.tzinfo is None:
                return v.replace(tzinfo=timezone.utc)
            return v.astimezone(timezone.utc)
        return v

    @property
    def author(self) -> Optional[Author]:
        """First author, for platforms with a single byline."""
        return self.authors[0] if self.authors else None

    def queue_key(self) -> str:
        """Sortable key ordering this entry in a pending queue."""
        return (self.published or self.updated).strftime(QUEUE_KEY_FORMAT)

    def replayed(self, now: datetime) -> "NormalizedEntry":
        """Return a copy marked as updated at ``now``."""
        return self.model_copy(update={"updated": now})

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "NormalizedEntry":
        return cls.model_validate_json(data)
