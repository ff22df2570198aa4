"""
Application context management.
"""
from contextlib import ExitStack
from typing import Optional

import structlog

from replay.config import Settings
from replay.fetcher.http_client import HTTPClient
from replay.render import FeedMaterializer
from replay.store import DurableStore, open_store

logger = structlog.get_logger()


class AppContext:
    """
    Application context that holds the resources of one invocation.

    Resources are opened lazily and closed together, in reverse order, by
    ``close`` or on leaving the ``with`` block.
    """

    def __init__(self, settings: Settings, http: Optional[HTTPClient] = None):
        self.settings = settings
        self.exit_stack = ExitStack()
        # A client passed in is owned by the caller and not closed here
        self._http: Optional[HTTPClient] = http
        self._store: Optional[DurableStore] = None

    def __enter__(self) -> "AppContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def http(self) -> HTTPClient:
        if self._http is None:
            logger.debug("Initializing HTTP client")
            self._http = self.exit_stack.enter_context(HTTPClient.from_config(self.settings.http))
        return self._http

    @property
    def store(self) -> DurableStore:
        if self._store is None:
            logger.debug("Opening store", path=str(self.settings.storage.db_path))
            self._store = self.exit_stack.enter_context(open_store(self.settings.storage))
        return self._store

    def materializer(self) -> FeedMaterializer:
        return FeedMaterializer.from_config(self.store, self.settings.output)

    def close(self) -> None:
        """Close every opened resource."""
        self.exit_stack.close()
        self._store = None
