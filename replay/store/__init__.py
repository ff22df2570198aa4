"""
Store package for blog replay.

Durable, transactional storage of scraped feeds and their pending entries.
"""
from replay.config import StorageConfig
from replay.store.sqlite import DurableStore, entries_table


def open_store(config: StorageConfig) -> DurableStore:
    """Open the durable store described by ``config``."""
    store = DurableStore.from_config(config)
    store.open()
    return store


__all__ = [
    "DurableStore",
    "entries_table",
    "open_store",
]
