"""Persistent store — health snapshots, alerts, recovery events, backup operations."""

from src.store.base import Store
from src.store.exceptions import AlertNotFoundError, StoreError
from src.store.memory import InMemoryStore
from src.store.sql import SqlStore, create_store_engine


def create_store(url: str = "", echo: bool = False) -> Store:
    """Return a SqlStore for *url*, or an InMemoryStore when *url* is empty."""
    if not url:
        return InMemoryStore()
    return SqlStore(url, echo=echo)


__all__ = [
    "AlertNotFoundError",
    "InMemoryStore",
    "SqlStore",
    "Store",
    "StoreError",
    "create_store",
    "create_store_engine",
]
