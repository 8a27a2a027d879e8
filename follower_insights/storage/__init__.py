"""
Session Persistence

Abstract session store and its SQLite implementation.
"""

from pathlib import Path

from follower_insights.storage.base import (
    LIST_FOLLOWERS,
    LIST_FOLLOWING,
    LIST_PENDING_REQUESTS,
    SessionStore,
)
from follower_insights.storage.sqlite import SQLiteSessionStore


def get_store(path: str | Path) -> SessionStore:
    """Open the session store at the given path."""
    return SQLiteSessionStore(path)


__all__ = [
    "SessionStore",
    "SQLiteSessionStore",
    "get_store",
    "LIST_FOLLOWERS",
    "LIST_FOLLOWING",
    "LIST_PENDING_REQUESTS",
]
