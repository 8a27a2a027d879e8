"""
Session Store Abstraction

Persistence contract consumed by the pipeline and the query layer.

Usage:
    from follower_insights.storage import get_store

    store = get_store("data/follower_insights.db")
    with store.transaction():
        store.create_session(summary)
        store.save_relationship_sets(summary.session_id, sets)
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Optional

from follower_insights.models.entities import (
    Contact,
    FollowEvent,
    RelationshipSets,
    SessionSummary,
    UnfollowedProfile,
)

# Raw lists persisted alongside the relationship categories
LIST_FOLLOWERS = "followers"
LIST_FOLLOWING = "following"
LIST_PENDING_REQUESTS = "pending_requests"


class SessionStore(ABC):
    """Abstract base class for session persistence.

    Writes made inside ``transaction()`` become visible to readers together
    or not at all.
    """

    @abstractmethod
    def transaction(self) -> AbstractContextManager["SessionStore"]:
        """Group writes atomically; rolls back and raises PersistenceError on failure."""
        pass

    @abstractmethod
    def create_session(self, summary: SessionSummary) -> None:
        """Record a session and its summary counts."""
        pass

    @abstractmethod
    def save_relationship_sets(self, session_id: str, sets: RelationshipSets) -> None:
        """Persist the mutual / followers-only / following-only partition."""
        pass

    @abstractmethod
    def save_contacts(self, session_id: str, list_name: str, contacts: list[Contact]) -> None:
        """Persist a raw contact list (followers, following, pending requests)."""
        pass

    @abstractmethod
    def save_timeline(self, session_id: str, events: list[FollowEvent]) -> None:
        """Persist timeline events."""
        pass

    @abstractmethod
    def save_unfollowed(self, session_id: str, records: list[UnfollowedProfile]) -> None:
        """Persist unfollowed profiles."""
        pass

    @abstractmethod
    def get_latest_session_id(self) -> Optional[str]:
        """Most recently completed session, or None."""
        pass

    @abstractmethod
    def get_previous_following(self, session_id: str) -> tuple[Optional[str], list[Contact]]:
        """Id and following list of the session completed before ``session_id``.

        Both are read together so the id always names the list returned.
        Returns ``(None, [])`` when there is no earlier session.
        """
        pass

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[SessionSummary]:
        pass

    @abstractmethod
    def list_sessions(self, limit: int = 10) -> list[SessionSummary]:
        """Most recent sessions first."""
        pass

    @abstractmethod
    def get_contacts(self, session_id: str, list_name: str) -> list[Contact]:
        """Contacts of a relationship category or raw list, in insertion order."""
        pass

    @abstractmethod
    def get_timeline(self, session_id: str) -> list[FollowEvent]:
        """Timeline events in ascending order."""
        pass

    @abstractmethod
    def get_unfollowed(self, session_id: str) -> list[UnfollowedProfile]:
        pass

    @abstractmethod
    def delete_session(self, session_id: str) -> bool:
        """Remove a session and all of its artifacts."""
        pass

    @abstractmethod
    def cleanup(self, older_than_days: int = 7) -> int:
        """Delete sessions older than the retention window; returns the count removed."""
        pass
