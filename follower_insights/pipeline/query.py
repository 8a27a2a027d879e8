"""
Query and Pagination

Deterministic, paginated listing and search over persisted sessions.
"""

import logging
import math
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from follower_insights.errors import QueryValidationError, SessionNotFoundError
from follower_insights.models.entities import (
    RELATIONSHIP_CATEGORIES,
    Category,
    Contact,
    FollowEvent,
    GrowthStats,
    UnfollowedProfile,
)
from follower_insights.models.timeline import calculate_growth_stats, filter_timeline
from follower_insights.storage.base import LIST_PENDING_REQUESTS, SessionStore

logger = logging.getLogger(__name__)

Item = Union[Contact, UnfollowedProfile]


class Page(BaseModel):
    """One page of query results."""
    items: list[Any] = Field(default_factory=list)
    total: int = 0
    total_pages: int = 0
    page: int = 1
    limit: int = 50


class SearchResults(BaseModel):
    """Search across the three relationship categories."""
    query: str
    page: int
    limit: int
    results: dict[str, list[Contact]] = Field(default_factory=dict)
    totals: dict[str, int] = Field(default_factory=dict)

    @property
    def total_found(self) -> int:
        return sum(self.totals.values())


class TimelineView(BaseModel):
    """Timeline events in a timeframe with growth statistics."""
    timeframe: str
    events: list[FollowEvent] = Field(default_factory=list)
    statistics: GrowthStats = Field(default_factory=GrowthStats)


def paginate(items: list, page: int, limit: int) -> Page:
    """Slice a fully ordered list into a 1-based page."""
    total = len(items)
    start = (page - 1) * limit
    return Page(
        items=items[start:start + limit],
        total=total,
        total_pages=math.ceil(total / limit),
        page=page,
        limit=limit,
    )


def _matches(handle: str, search: Optional[str]) -> bool:
    return not search or search.casefold() in handle.casefold()


class QueryService:
    """Read-side access to persisted sessions."""

    def __init__(self, store: SessionStore, max_limit: int = 100):
        """Initialize query service.

        Args:
            store: Session store to read from
            max_limit: Largest accepted page size
        """
        self.store = store
        self.max_limit = max_limit

    def _validate_paging(self, page: int, limit: int) -> None:
        if not isinstance(page, int) or isinstance(page, bool) or page < 1:
            raise QueryValidationError(f"page must be an integer >= 1, got {page!r}")
        if not isinstance(limit, int) or isinstance(limit, bool) or not 1 <= limit <= self.max_limit:
            raise QueryValidationError(
                f"limit must be an integer between 1 and {self.max_limit}, got {limit!r}"
            )

    @staticmethod
    def _parse_category(category: Union[str, Category]) -> Category:
        try:
            return Category(category)
        except ValueError:
            valid = ", ".join(c.value for c in Category)
            raise QueryValidationError(
                f"Invalid category {category!r}. Must be one of: {valid}"
            ) from None

    def _require_session(self, session_id: str) -> None:
        if self.store.get_session(session_id) is None:
            raise SessionNotFoundError(f"Analysis session not found: {session_id}")

    def _ordered_items(self, session_id: str, category: Category) -> list[Item]:
        if category.is_relationship:
            return sorted(self.store.get_contacts(session_id, category.value), key=lambda c: c.handle)

        if category == Category.PENDING_REQUESTS:
            pending = sorted(
                self.store.get_contacts(session_id, LIST_PENDING_REQUESTS),
                key=lambda c: c.handle,
            )
            return sorted(pending, key=lambda c: c.observed_at or 0, reverse=True)

        unfollowed = sorted(self.store.get_unfollowed(session_id), key=lambda r: r.handle)
        return sorted(unfollowed, key=lambda r: r.unfollowed_at, reverse=True)

    def list(
        self,
        session_id: str,
        category: Union[str, Category],
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Page:
        """List one category of a session.

        Relationship categories are ordered by handle; unfollowed profiles by
        unfollow time and pending requests by request time, newest first.

        Args:
            session_id: Session to read
            category: Category name
            search: Case-insensitive substring filter on handle
            page: 1-based page number
            limit: Page size, between 1 and max_limit

        Returns:
            Page with items, total and total_pages

        Raises:
            QueryValidationError: If category, page or limit is invalid
            SessionNotFoundError: If the session does not exist
        """
        parsed = self._parse_category(category)
        self._validate_paging(page, limit)
        self._require_session(session_id)

        items = [i for i in self._ordered_items(session_id, parsed) if _matches(i.handle, search)]
        return paginate(items, page, limit)

    def search_all(
        self,
        session_id: str,
        query: str,
        page: int = 1,
        limit: int = 50,
    ) -> SearchResults:
        """Search every relationship category, paginating each independently."""
        self._validate_paging(page, limit)
        self._require_session(session_id)

        results = SearchResults(query=query, page=page, limit=limit)
        for category in RELATIONSHIP_CATEGORIES:
            found = self.list(session_id, category, search=query, page=page, limit=limit)
            results.results[category.value] = found.items
            results.totals[category.value] = found.total
        return results

    def get_timeline(
        self,
        session_id: str,
        timeframe: str = "all",
        now: Optional[int] = None,
    ) -> TimelineView:
        """Timeline events within a timeframe and growth statistics over them.

        Raises:
            QueryValidationError: If the timeframe is unknown
            SessionNotFoundError: If the session does not exist
        """
        self._require_session(session_id)
        try:
            events = filter_timeline(self.store.get_timeline(session_id), timeframe, now)
        except ValueError as e:
            raise QueryValidationError(str(e)) from e

        return TimelineView(
            timeframe=timeframe,
            events=events,
            statistics=calculate_growth_stats(events, now),
        )
