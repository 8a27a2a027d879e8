"""
Core Data Models

Pydantic models representing follower export entities and analysis results.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FragmentKind(str, Enum):
    """Kinds of archive entries recognised by the scanner."""
    FOLLOWERS = "followers"
    FOLLOWING = "following"
    PENDING_REQUESTS = "pending_requests"
    UNFOLLOWED = "unfollowed"
    UNCLASSIFIED = "unclassified"


class Direction(str, Enum):
    """Which list a timeline event originates from."""
    FOLLOWER = "follower"
    FOLLOWING = "following"


class UnfollowSource(str, Enum):
    """How an unfollowed profile was discovered."""
    DETECTED = "detected"  # Missing from following since the previous upload
    IMPORTED = "imported"  # Listed in the export's recently-unfollowed file


class Category(str, Enum):
    """Categories exposed by the query layer."""
    MUTUAL = "mutual"
    FOLLOWERS_ONLY = "followers_only"
    FOLLOWING_ONLY = "following_only"
    PENDING_REQUESTS = "pending_requests"
    UNFOLLOWED = "unfollowed"

    @property
    def is_relationship(self) -> bool:
        return self in RELATIONSHIP_CATEGORIES

    @property
    def label(self) -> str:
        """Human-readable label used in CSV exports."""
        return CATEGORY_LABELS[self]


RELATIONSHIP_CATEGORIES = (
    Category.MUTUAL,
    Category.FOLLOWERS_ONLY,
    Category.FOLLOWING_ONLY,
)

CATEGORY_LABELS = {
    Category.MUTUAL: "Mutual",
    Category.FOLLOWERS_ONLY: "Followers Only",
    Category.FOLLOWING_ONLY: "Following Only",
    Category.PENDING_REQUESTS: "Pending Requests",
    Category.UNFOLLOWED: "Unfollowed",
}


class Contact(BaseModel):
    """A single account observed in one of the export lists."""
    model_config = ConfigDict(frozen=True)

    handle: str = Field(min_length=1, description="Account handle, unique within a list")
    profile_url: Optional[str] = None
    observed_at: Optional[int] = Field(
        default=None,
        description="Epoch seconds the relationship was recorded, if known",
    )


class RelationshipSets(BaseModel):
    """Three-way partition of followers and following."""
    model_config = ConfigDict(frozen=True)

    mutual: list[Contact] = Field(default_factory=list)
    followers_only: list[Contact] = Field(default_factory=list)
    following_only: list[Contact] = Field(default_factory=list)

    def for_category(self, category: Category) -> list[Contact]:
        """Return the contacts of a relationship category."""
        return getattr(self, category.value)


class FollowEvent(BaseModel):
    """A point on the follower/following timeline."""
    model_config = ConfigDict(frozen=True)

    timestamp: int
    handle: str
    direction: Direction
    followers_count_after: int = Field(ge=0)
    following_count_after: int = Field(ge=0)


class UnfollowedProfile(BaseModel):
    """An account that left the following list."""
    model_config = ConfigDict(frozen=True)

    handle: str
    profile_url: Optional[str] = None
    unfollowed_at: int
    source: UnfollowSource
    session_id: str


class GrowthStats(BaseModel):
    """Net growth over rolling windows relative to a reference time."""
    daily_growth: int = 0
    weekly_growth: int = 0
    monthly_growth: int = 0
    all_time_growth: int = 0
    total_followers: int = 0
    total_following: int = 0


class IngestDiagnostics(BaseModel):
    """Aggregated counters for non-fatal ingestion problems."""
    entries_scanned: int = 0
    binary_entries_skipped: int = 0
    non_text_entries_skipped: int = 0
    oversized_entries_skipped: int = 0
    unclassified_entries: int = 0
    fragments_by_kind: dict[str, int] = Field(default_factory=dict)
    undecodable_fragments: int = 0
    degraded_decodes: int = 0
    malformed_records: int = 0
    records_without_handle: int = 0
    invalid_timestamps: int = 0
    duplicate_handles_merged: int = 0

    def merge(self, other: "IngestDiagnostics") -> "IngestDiagnostics":
        """Return a new diagnostics object with counters summed."""
        data = self.model_dump()
        for key, value in other.model_dump().items():
            if isinstance(value, dict):
                merged = dict(data[key])
                for kind, count in value.items():
                    merged[kind] = merged.get(kind, 0) + count
                data[key] = merged
            else:
                data[key] += value
        return IngestDiagnostics(**data)


class SessionSummary(BaseModel):
    """Result of processing one uploaded archive."""
    session_id: str
    created_at: datetime = Field(default_factory=datetime.now)
    previous_session_id: Optional[str] = None

    followers_count: int = 0
    following_count: int = 0
    mutual_count: int = 0
    followers_only_count: int = 0
    following_only_count: int = 0
    pending_requests_count: int = 0

    total_events: int = 0
    total_unfollows: int = 0
    detected_unfollows: int = 0
    imported_unfollows: int = 0

    diagnostics: IngestDiagnostics = Field(default_factory=IngestDiagnostics)
