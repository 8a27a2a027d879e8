"""
Data Models and Analytical Components

Pydantic models for entities and analytical model implementations.
UnfollowDetector lives in follower_insights.models.unfollows; it depends on
the storage port, which itself imports the entities defined here.
"""

from follower_insights.models.entities import (
    Category,
    Contact,
    Direction,
    FollowEvent,
    FragmentKind,
    GrowthStats,
    IngestDiagnostics,
    RelationshipSets,
    SessionSummary,
    UnfollowedProfile,
    UnfollowSource,
)
from follower_insights.models.relationship import RelationshipAnalyzer
from follower_insights.models.timeline import TimelineBuilder, calculate_growth_stats

__all__ = [
    "Category",
    "Contact",
    "Direction",
    "FollowEvent",
    "FragmentKind",
    "GrowthStats",
    "IngestDiagnostics",
    "RelationshipSets",
    "SessionSummary",
    "UnfollowedProfile",
    "UnfollowSource",
    "RelationshipAnalyzer",
    "TimelineBuilder",
    "calculate_growth_stats",
]
