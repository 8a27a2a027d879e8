"""
Relationship Analyzer

Partitions followers and following into mutual / followers-only / following-only.
"""

import logging

from follower_insights.models.entities import Category, Contact, RelationshipSets

logger = logging.getLogger(__name__)


class RelationshipAnalyzer:
    """Computes the three-way relationship partition.

    Membership tests use handle sets, so the whole analysis is O(n + m).
    Mutual contacts are taken from the followers list, keeping its profile
    URL and timestamp.
    """

    def analyze(
        self,
        followers: list[Contact],
        following: list[Contact],
    ) -> RelationshipSets:
        """Partition the two lists.

        Args:
            followers: Deduplicated followers
            following: Deduplicated following

        Returns:
            RelationshipSets preserving input order within each category
        """
        follower_handles = {c.handle for c in followers}
        following_handles = {c.handle for c in following}

        mutual = []
        followers_only = []
        for contact in followers:
            if contact.handle in following_handles:
                mutual.append(contact)
            else:
                followers_only.append(contact)

        following_only = [c for c in following if c.handle not in follower_handles]

        logger.info(
            f"Analysis complete: {len(mutual)} mutual, "
            f"{len(followers_only)} followers only, "
            f"{len(following_only)} following only"
        )

        return RelationshipSets(
            mutual=mutual,
            followers_only=followers_only,
            following_only=following_only,
        )

    def summarize(self, sets: RelationshipSets) -> dict[str, int]:
        """Count contacts per relationship category."""
        return {
            Category.MUTUAL.value: len(sets.mutual),
            Category.FOLLOWERS_ONLY.value: len(sets.followers_only),
            Category.FOLLOWING_ONLY.value: len(sets.following_only),
        }
