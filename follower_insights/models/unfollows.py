"""
Unfollow Detection

Infers unfollows by comparing the current following list with the previous
session's, and converts exported recently-unfollowed records.
"""

import logging
import time
from typing import Optional

from follower_insights.models.entities import Contact, UnfollowedProfile, UnfollowSource
from follower_insights.storage.base import SessionStore

logger = logging.getLogger(__name__)


class UnfollowDetector:
    """Cross-session unfollow detection.

    The exact moment of a detected unfollow is unknown; it is stamped with
    the processing time of the upload that noticed it. After ``detect``,
    ``previous_session_id`` names the session that was diffed against.
    """

    def __init__(self, store: SessionStore):
        """Initialize detector.

        Args:
            store: Session store used to read the previous following list
        """
        self.store = store
        self.previous_session_id: Optional[str] = None

    def detect(
        self,
        session_id: str,
        current_following: list[Contact],
        now: Optional[int] = None,
    ) -> list[UnfollowedProfile]:
        """Handles followed in the previous session but not in this one.

        Args:
            session_id: Session being processed
            current_following: Following list of this upload
            now: Processing time in epoch seconds

        Returns:
            Detected unfollows in the previous list's order
        """
        now = int(time.time()) if now is None else now
        self.previous_session_id, previous = self.store.get_previous_following(session_id)
        if not previous:
            logger.info("No previous following list, skipping unfollow detection")
            return []

        current_handles = {c.handle for c in current_following}
        detected = [
            UnfollowedProfile(
                handle=contact.handle,
                profile_url=contact.profile_url,
                unfollowed_at=now,
                source=UnfollowSource.DETECTED,
                session_id=session_id,
            )
            for contact in previous
            if contact.handle not in current_handles
        ]

        logger.info(
            f"Compared {len(current_following)} following against {len(previous)} "
            f"previously followed: {len(detected)} unfollows detected"
        )
        return detected

    def import_records(
        self,
        session_id: str,
        contacts: list[Contact],
        now: Optional[int] = None,
    ) -> list[UnfollowedProfile]:
        """Convert exported recently-unfollowed contacts without diffing."""
        now = int(time.time()) if now is None else now
        return [
            UnfollowedProfile(
                handle=contact.handle,
                profile_url=contact.profile_url,
                unfollowed_at=contact.observed_at if contact.observed_at is not None else now,
                source=UnfollowSource.IMPORTED,
                session_id=session_id,
            )
            for contact in contacts
        ]

    def collect(
        self,
        session_id: str,
        current_following: list[Contact],
        imported: list[Contact],
        now: Optional[int] = None,
    ) -> list[UnfollowedProfile]:
        """Detected and imported unfollows for a session.

        A handle may appear once per source; sources are not deduplicated
        against each other.
        """
        detected = self.detect(session_id, current_following, now)
        imported_records = self.import_records(session_id, imported, now)
        if imported_records:
            logger.info(f"Imported {len(imported_records)} recently unfollowed profiles")
        return detected + imported_records
