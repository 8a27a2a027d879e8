"""
Upload Processing

Runs one export archive through the full pipeline and persists the result
as a single session.
"""

import logging
import time
import uuid
from typing import Optional

from follower_insights.errors import EmptyDatasetError
from follower_insights.models.entities import SessionSummary, UnfollowSource
from follower_insights.models.relationship import RelationshipAnalyzer
from follower_insights.models.timeline import TimelineBuilder
from follower_insights.models.unfollows import UnfollowDetector
from follower_insights.pipeline.ingest import ArchiveSource, scan_archive
from follower_insights.pipeline.normalize import normalize_fragments
from follower_insights.storage.base import (
    LIST_FOLLOWERS,
    LIST_FOLLOWING,
    LIST_PENDING_REQUESTS,
    SessionStore,
)
from follower_insights.utils.config import Config

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return uuid.uuid4().hex


def process_archive(
    source: ArchiveSource,
    store: SessionStore,
    config: Optional[Config] = None,
    now: Optional[int] = None,
    session_id: Optional[str] = None,
) -> SessionSummary:
    """Process an uploaded export archive.

    The session row and every derived artifact are written in one
    transaction, so a failed upload leaves nothing behind.

    Args:
        source: Archive bytes, path or binary file object
        store: Session store to persist into
        config: Root configuration
        now: Processing time in epoch seconds (default: current time)
        session_id: Identifier for the new session (default: random uuid4 hex)

    Returns:
        SessionSummary of the persisted session

    Raises:
        ArchiveReadError: If the archive cannot be opened
        EmptyDatasetError: If no followers, following or pending records exist
        PersistenceError: If the session could not be written
    """
    config = config or Config()
    now = int(time.time()) if now is None else now
    session_id = session_id or new_session_id()

    logger.info(f"Processing upload for session {session_id}")

    scan = scan_archive(source, config.ingest)
    export = normalize_fragments(scan.fragments, config)
    diagnostics = scan.diagnostics.merge(export.diagnostics)

    if export.is_empty:
        logger.error(f"No follower data found in archive ({len(scan.fragments)} fragments)")
        raise EmptyDatasetError(
            "No followers, following or pending request records were found in the archive"
        )

    sets = RelationshipAnalyzer().analyze(export.followers, export.following)
    events = TimelineBuilder().build(export.followers, export.following, now=now)
    detector = UnfollowDetector(store)
    unfollowed = detector.collect(session_id, export.following, export.unfollowed, now=now)

    detected = sum(1 for r in unfollowed if r.source == UnfollowSource.DETECTED)
    summary = SessionSummary(
        session_id=session_id,
        previous_session_id=detector.previous_session_id,
        followers_count=len(export.followers),
        following_count=len(export.following),
        mutual_count=len(sets.mutual),
        followers_only_count=len(sets.followers_only),
        following_only_count=len(sets.following_only),
        pending_requests_count=len(export.pending_requests),
        total_events=len(events),
        total_unfollows=len(unfollowed),
        detected_unfollows=detected,
        imported_unfollows=len(unfollowed) - detected,
        diagnostics=diagnostics,
    )

    with store.transaction():
        store.create_session(summary)
        store.save_relationship_sets(session_id, sets)
        store.save_contacts(session_id, LIST_FOLLOWERS, export.followers)
        store.save_contacts(session_id, LIST_FOLLOWING, export.following)
        store.save_contacts(session_id, LIST_PENDING_REQUESTS, export.pending_requests)
        store.save_timeline(session_id, events)
        store.save_unfollowed(session_id, unfollowed)

    logger.info(
        f"Session {session_id} saved: {summary.followers_count} followers, "
        f"{summary.following_count} following, {summary.total_events} events, "
        f"{summary.total_unfollows} unfollows"
    )
    return summary
