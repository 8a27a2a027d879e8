"""
Output Generation

Generates CSV, Markdown, and JSON reports from processed sessions.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from follower_insights.errors import SessionNotFoundError
from follower_insights.models.entities import (
    RELATIONSHIP_CATEGORIES,
    Category,
    Contact,
    FollowEvent,
    GrowthStats,
    RelationshipSets,
    SessionSummary,
    UnfollowedProfile,
)
from follower_insights.models.timeline import (
    calculate_growth_stats,
    detect_rapid_changes,
    summarize_periods,
)
from follower_insights.storage.base import SessionStore

logger = logging.getLogger(__name__)

CSV_HEADER = "Username,Category,Profile URL"


def contacts_to_csv(rows: list[tuple[Category, Contact]]) -> str:
    """Render categorized contacts in the export CSV format.

    Every field is double-quoted; a missing profile URL is an empty string.
    """
    lines = [CSV_HEADER]
    lines.extend(
        f'"{contact.handle}","{category.label}","{contact.profile_url or ""}"'
        for category, contact in rows
    )
    return "\n".join(lines)


def relationship_rows(
    sets: RelationshipSets,
    category: Optional[Union[str, Category]] = None,
) -> list[tuple[Category, Contact]]:
    """Rows for one relationship category, or all three in export order.

    Within a category rows are ordered by handle.
    """
    categories = RELATIONSHIP_CATEGORIES if category is None else (Category(category),)
    rows = []
    for cat in categories:
        if not cat.is_relationship:
            raise ValueError(f"Not a relationship category: {cat.value}")
        rows.extend((cat, c) for c in sorted(sets.for_category(cat), key=lambda c: c.handle))
    return rows


def load_relationship_sets(store: SessionStore, session_id: str) -> RelationshipSets:
    """Read a session's relationship partition back from the store.

    Raises:
        SessionNotFoundError: If the session does not exist
    """
    if store.get_session(session_id) is None:
        raise SessionNotFoundError(f"Analysis session not found: {session_id}")
    return RelationshipSets(**{
        cat.value: store.get_contacts(session_id, cat.value)
        for cat in RELATIONSHIP_CATEGORIES
    })


def export_csv(
    store: SessionStore,
    session_id: str,
    category: Optional[Union[str, Category]] = None,
) -> str:
    """CSV export of a persisted session."""
    return contacts_to_csv(relationship_rows(load_relationship_sets(store, session_id), category))


def export_filename(session_id: str, category: Optional[Union[str, Category]] = None) -> str:
    """Download filename for a CSV export."""
    if category is None:
        return f"instagram_analysis_{session_id[:8]}.csv"
    return f"instagram_{Category(category).value}_{session_id[:8]}.csv"


class OutputGenerator:
    """Generates various output formats from session data."""

    def __init__(
        self,
        output_dir: str | Path = "./outputs",
        formats: Optional[list[str]] = None,
        timestamp_filenames: bool = True,
        max_items_per_section: int = 20,
    ):
        """Initialize output generator.

        Args:
            output_dir: Directory for output files
            formats: List of formats to generate (csv, markdown, json)
            timestamp_filenames: Whether to include timestamp in filenames
            max_items_per_section: Maximum items per report section
        """
        self.output_dir = Path(output_dir)
        self.formats = formats or ["csv", "markdown", "json"]
        self.timestamp_filenames = timestamp_filenames
        self.max_items_per_section = max_items_per_section

        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _get_filename(self, base_name: str, extension: str) -> Path:
        """Generate output filename."""
        if self.timestamp_filenames:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"{base_name}_{timestamp}.{extension}"
        else:
            filename = f"{base_name}.{extension}"
        return self.output_dir / filename

    @staticmethod
    def _format_time(timestamp: int) -> str:
        return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M")

    def _timeline_to_csv(self, events: list[FollowEvent]) -> str:
        lines = ["timestamp,handle,direction,followers_count,following_count"]
        for e in events:
            lines.append(
                f"{e.timestamp},"
                f'"{e.handle}",'
                f"{e.direction.value},"
                f"{e.followers_count_after},"
                f"{e.following_count_after}"
            )
        return "\n".join(lines)

    def _generate_relationships_md(
        self,
        summary: SessionSummary,
        sets: RelationshipSets,
        unfollowed: list[UnfollowedProfile],
    ) -> str:
        """Generate relationship overview markdown report."""
        lines = [
            "# Follower Analysis\n",
            f"*Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}*\n",
            f"*Session: {summary.session_id}*\n",
            "\n## Summary\n",
            "| Metric | Count |",
            "|--------|-------|",
            f"| Followers | {summary.followers_count} |",
            f"| Following | {summary.following_count} |",
            f"| Mutual | {summary.mutual_count} |",
            f"| Followers only | {summary.followers_only_count} |",
            f"| Following only | {summary.following_only_count} |",
            f"| Pending requests | {summary.pending_requests_count} |",
            f"| Unfollows (detected) | {summary.detected_unfollows} |",
            f"| Unfollows (imported) | {summary.imported_unfollows} |",
        ]

        following_only = sorted(sets.following_only, key=lambda c: c.handle)
        if following_only:
            lines.extend([
                "\n## Not Following You Back\n",
                "| Handle | Profile |",
                "|--------|---------|",
            ])
            for c in following_only[:self.max_items_per_section]:
                lines.append(f"| {c.handle} | {c.profile_url or ''} |")
            if len(following_only) > self.max_items_per_section:
                lines.append(f"\n*...and {len(following_only) - self.max_items_per_section} more*")

        if unfollowed:
            recent = sorted(unfollowed, key=lambda r: r.unfollowed_at, reverse=True)
            lines.extend([
                "\n## Recently Unfollowed\n",
                "| Handle | When | Source |",
                "|--------|------|--------|",
            ])
            for r in recent[:self.max_items_per_section]:
                lines.append(f"| {r.handle} | {self._format_time(r.unfollowed_at)} | {r.source.value} |")

        return "\n".join(lines)

    def _generate_timeline_md(
        self,
        stats: GrowthStats,
        events: list[FollowEvent],
        rapid_change_threshold: int,
    ) -> str:
        """Generate growth markdown report."""
        lines = [
            "# Growth Report\n",
            f"*Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}*\n",
            f"*Total events: {len(events)}*\n",
            "\n## Net Growth\n",
            "| Window | Net |",
            "|--------|-----|",
            f"| Last day | {stats.daily_growth:+d} |",
            f"| Last 7 days | {stats.weekly_growth:+d} |",
            f"| Last 30 days | {stats.monthly_growth:+d} |",
            f"| All time | {stats.all_time_growth:+d} |",
        ]

        monthly = summarize_periods(events, "month")
        if monthly:
            lines.extend([
                "\n## By Month\n",
                "| Month | Followers | Following | Net |",
                "|-------|-----------|-----------|-----|",
            ])
            for m in monthly[-self.max_items_per_section:]:
                lines.append(f"| {m.period} | {m.followers} | {m.following} | {m.net_growth:+d} |")

        changes = detect_rapid_changes(events, rapid_change_threshold)
        if changes:
            lines.extend([
                "\n## Rapid Changes\n",
                "| Date | Type | Change |",
                "|------|------|--------|",
            ])
            for c in changes[:self.max_items_per_section]:
                lines.append(f"| {c.date} | {c.type} | {c.change:+d} |")

        return "\n".join(lines)

    def generate_relationships(
        self,
        summary: SessionSummary,
        sets: RelationshipSets,
        unfollowed: Optional[list[UnfollowedProfile]] = None,
    ) -> dict[str, Path]:
        """Generate relationship reports.

        Returns:
            Dictionary of format -> filepath
        """
        generated = {}
        unfollowed = unfollowed or []
        base_name = f"instagram_analysis_{summary.session_id[:8]}"

        if "csv" in self.formats:
            filepath = self._get_filename(base_name, "csv")
            filepath.write_text(contacts_to_csv(relationship_rows(sets)))
            generated["csv"] = filepath

        if "markdown" in self.formats:
            filepath = self._get_filename(base_name, "md")
            filepath.write_text(self._generate_relationships_md(summary, sets, unfollowed))
            generated["markdown"] = filepath

        if "json" in self.formats:
            json_data = {
                "summary": summary.model_dump(mode="json"),
                "relationships": sets.model_dump(mode="json"),
                "unfollowed": [r.model_dump(mode="json") for r in unfollowed],
            }
            filepath = self._get_filename(base_name, "json")
            filepath.write_text(json.dumps(json_data, indent=2, default=str))
            generated["json"] = filepath

        logger.info(f"Generated relationship reports: {list(generated.keys())}")
        return generated

    def generate_timeline(
        self,
        summary: SessionSummary,
        events: list[FollowEvent],
        now: Optional[int] = None,
        rapid_change_threshold: int = 10,
    ) -> dict[str, Path]:
        """Generate timeline and growth reports."""
        generated = {}
        stats = calculate_growth_stats(events, now)
        base_name = f"instagram_timeline_{summary.session_id[:8]}"

        if "csv" in self.formats:
            filepath = self._get_filename(base_name, "csv")
            filepath.write_text(self._timeline_to_csv(events))
            generated["csv"] = filepath

        if "markdown" in self.formats:
            filepath = self._get_filename(base_name, "md")
            filepath.write_text(self._generate_timeline_md(stats, events, rapid_change_threshold))
            generated["markdown"] = filepath

        if "json" in self.formats:
            json_data = {
                "statistics": stats.model_dump(),
                "daily": [p.model_dump() for p in summarize_periods(events, "day")],
                "rapid_changes": [
                    c.model_dump() for c in detect_rapid_changes(events, rapid_change_threshold)
                ],
                "events": [e.model_dump(mode="json") for e in events],
            }
            filepath = self._get_filename(base_name, "json")
            filepath.write_text(json.dumps(json_data, indent=2))
            generated["json"] = filepath

        logger.info(f"Generated timeline reports: {list(generated.keys())}")
        return generated


def generate_outputs(
    store: SessionStore,
    session_id: str,
    output_dir: str | Path = "./outputs",
    formats: Optional[list[str]] = None,
    timestamp_filenames: bool = True,
    rapid_change_threshold: int = 10,
    now: Optional[int] = None,
) -> dict[str, dict[str, Path]]:
    """Convenience function to generate all outputs for a persisted session.

    Returns:
        Dictionary of report_type -> format -> filepath

    Raises:
        SessionNotFoundError: If the session does not exist
    """
    summary = store.get_session(session_id)
    if summary is None:
        raise SessionNotFoundError(f"Analysis session not found: {session_id}")

    generator = OutputGenerator(
        output_dir=output_dir,
        formats=formats or ["csv", "markdown", "json"],
        timestamp_filenames=timestamp_filenames,
    )

    return {
        "relationships": generator.generate_relationships(
            summary,
            load_relationship_sets(store, session_id),
            store.get_unfollowed(session_id),
        ),
        "timeline": generator.generate_timeline(
            summary,
            store.get_timeline(session_id),
            now=now,
            rapid_change_threshold=rapid_change_threshold,
        ),
    }
