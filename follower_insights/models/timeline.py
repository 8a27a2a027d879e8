"""
Timeline Builder

Builds the chronological follow event stream with running counts and
computes windowed growth statistics.
"""

import logging
import time
from typing import Literal, Optional

import pandas as pd
from pydantic import BaseModel

from follower_insights.models.entities import Contact, Direction, FollowEvent, GrowthStats

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60

# Rolling windows used for growth statistics, in days
GROWTH_WINDOWS = {
    "daily_growth": 1,
    "weekly_growth": 7,
    "monthly_growth": 30,
}

# Timeframes accepted when filtering a timeline, as calendar offsets (None = everything)
TIMEFRAMES: dict[str, Optional[pd.DateOffset]] = {
    "all": None,
    "week": pd.DateOffset(days=7),
    "month": pd.DateOffset(months=1),
    "year": pd.DateOffset(years=1),
}

PERIOD_CODES = {
    "day": "D",
    "week": "W",
    "month": "M",
}


class PeriodSummary(BaseModel):
    """Follow events aggregated over one calendar period (UTC)."""
    period: str
    followers: int = 0
    following: int = 0
    net_growth: int = 0


class RapidChange(BaseModel):
    """A day whose net growth exceeds the configured threshold."""
    date: str
    type: Literal["rapid_growth", "rapid_decline"]
    change: int


def _now() -> int:
    return int(time.time())


class TimelineBuilder:
    """Merges followers and following into one ordered event stream."""

    def build(
        self,
        followers: list[Contact],
        following: list[Contact],
        now: Optional[int] = None,
    ) -> list[FollowEvent]:
        """Build the timeline.

        Contacts without a timestamp are placed at ``now``. At most one event
        survives per (handle, direction): the earliest, ties going to the
        first encountered. Events are sorted by timestamp, ties keeping
        encounter order (followers before following).

        Args:
            followers: Deduplicated followers
            following: Deduplicated following
            now: Processing time in epoch seconds (default: current time)

        Returns:
            Events with followers/following counts after each event
        """
        now = _now() if now is None else now

        candidates: dict[tuple[str, Direction], tuple[int, int]] = {}
        order = 0
        for direction, contacts in (
            (Direction.FOLLOWER, followers),
            (Direction.FOLLOWING, following),
        ):
            for contact in contacts:
                timestamp = contact.observed_at if contact.observed_at is not None else now
                key = (contact.handle, direction)
                existing = candidates.get(key)
                if existing is None or timestamp < existing[0]:
                    candidates[key] = (timestamp, order)
                order += 1

        ordered = sorted(candidates.items(), key=lambda item: item[1])

        events = []
        followers_count = 0
        following_count = 0
        for (handle, direction), (timestamp, _) in ordered:
            if direction == Direction.FOLLOWER:
                followers_count += 1
            else:
                following_count += 1
            events.append(FollowEvent(
                timestamp=timestamp,
                handle=handle,
                direction=direction,
                followers_count_after=followers_count,
                following_count_after=following_count,
            ))

        logger.info(f"Created {len(events)} timeline events")
        return events


def _growth_contribution(event: FollowEvent) -> int:
    # Following events count against growth
    return 1 if event.direction == Direction.FOLLOWER else -1


def _growth_since(events: list[FollowEvent], start: Optional[int]) -> int:
    return sum(
        _growth_contribution(e) for e in events
        if start is None or e.timestamp >= start
    )


def calculate_growth_stats(
    events: list[FollowEvent],
    now: Optional[int] = None,
) -> GrowthStats:
    """Net growth over the last day, week, month and all time.

    Each follower event counts +1 and each following event -1.
    """
    if not events:
        return GrowthStats()

    now = _now() if now is None else now
    windows = {
        name: _growth_since(events, now - days * DAY_SECONDS)
        for name, days in GROWTH_WINDOWS.items()
    }

    return GrowthStats(
        **windows,
        all_time_growth=_growth_since(events, None),
        total_followers=events[-1].followers_count_after,
        total_following=events[-1].following_count_after,
    )


def filter_timeline(
    events: list[FollowEvent],
    timeframe: str = "all",
    now: Optional[int] = None,
) -> list[FollowEvent]:
    """Keep events inside the timeframe (all, week, month or year).

    Month and year step back by calendar units in UTC, so a month before
    March 31 is February 29 in a leap year.

    Raises:
        ValueError: If the timeframe is unknown
    """
    if timeframe not in TIMEFRAMES:
        raise ValueError(
            f"Invalid timeframe. Must be one of: {', '.join(TIMEFRAMES)}"
        )

    offset = TIMEFRAMES[timeframe]
    if offset is None:
        return list(events)

    now = _now() if now is None else now
    cutoff = int((pd.Timestamp(now, unit="s", tz="UTC") - offset).timestamp())
    return [e for e in events if e.timestamp >= cutoff]


def summarize_periods(
    events: list[FollowEvent],
    period: str = "day",
) -> list[PeriodSummary]:
    """Aggregate events per calendar day, week or month (UTC).

    Raises:
        ValueError: If the period is unknown
    """
    if period not in PERIOD_CODES:
        raise ValueError(f"Invalid period. Must be one of: {', '.join(PERIOD_CODES)}")

    if not events:
        return []

    df = pd.DataFrame(
        {
            "timestamp": [e.timestamp for e in events],
            "direction": [e.direction.value for e in events],
        }
    )
    df["period"] = pd.to_datetime(df["timestamp"], unit="s").dt.to_period(PERIOD_CODES[period])
    df["followers"] = (df["direction"] == Direction.FOLLOWER.value).astype(int)
    df["following"] = (df["direction"] == Direction.FOLLOWING.value).astype(int)

    grouped = df.groupby("period", sort=True)[["followers", "following"]].sum()

    return [
        PeriodSummary(
            period=str(label),
            followers=int(row["followers"]),
            following=int(row["following"]),
            net_growth=int(row["followers"] - row["following"]),
        )
        for label, row in grouped.iterrows()
    ]


def detect_rapid_changes(
    events: list[FollowEvent],
    threshold: int = 10,
) -> list[RapidChange]:
    """Days whose absolute net growth exceeds the threshold."""
    changes = []
    for summary in summarize_periods(events, "day"):
        if abs(summary.net_growth) > threshold:
            changes.append(RapidChange(
                date=summary.period,
                type="rapid_growth" if summary.net_growth > 0 else "rapid_decline",
                change=summary.net_growth,
            ))
    return changes
