"""
Tests for Timeline Builder and Growth Statistics
"""

import pytest

from conftest import DAY, NOW
from follower_insights.models.entities import Contact, Direction, FollowEvent, GrowthStats
from follower_insights.models.timeline import (
    TimelineBuilder,
    calculate_growth_stats,
    detect_rapid_changes,
    filter_timeline,
    summarize_periods,
)


def _event(timestamp: int, direction: Direction, handle: str = "x") -> FollowEvent:
    return FollowEvent(
        timestamp=timestamp,
        handle=handle,
        direction=direction,
        followers_count_after=0,
        following_count_after=0,
    )


class TestTimelineBuilder:
    """Tests for TimelineBuilder class."""

    @pytest.fixture
    def builder(self):
        """Create a builder."""
        return TimelineBuilder()

    def test_basic_timeline(self, builder, contacts):
        """Test four events with running counts for the two-list example."""
        events = builder.build(
            [contacts["alice"], contacts["bob"]],
            [contacts["bob"], contacts["carol"]],
            now=NOW,
        )

        assert [(e.timestamp, e.handle, e.direction) for e in events] == [
            (10, "alice", Direction.FOLLOWER),
            (20, "bob", Direction.FOLLOWER),
            (20, "bob", Direction.FOLLOWING),
            (30, "carol", Direction.FOLLOWING),
        ]
        assert [(e.followers_count_after, e.following_count_after) for e in events] == [
            (1, 0), (2, 0), (2, 1), (2, 2),
        ]

    def test_counts_monotonic(self, builder):
        """Test exactly one counter increases per event, matching its direction."""
        followers = [Contact(handle=f"f{i}", observed_at=100 - i) for i in range(10)]
        following = [Contact(handle=f"g{i}", observed_at=50 + i) for i in range(10)]
        events = builder.build(followers, following, now=NOW)

        previous = (0, 0)
        for event in events:
            followers_delta = event.followers_count_after - previous[0]
            following_delta = event.following_count_after - previous[1]
            if event.direction == Direction.FOLLOWER:
                assert (followers_delta, following_delta) == (1, 0)
            else:
                assert (followers_delta, following_delta) == (0, 1)
            previous = (event.followers_count_after, event.following_count_after)

    def test_sorted_by_timestamp(self, builder):
        """Test events are ascending regardless of input order."""
        followers = [Contact(handle="late", observed_at=300), Contact(handle="early", observed_at=100)]
        events = builder.build(followers, [], now=NOW)
        assert [e.handle for e in events] == ["early", "late"]

    def test_missing_timestamp_uses_now(self, builder, contacts):
        """Test contacts without a timestamp are placed at processing time."""
        events = builder.build([contacts["dave"]], [], now=NOW)
        assert events[0].timestamp == NOW

    def test_one_event_per_handle_and_direction(self, builder):
        """Test duplicates keep the earliest timestamp."""
        followers = [Contact(handle="x", observed_at=100), Contact(handle="x", observed_at=50)]
        events = builder.build(followers, [], now=NOW)

        assert len(events) == 1
        assert events[0].timestamp == 50

    def test_tie_keeps_encounter_order(self, builder):
        """Test equal timestamps keep followers before following."""
        events = builder.build(
            [Contact(handle="a", observed_at=5)],
            [Contact(handle="b", observed_at=5)],
            now=NOW,
        )
        assert [e.direction for e in events] == [Direction.FOLLOWER, Direction.FOLLOWING]

    def test_empty(self, builder):
        """Test empty inputs give an empty timeline."""
        assert builder.build([], [], now=NOW) == []


class TestGrowthStats:
    """Tests for windowed growth statistics."""

    def test_windows(self):
        """Test each window counts followers +1 and following -1."""
        events = [
            _event(NOW - 40 * DAY, Direction.FOLLOWER),
            _event(NOW - 10 * DAY, Direction.FOLLOWER),
            _event(NOW - 3 * DAY, Direction.FOLLOWING),
            _event(NOW - 3600, Direction.FOLLOWER),
            _event(NOW - 60, Direction.FOLLOWER),
        ]
        stats = calculate_growth_stats(events, now=NOW)

        assert stats.daily_growth == 2
        assert stats.weekly_growth == 1
        assert stats.monthly_growth == 2
        assert stats.all_time_growth == 3

    def test_window_boundary_inclusive(self):
        """Test an event exactly one day old is inside the daily window."""
        stats = calculate_growth_stats([_event(NOW - DAY, Direction.FOLLOWER)], now=NOW)
        assert stats.daily_growth == 1

    def test_totals_from_last_event(self, contacts):
        """Test totals come from the final event's counters."""
        events = TimelineBuilder().build(
            [contacts["alice"], contacts["bob"]],
            [contacts["bob"], contacts["carol"]],
            now=NOW,
        )
        stats = calculate_growth_stats(events, now=NOW)
        assert stats.total_followers == 2
        assert stats.total_following == 2
        assert stats.all_time_growth == 0

    def test_empty(self):
        """Test no events gives all zeros."""
        assert calculate_growth_stats([], now=NOW) == GrowthStats()


class TestFilterTimeline:
    """Tests for timeframe filtering."""

    @pytest.fixture
    def events(self):
        """Events 1, 10, 100 and 400 days old."""
        return [
            _event(NOW - days * DAY, Direction.FOLLOWER, handle=str(days))
            for days in (400, 100, 10, 1)
        ]

    @pytest.mark.parametrize("timeframe,expected", [
        ("all", ["400", "100", "10", "1"]),
        ("year", ["100", "10", "1"]),
        ("month", ["10", "1"]),
        ("week", ["1"]),
    ])
    def test_timeframes(self, events, timeframe, expected):
        """Test each timeframe keeps only recent events."""
        assert [e.handle for e in filter_timeline(events, timeframe, now=NOW)] == expected

    def test_calendar_month_and_year(self):
        """Test month and year step back by calendar units, not fixed day counts."""
        march_31 = 1711843200  # 2024-03-31T00:00:00Z
        events = [
            _event(march_31 - days * DAY, Direction.FOLLOWER, handle=str(days))
            for days in (367, 366, 32, 31)
        ]

        assert [e.handle for e in filter_timeline(events, "month", now=march_31)] == ["31"]
        assert [e.handle for e in filter_timeline(events, "year", now=march_31)] == ["366", "32", "31"]

    def test_unknown_timeframe(self, events):
        """Test an unknown timeframe raises ValueError."""
        with pytest.raises(ValueError):
            filter_timeline(events, "decade", now=NOW)


class TestPeriodSummaries:
    """Tests for pandas-based period bucketing."""

    def test_daily(self):
        """Test events are grouped per UTC day."""
        events = [
            _event(NOW, Direction.FOLLOWER),
            _event(NOW + 60, Direction.FOLLOWING),
            _event(NOW + 60, Direction.FOLLOWER),
            _event(NOW + DAY, Direction.FOLLOWER),
        ]
        summaries = summarize_periods(events, "day")

        assert [s.period for s in summaries] == ["2024-01-15", "2024-01-16"]
        assert (summaries[0].followers, summaries[0].following, summaries[0].net_growth) == (2, 1, 1)
        assert summaries[1].net_growth == 1

    def test_monthly(self):
        """Test events are grouped per month."""
        events = [_event(NOW, Direction.FOLLOWER), _event(NOW + 20 * DAY, Direction.FOLLOWER)]
        summaries = summarize_periods(events, "month")
        assert [(s.period, s.followers) for s in summaries] == [("2024-01", 1), ("2024-02", 1)]

    def test_empty(self):
        """Test no events gives no periods."""
        assert summarize_periods([], "week") == []

    def test_unknown_period(self):
        """Test an unknown period raises ValueError."""
        with pytest.raises(ValueError):
            summarize_periods([], "hour")


class TestRapidChanges:
    """Tests for rapid change detection."""

    def test_growth_and_decline(self):
        """Test days beyond the threshold are flagged in both directions."""
        events = [_event(NOW + i, Direction.FOLLOWER, f"f{i}") for i in range(11)]
        events += [_event(NOW + DAY + i, Direction.FOLLOWING, f"g{i}") for i in range(12)]
        events += [_event(NOW + 2 * DAY + i, Direction.FOLLOWER, f"h{i}") for i in range(10)]

        changes = detect_rapid_changes(events, threshold=10)

        assert [(c.date, c.type, c.change) for c in changes] == [
            ("2024-01-15", "rapid_growth", 11),
            ("2024-01-16", "rapid_decline", -12),
        ]

    def test_no_changes(self):
        """Test quiet timelines produce nothing."""
        assert detect_rapid_changes([_event(NOW, Direction.FOLLOWER)]) == []
