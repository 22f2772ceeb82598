"""
Tests for ProgressAggregator and the statistics helpers.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from prepmaster.models import OverallStats, SessionStatus
from prepmaster.progress import (
    ProgressAggregator,
    calculate_improvement_rate,
    calculate_streak_days,
    round_half_up,
)
from prepmaster.store import InMemoryStore
from tests.mock_data import (
    generate_completed_session,
    generate_session_history,
    utc,
)


NOW = utc(2026, 10, 19, hour=15)
TODAY = NOW.date()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def aggregator(store: InMemoryStore) -> ProgressAggregator:
    return ProgressAggregator(store, clock=lambda: NOW)


# =============================================================================
# Rounding / Helper Tests
# =============================================================================


class TestHelpers:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(82.5, 83), (82.4, 82), (0.5, 1), (2.5, 3), (-0.5, 0), (100.0, 100)],
    )
    def test_round_half_up(self, value: float, expected: int) -> None:
        assert round_half_up(value) == expected

    def test_streak_counts_consecutive_days(self) -> None:
        sessions = generate_session_history([70, 80, 90], NOW)

        assert calculate_streak_days(sessions, TODAY) == 3

    def test_streak_survives_missing_today(self) -> None:
        """Practising yesterday and the day before still counts as a streak."""
        sessions = generate_session_history([70, 80], NOW - timedelta(days=1))

        assert calculate_streak_days(sessions, TODAY) == 2

    def test_streak_stops_at_gap(self) -> None:
        sessions = [
            generate_completed_session(80, NOW),
            generate_completed_session(80, NOW - timedelta(days=1)),
            generate_completed_session(80, NOW - timedelta(days=3)),
        ]

        assert calculate_streak_days(sessions, TODAY) == 2

    def test_streak_ignores_sessions_outside_window(self) -> None:
        sessions = [generate_completed_session(80, NOW - timedelta(days=40))]

        assert calculate_streak_days(sessions, TODAY) == 0
        assert calculate_streak_days([], TODAY) == 0

    def test_several_sessions_same_day_count_once(self) -> None:
        sessions = [
            generate_completed_session(70, NOW),
            generate_completed_session(90, NOW - timedelta(hours=2)),
        ]

        assert calculate_streak_days(sessions, TODAY) == 1

    def test_improvement_needs_two_sessions(self) -> None:
        assert calculate_improvement_rate([]) == 0
        assert calculate_improvement_rate([generate_completed_session(90, NOW)]) == 0

    def test_improvement_zero_baseline(self) -> None:
        sessions = generate_session_history([0] * 5 + [80] * 5, NOW)
        sessions.reverse()

        assert calculate_improvement_rate(sessions) == 0


# =============================================================================
# Overall Stats Tests
# =============================================================================


class TestOverallStats:
    """Tests for ProgressAggregator.compute_overall_stats."""

    def test_empty_history_is_all_zero(self, aggregator: ProgressAggregator) -> None:
        assert aggregator.compute_overall_stats([]) == OverallStats()

    def test_only_completed_sessions_count(self, aggregator: ProgressAggregator) -> None:
        completed = generate_completed_session(80, NOW)
        in_progress = completed.model_copy(
            update={"id": "other", "status": SessionStatus.IN_PROGRESS, "completed_at": None}
        )

        stats = aggregator.compute_overall_stats([completed, in_progress])

        assert stats.total_sessions == 1
        assert stats.average_score == 80

    def test_totals_and_rounding(self, aggregator: ProgressAggregator) -> None:
        """82.5 average and 1.5 hours both round up."""
        sessions = generate_session_history([82, 83], NOW)
        sessions.append(generate_completed_session(82, NOW - timedelta(days=10), duration=30))

        stats = aggregator.compute_overall_stats(sessions[:2])

        assert stats.total_sessions == 2
        assert stats.average_score == 83
        assert stats.hours_spent == 1
        assert stats.streak_days == 2

        three = aggregator.compute_overall_stats(sessions)
        assert three.hours_spent == 2

    def test_improvement_over_ten_sessions(self, aggregator: ProgressAggregator) -> None:
        """Recent five average 75 vs oldest five average 50: +50%."""
        sessions = generate_session_history([50] * 5 + [75] * 5, NOW)

        stats = aggregator.compute_overall_stats(sessions, today=TODAY)

        assert stats.improvement_rate == 50
        assert stats.streak_days == 10

    def test_improvement_with_overlapping_windows(self, aggregator: ProgressAggregator) -> None:
        """Six sessions: recent [70]*5 vs older [70,70,70,70,60] -> 2.94% -> 3."""
        sessions = generate_session_history([60, 70, 70, 70, 70, 70], NOW)

        assert aggregator.compute_overall_stats(sessions).improvement_rate == 3

    def test_declining_scores_are_negative(self, aggregator: ProgressAggregator) -> None:
        sessions = generate_session_history([80, 60], NOW)

        # recent and older windows both hold the two sessions
        assert aggregator.compute_overall_stats(sessions).improvement_rate == 0

        sessions = generate_session_history([80] * 5 + [60] * 5, NOW)
        assert aggregator.compute_overall_stats(sessions).improvement_rate == -25

    def test_uses_injected_clock_for_today(self, store: InMemoryStore) -> None:
        sessions = generate_session_history([70, 80], NOW)
        later = ProgressAggregator(store, clock=lambda: NOW + timedelta(days=40))

        assert later.compute_overall_stats(sessions).streak_days == 0
        assert later.compute_overall_stats(sessions, today=date(2026, 10, 19)).streak_days == 2

    @pytest.mark.asyncio
    async def test_overall_stats_for_user(
        self, store: InMemoryStore, aggregator: ProgressAggregator
    ) -> None:
        for score in (70, 90):
            session = await store.insert_session(
                {"user_id": "user-1", "type": "practice", "title": "Practice", "duration": 60}
            )
            await store.update_session(
                session.id,
                {"status": SessionStatus.COMPLETED, "completed_at": NOW, "overall_score": score},
            )
        await store.insert_session(
            {"user_id": "user-1", "type": "mock", "title": "Unfinished", "duration": 30}
        )

        stats = await aggregator.overall_stats_for("user-1")

        assert stats.total_sessions == 2
        assert stats.average_score == 80
        assert stats.hours_spent == 2
        assert stats.streak_days == 1
        assert await aggregator.overall_stats_for("user-2") == OverallStats()


# =============================================================================
# Skill Progress Tests
# =============================================================================


class TestSkillProgress:
    """Tests for per-skill trend records."""

    @pytest.mark.asyncio
    async def test_first_score_creates_record(self, aggregator: ProgressAggregator) -> None:
        record = await aggregator.update_skill_progress("user-1", "behavioral", 70)

        assert record.current_score == 70
        assert record.target_score == 85
        assert record.sessions_completed == 1
        assert record.improvement_rate == 0.0
        assert record.last_practice == NOW
        assert record.achievements == []

    @pytest.mark.asyncio
    async def test_improvement_rate_on_gain(self, aggregator: ProgressAggregator) -> None:
        await aggregator.update_skill_progress("user-1", "behavioral", 70)

        record = await aggregator.update_skill_progress("user-1", "behavioral", 84)

        assert record.current_score == 84
        assert record.sessions_completed == 2
        assert record.improvement_rate == pytest.approx(20.0)

    @pytest.mark.asyncio
    async def test_no_improvement_on_drop(self, aggregator: ProgressAggregator) -> None:
        await aggregator.update_skill_progress("user-1", "technical", 90)

        record = await aggregator.update_skill_progress("user-1", "technical", 60)

        assert record.current_score == 60
        assert record.sessions_completed == 2
        assert record.improvement_rate == 0.0

    @pytest.mark.asyncio
    async def test_zero_baseline_has_no_rate(self, aggregator: ProgressAggregator) -> None:
        await aggregator.update_skill_progress("user-1", "general", 0)

        record = await aggregator.update_skill_progress("user-1", "general", 50)

        assert record.improvement_rate == 0.0

    @pytest.mark.asyncio
    async def test_records_are_per_user(self, aggregator: ProgressAggregator) -> None:
        await aggregator.update_skill_progress("user-1", "behavioral", 70)
        await aggregator.update_skill_progress("user-2", "behavioral", 90)
        await aggregator.update_skill_progress("user-1", "closing", 65)

        records = await aggregator.list_skill_progress("user-1")

        assert [(r.skill_area, r.current_score) for r in records] == [
            ("behavioral", 70),
            ("closing", 65),
        ]

    @pytest.mark.asyncio
    async def test_add_achievement(self, aggregator: ProgressAggregator) -> None:
        await aggregator.update_skill_progress("user-1", "behavioral", 70)

        first = await aggregator.add_achievement("user-1", "behavioral", "First STAR answer")
        again = await aggregator.add_achievement("user-1", "behavioral", "First STAR answer")
        second = await aggregator.add_achievement("user-1", "behavioral", "Five sessions")

        assert first.achievements == ["First STAR answer"]
        assert again.achievements == ["First STAR answer"]
        assert second.achievements == ["First STAR answer", "Five sessions"]

    @pytest.mark.asyncio
    async def test_achievement_for_untracked_skill(self, aggregator: ProgressAggregator) -> None:
        assert await aggregator.add_achievement("user-1", "technical", "Anything") is None
