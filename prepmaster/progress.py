"""
Progress Aggregator.

Derives overall statistics (totals, averages, streak, improvement) from a
user's completed sessions and maintains per-skill trend records.

Rounding follows the half-up convention everywhere (x.5 rounds toward
positive infinity), not Python's banker's rounding.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from .models import (
    OverallStats,
    Session,
    SessionStatus,
    SkillProgressRecord,
    utc_now,
)
from .store import SessionStore


__all__ = [
    "ProgressAggregator",
    "round_half_up",
    "calculate_streak_days",
    "calculate_improvement_rate",
    "STREAK_WINDOW_DAYS",
    "IMPROVEMENT_WINDOW",
]


logger = logging.getLogger(__name__)

STREAK_WINDOW_DAYS = 30
IMPROVEMENT_WINDOW = 5
DEFAULT_TARGET_SCORE = 85


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _completed_date(session: Session) -> Optional[date]:
    if session.completed_at is None:
        return None
    completed_at = session.completed_at
    if completed_at.tzinfo is not None:
        completed_at = completed_at.astimezone(timezone.utc)
    return completed_at.date()


def calculate_streak_days(sessions: list[Session], today: date) -> int:
    """
    Count consecutive days with a completed session, walking back from today.

    Looks at most STREAK_WINDOW_DAYS days back. Days without a session before
    the first match are skipped; the first empty day after a match ends the
    walk. So a user who practised yesterday but not yet today still has a
    streak.
    """
    if not sessions:
        return 0

    completed_days = {d for d in (_completed_date(s) for s in sessions) if d is not None}
    streak = 0
    current = today
    for _ in range(STREAK_WINDOW_DAYS):
        if current in completed_days:
            streak += 1
        elif streak > 0:
            break
        current -= timedelta(days=1)
    return streak


def calculate_improvement_rate(sessions: list[Session]) -> int:
    """
    Percent change of the recent average over the oldest average.

    `sessions` must be ordered most-recent-first. The recent window is the
    first IMPROVEMENT_WINDOW sessions and the older window the last
    IMPROVEMENT_WINDOW; with fewer than ten sessions the windows overlap.
    """
    if len(sessions) < 2:
        return 0

    recent = sessions[:IMPROVEMENT_WINDOW]
    older = sessions[-IMPROVEMENT_WINDOW:]
    recent_avg = sum(s.overall_score or 0 for s in recent) / len(recent)
    older_avg = sum(s.overall_score or 0 for s in older) / len(older)

    if older_avg <= 0:
        return 0
    return round_half_up((recent_avg - older_avg) / older_avg * 100)


class ProgressAggregator:
    """
    Aggregates session history into progress statistics.

    Example:
        >>> aggregator = ProgressAggregator(store)
        >>> stats = aggregator.compute_overall_stats(sessions)
        >>> await aggregator.update_skill_progress("user-1", "behavioral", 82)
    """

    def __init__(
        self,
        store: SessionStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._clock = clock

    def compute_overall_stats(
        self,
        sessions: Iterable[Session],
        today: Optional[date] = None,
    ) -> OverallStats:
        """
        Overall statistics over the completed sessions in `sessions`.

        Sessions that are not completed are ignored. An empty history yields
        all-zero stats.
        """
        completed = [s for s in sessions if s.status == SessionStatus.COMPLETED]
        if not completed:
            return OverallStats()

        # Most recent first; sessions without completed_at sort last
        completed.sort(
            key=lambda s: (s.completed_at is not None, s.completed_at or s.created_at),
            reverse=True,
        )

        total_score = sum(s.overall_score or 0 for s in completed)
        total_minutes = sum(s.duration or 0 for s in completed)
        return OverallStats(
            total_sessions=len(completed),
            average_score=round_half_up(total_score / len(completed)),
            hours_spent=round_half_up(total_minutes / 60),
            streak_days=calculate_streak_days(completed, today or self._clock().date()),
            improvement_rate=calculate_improvement_rate(completed),
        )

    async def overall_stats_for(self, user_id: str, today: Optional[date] = None) -> OverallStats:
        sessions = await self._store.list_sessions(user_id, status=SessionStatus.COMPLETED)
        return self.compute_overall_stats(sessions, today=today)

    async def list_skill_progress(self, user_id: str) -> list[SkillProgressRecord]:
        return await self._store.list_skill_progress(user_id)

    async def update_skill_progress(
        self,
        user_id: str,
        skill_area: str,
        new_score: int,
    ) -> SkillProgressRecord:
        """
        Record a new score for a skill area.

        Creates the record (target 85, one session) on first use. Otherwise
        replaces current_score, increments sessions_completed and sets
        improvement_rate to the percent gain over the previous score (0 when
        the score did not improve or there is no non-zero baseline).
        """
        now = self._clock()
        existing = await self._store.get_skill_progress(user_id, skill_area)

        if existing is None:
            record = await self._store.insert_skill_progress(
                {
                    "user_id": user_id,
                    "skill_area": skill_area,
                    "current_score": new_score,
                    "target_score": DEFAULT_TARGET_SCORE,
                    "sessions_completed": 1,
                    "last_practice": now,
                }
            )
            logger.info("Started tracking skill '%s' for user %s", skill_area, user_id)
            return record

        previous = existing.current_score
        if new_score > previous and previous > 0:
            improvement_rate = (new_score - previous) / previous * 100
        else:
            improvement_rate = 0.0

        record = await self._store.update_skill_progress(
            user_id,
            skill_area,
            {
                "current_score": new_score,
                "sessions_completed": existing.sessions_completed + 1,
                "improvement_rate": improvement_rate,
                "last_practice": now,
            },
        )
        logger.debug(
            "Skill '%s' for user %s: %d -> %d (%.1f%%)",
            skill_area,
            user_id,
            previous,
            new_score,
            improvement_rate,
        )
        return record

    async def add_achievement(
        self,
        user_id: str,
        skill_area: str,
        label: str,
    ) -> Optional[SkillProgressRecord]:
        """
        Append an achievement label to a skill record.

        Returns None when the skill area is not tracked yet. A label that is
        already present is not appended again.
        """
        existing = await self._store.get_skill_progress(user_id, skill_area)
        if existing is None:
            logger.debug("No skill '%s' for user %s; achievement ignored", skill_area, user_id)
            return None

        if label in existing.achievements:
            return existing

        return await self._store.update_skill_progress(
            user_id,
            skill_area,
            {"achievements": [*existing.achievements, label]},
        )
