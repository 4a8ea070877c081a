from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable

from nora_today.core.clock import ReferenceClock
from nora_today.core.logging import DOMAIN_STREAK, get_domain_logger
from nora_today.schemas.today import StreakRecord

logger = get_domain_logger(__name__, DOMAIN_STREAK)


class StreakCalculator:
    """Streak and weekly mask over reference-timezone calendar days.

    A day counts toward the streak only when it has both a recording and a
    completed lesson. The week mask shows any day with a recording.
    """

    def __init__(self, clock: ReferenceClock):
        self.clock = clock

    def days_of(self, timestamps: Iterable[datetime | None]) -> set[date]:
        return {self.clock.day_of(ts) for ts in timestamps if ts is not None}

    def week_mask(self, recording_days: set[date], today: date) -> list[bool]:
        monday = self.clock.week_start(today)
        return [(monday + timedelta(days=offset)) in recording_days for offset in range(7)]

    @staticmethod
    def current_streak(complete_days: set[date], today: date) -> int:
        if not complete_days:
            return 0
        ordered = sorted(complete_days, reverse=True)
        most_recent = ordered[0]
        if most_recent not in (today, today - timedelta(days=1)):
            return 0
        streak = 1
        expected = most_recent - timedelta(days=1)
        for day in ordered[1:]:
            if day != expected:
                break
            streak += 1
            expected = day - timedelta(days=1)
        return streak

    @staticmethod
    def longest_streak(complete_days: set[date]) -> int:
        longest = 0
        run = 0
        previous: date | None = None
        for day in sorted(complete_days):
            run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
            longest = max(longest, run)
            previous = day
        return longest

    def compute(
        self,
        recording_times: Iterable[datetime | None],
        completion_times: Iterable[datetime | None],
        now: datetime | None = None,
    ) -> StreakRecord:
        today = self.clock.today(now)
        recording_days = self.days_of(recording_times)
        lesson_days = self.days_of(completion_times)
        complete_days = recording_days & lesson_days

        record = StreakRecord(
            current_streak=self.current_streak(complete_days, today),
            week_mask=self.week_mask(recording_days, today),
            longest_streak=self.longest_streak(complete_days),
        )
        logger.debug(
            "Streak for %s: %d (recording days=%d, lesson days=%d, both=%d)",
            today,
            record.current_streak,
            len(recording_days),
            len(lesson_days),
            len(complete_days),
        )
        return record
